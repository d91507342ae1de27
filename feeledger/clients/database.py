"""Async SQLAlchemy adapter reading the catalog, students and ledger from a shared database."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, List

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feeledger.billing.residence import normalize_residence
from feeledger.core.config import Settings
from feeledger.core.enums import BillingFrequency, PaymentStatus, ResidenceScope
from feeledger.core.exceptions import NetworkError, NotFoundError, PersistenceError
from feeledger.core.models import BillingItemRow, PaymentRecordRow, StudentRow
from feeledger.core.schemas import BillingItem, PaymentDraft, PaymentRecord, Student
from feeledger.db.session import create_session_factory

logger = logging.getLogger(__name__)


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def new_receipt_number() -> str:
    return f"RC{uuid.uuid4().hex[:12].upper()}"


def _item_to_schema(row: BillingItemRow) -> BillingItem:
    return BillingItem(
        id=row.id,
        name=row.name,
        amount=_to_decimal(row.amount),
        frequency=BillingFrequency(row.frequency),
        class_id=row.class_id,
        term=row.term,
        year=row.year,
        residence_scope=ResidenceScope(row.residence_scope or ResidenceScope.UNSPECIFIED.value),
        is_active=row.is_active,
    )


def _student_to_schema(row: StudentRow) -> Student:
    return Student(
        id=row.id,
        class_id=row.class_id,
        residence_type=normalize_residence(row.residence_type),
    )


def _payment_to_schema(row: PaymentRecordRow) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        student_id=row.student_id,
        billing_type=row.billing_type,
        amount=_to_decimal(row.amount),
        timestamp=row.paid_at,
        method=row.method,
        status=PaymentStatus(row.status),
        reference=row.reference,
        description=row.description,
        term=row.term,
        year=row.year,
    )


class DatabaseDataService:
    """Catalog, student directory and payment ledger read from SQL tables."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "DatabaseDataService":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required when DATA_BACKEND=database")
        return cls(create_session_factory(settings.database_url))

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as db:
                yield db
        except OperationalError as e:
            raise NetworkError(f"Database unavailable: {e.orig}")
        except DBAPIError as e:
            if e.connection_invalidated:
                raise NetworkError(f"Database connection lost: {e.orig}")
            raise

    # --- BillingCatalog ---
    async def list_items(self, class_id: str) -> List[BillingItem]:
        async with self._session() as db:
            stmt = (
                select(BillingItemRow)
                .where(BillingItemRow.class_id == class_id)
                .order_by(BillingItemRow.name, BillingItemRow.id)
            )
            result = await db.execute(stmt)
            return [_item_to_schema(r) for r in result.scalars().all()]

    # --- StudentDirectory ---
    async def get_student(self, student_id: str) -> Student:
        async with self._session() as db:
            row = await db.get(StudentRow, student_id)
            if row is None:
                raise NotFoundError(f"Student {student_id} not found")
            return _student_to_schema(row)

    # --- PaymentLedger ---
    async def list_payments(self, student_id: str) -> List[PaymentRecord]:
        async with self._session() as db:
            stmt = (
                select(PaymentRecordRow)
                .where(PaymentRecordRow.student_id == student_id)
                .order_by(PaymentRecordRow.paid_at.desc(), PaymentRecordRow.id)
            )
            result = await db.execute(stmt)
            return [_payment_to_schema(r) for r in result.scalars().all()]

    async def record_payment(self, draft: PaymentDraft) -> PaymentRecord:
        async with self._session() as db:
            if await db.get(StudentRow, draft.student_id) is None:
                raise NotFoundError(f"Student {draft.student_id} not found")
            row = PaymentRecordRow(
                student_id=draft.student_id,
                billing_type=draft.billing_type,
                amount=draft.amount,
                method=draft.method,
                status=PaymentStatus.paid.value,
                reference=draft.reference or new_receipt_number(),
                description=draft.description,
                term=draft.term,
                year=draft.year,
                paid_at=datetime.now(timezone.utc),
            )
            db.add(row)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.warning("Payment write rejected for student %s: %s", draft.student_id, e.orig)
                raise PersistenceError(f"Payment rejected: {e.orig}")
            await db.refresh(row)
            return _payment_to_schema(row)
