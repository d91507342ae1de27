"""Tests for the SQLAlchemy adapter against an in-memory SQLite database."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

from feeledger.clients.database import DatabaseDataService
from feeledger.core.config import Settings
from feeledger.core.enums import PaymentStatus, ResidenceScope, ResidenceType
from feeledger.core.exceptions import NotFoundError, PersistenceError
from feeledger.core.models import BillingItemRow, PaymentRecordRow, StudentRow
from feeledger.core.schemas import PaymentDraft
from feeledger.db.session import Base, create_session_factory


@pytest.fixture()
async def session_factory() -> AsyncGenerator:
    factory = create_session_factory("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    engine = factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with factory() as db:
        db.add_all(
            [
                StudentRow(id="st-day", class_id="S1", residence_type="Day"),
                StudentRow(id="st-unset", class_id="S1", residence_type=None),
                BillingItemRow(id="b2", name="Tuition", amount=Decimal("500000"), class_id="S1",
                               term="Term 2", year="2026", residence_scope="Both"),
                BillingItemRow(id="b1", name="Boarding Fee", amount=Decimal("300000"), class_id="S1",
                               residence_scope="Boarding", frequency="one-time"),
                BillingItemRow(id="b3", name="Tuition", amount=Decimal("450000"), class_id="S2"),
                PaymentRecordRow(id="p1", student_id="st-day", billing_type="Tuition", amount=Decimal("100000"),
                                 method="cash", reference="RC-OLD-1",
                                 paid_at=datetime(2026, 4, 1, tzinfo=timezone.utc)),
                PaymentRecordRow(id="p2", student_id="st-day", billing_type="Tuition", amount=Decimal("50000"),
                                 method="momo", status="pending", reference="RC-OLD-2",
                                 paid_at=datetime(2026, 4, 2, tzinfo=timezone.utc)),
            ]
        )
        await db.commit()

    yield factory
    await engine.dispose()


@pytest.fixture()
def service(session_factory) -> DatabaseDataService:
    return DatabaseDataService(session_factory)


def _draft(**overrides) -> PaymentDraft:
    data = {
        "student_id": "st-day",
        "amount": Decimal("200000"),
        "billing_type": "Tuition",
        "method": "cash",
        "description": "Payment for Tuition - cash",
        "term": "Term 2",
        "year": "2026",
    }
    data.update(overrides)
    return PaymentDraft(**data)


@pytest.mark.asyncio
async def test_list_items_for_class(service) -> None:
    items = await service.list_items("S1")
    assert [i.id for i in items] == ["b1", "b2"]
    boarding, tuition = items
    assert boarding.residence_scope == ResidenceScope.BOARDING
    assert tuition.amount == Decimal("500000")
    assert (tuition.term, tuition.year) == ("Term 2", "2026")
    assert await service.list_items("S9") == []


@pytest.mark.asyncio
async def test_get_student(service) -> None:
    assert (await service.get_student("st-day")).residence_type == ResidenceType.DAY
    assert (await service.get_student("st-unset")).residence_type is None
    with pytest.raises(NotFoundError):
        await service.get_student("ghost")


@pytest.mark.asyncio
async def test_list_payments_newest_first(service) -> None:
    payments = await service.list_payments("st-day")
    assert [p.id for p in payments] == ["p2", "p1"]
    assert payments[0].status == PaymentStatus.pending
    assert payments[1].amount == Decimal("100000")


@pytest.mark.asyncio
async def test_record_payment_appends_paid_entry(service, session_factory) -> None:
    record = await service.record_payment(_draft())
    assert record.status == PaymentStatus.paid
    assert record.amount == Decimal("200000")
    assert record.reference.startswith("RC")
    assert (record.term, record.year) == ("Term 2", "2026")

    payments = await service.list_payments("st-day")
    assert record.id in [p.id for p in payments]


@pytest.mark.asyncio
async def test_record_payment_for_unknown_student(service) -> None:
    with pytest.raises(NotFoundError):
        await service.record_payment(_draft(student_id="ghost"))


@pytest.mark.asyncio
async def test_duplicate_reference_is_rejected_without_writing(service, session_factory) -> None:
    with pytest.raises(PersistenceError):
        await service.record_payment(_draft(reference="RC-OLD-1"))

    async with session_factory() as db:
        count = await db.scalar(select(func.count()).select_from(PaymentRecordRow))
    assert count == 2


def test_database_backend_requires_url() -> None:
    with pytest.raises(ValueError):
        DatabaseDataService.from_settings(Settings(DATABASE_URL=None))
