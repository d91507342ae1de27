import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from feeledger.billing.coordinator import FeeCoordinator
from feeledger.billing.gateway import PaymentGateway
from feeledger.billing.retry import RetryPolicy
from feeledger.core.config import Settings
from feeledger.core.enums import PaymentStatus, ResidenceScope, ResidenceType
from feeledger.core.exceptions import NetworkError, NotFoundError, ServiceError
from feeledger.core.schemas import BillingItem, PaymentDraft, PaymentRecord, Student

FIXED_NOW = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)
NO_RETRY_DELAY = RetryPolicy(attempts=3, backoff_base=0, backoff_max=0, jitter=0)


async def no_sleep(_delay: float) -> None:
    return None


class FakeCatalog:
    """Billing catalog keyed by class. ``gate`` holds reads open until set.

    A read returns the items as they were when it was issued.
    """

    def __init__(self, items: Optional[Dict[str, List[BillingItem]]] = None) -> None:
        self.items = dict(items or {})
        self.calls = 0
        self.failures = 0
        self.gate: Optional[asyncio.Event] = None

    async def list_items(self, class_id: str) -> List[BillingItem]:
        self.calls += 1
        items = list(self.items.get(class_id, []))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise NetworkError("catalog unavailable")
        return items


class FakeDirectory:
    def __init__(self, students: Optional[Dict[str, Student]] = None) -> None:
        self.students = dict(students or {})
        self.calls = 0

    async def get_student(self, student_id: str) -> Student:
        self.calls += 1
        student = self.students.get(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found")
        return student


class FakeLedger:
    """Append-only ledger. ``write_error`` makes the next write fail."""

    def __init__(self) -> None:
        self.payments: Dict[str, List[PaymentRecord]] = {}
        self.read_calls = 0
        self.write_calls = 0
        self.read_failures = 0
        self.write_error: Optional[ServiceError] = None
        self.write_gate: Optional[asyncio.Event] = None

    def add(self, record: PaymentRecord) -> None:
        self.payments.setdefault(record.student_id, []).append(record)

    async def list_payments(self, student_id: str) -> List[PaymentRecord]:
        self.read_calls += 1
        if self.read_failures:
            self.read_failures -= 1
            raise NetworkError("ledger unavailable")
        return list(self.payments.get(student_id, []))

    async def record_payment(self, draft: PaymentDraft) -> PaymentRecord:
        self.write_calls += 1
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.write_error is not None:
            error, self.write_error = self.write_error, None
            raise error
        n = sum(len(v) for v in self.payments.values()) + 1
        record = PaymentRecord(
            id=f"pay-{n}",
            student_id=draft.student_id,
            billing_type=draft.billing_type,
            amount=draft.amount,
            timestamp=FIXED_NOW,
            method=draft.method,
            status=PaymentStatus.paid,
            reference=draft.reference or f"RC{n:06d}",
            description=draft.description,
            term=draft.term,
            year=draft.year,
        )
        self.add(record)
        return record


def make_item(name: str, amount, scope: ResidenceScope = ResidenceScope.UNSPECIFIED, class_id: str = "S1", **kw) -> BillingItem:
    return BillingItem(
        id=kw.pop("id", f"{class_id}-{name}"),
        name=name,
        amount=Decimal(str(amount)),
        class_id=class_id,
        residence_scope=scope,
        **kw,
    )


def make_payment(billing_type: str, amount, student_id: str = "st-day", status: PaymentStatus = PaymentStatus.paid, **kw) -> PaymentRecord:
    return PaymentRecord(
        id=kw.pop("id", f"{student_id}-{billing_type}-{amount}"),
        student_id=student_id,
        billing_type=billing_type,
        amount=Decimal(str(amount)),
        timestamp=kw.pop("timestamp", FIXED_NOW),
        method=kw.pop("method", "cash"),
        status=status,
        **kw,
    )


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog(
        {
            "S1": [
                make_item("Tuition", 500000, ResidenceScope.BOTH),
                make_item("BoardingFee", 300000, ResidenceScope.BOARDING),
            ],
        }
    )


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory(
        {
            "st-day": Student(id="st-day", class_id="S1", residence_type=ResidenceType.DAY),
            "st-board": Student(id="st-board", class_id="S1", residence_type=ResidenceType.BOARDING),
            "st-unset": Student(id="st-unset", class_id="S1", residence_type=None),
        }
    )


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def coordinator(catalog: FakeCatalog, directory: FakeDirectory, ledger: FakeLedger) -> FeeCoordinator:
    return FeeCoordinator(catalog, directory, ledger, retry_policy=NO_RETRY_DELAY, sleep=no_sleep)


@pytest.fixture()
def gateway(directory: FakeDirectory, ledger: FakeLedger, coordinator: FeeCoordinator) -> PaymentGateway:
    return PaymentGateway(
        directory,
        ledger,
        coordinator,
        retry_policy=NO_RETRY_DELAY,
        clock=lambda: FIXED_NOW,
        sleep=no_sleep,
    )


class FakeDataService:
    """The three fakes behind one object, the shape create_app expects."""

    def __init__(self, catalog: FakeCatalog, directory: FakeDirectory, ledger: FakeLedger) -> None:
        self.list_items = catalog.list_items
        self.get_student = directory.get_student
        self.list_payments = ledger.list_payments
        self.record_payment = ledger.record_payment


@pytest.fixture()
async def client(catalog: FakeCatalog, directory: FakeDirectory, ledger: FakeLedger) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to a fee app wired to the in-memory fakes."""
    from feeledger.main import create_app

    settings = Settings(RETRY_ATTEMPTS=1, LOG_LEVEL="WARNING")
    app = create_app(settings, data_service=FakeDataService(catalog, directory, ledger))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
