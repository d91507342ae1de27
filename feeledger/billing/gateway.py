"""Payment submission: validate, write to the ledger, then invalidate the student's summary."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Optional, Tuple

from feeledger.billing.coordinator import FeeCoordinator
from feeledger.billing.events import PaymentSubmitted
from feeledger.billing.ports import PaymentLedger, StudentDirectory
from feeledger.billing.retry import RetryPolicy, call_with_retry
from feeledger.core.config import Settings
from feeledger.core.exceptions import ValidationError
from feeledger.core.schemas import PaymentDraft, PaymentInput, PaymentRecord

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "cash"

# Cleaned (student_id, amount, billing_type, method, reference) of a submission.
Fingerprint = Tuple[str, Decimal, str, str, Optional[str]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_description(billing_type: str, method: str, reference: Optional[str]) -> str:
    text = f"Payment for {billing_type} - {method}"
    if reference:
        text += f" (Ref: {reference})"
    return text


def validate_payment(payload: PaymentInput) -> Tuple[str, Decimal, str]:
    """Return the cleaned (student_id, amount, billing_type) or raise ValidationError."""
    student_id = (payload.student_id or "").strip()
    if not student_id:
        raise ValidationError("Student is required", field="student_id")

    amount = payload.amount
    if amount is None or not amount.is_finite():
        raise ValidationError("Amount must be a finite number", field="amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")

    billing_type = (payload.billing_type or "").strip()
    if not billing_type:
        raise ValidationError("Billing type is required", field="billing_type")
    return student_id, amount, billing_type


class PaymentGateway:
    """Validates and submits payments. Never mutates caches except through the coordinator."""

    def __init__(
        self,
        directory: StudentDirectory,
        ledger: PaymentLedger,
        coordinator: FeeCoordinator,
        retry_policy: Optional[RetryPolicy] = None,
        current_term: Optional[str] = None,
        current_year: Optional[str] = None,
        idempotency_window: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._directory = directory
        self._ledger = ledger
        self._coordinator = coordinator
        self._retry = retry_policy or RetryPolicy()
        self.current_term = current_term
        self.current_year = current_year
        self._window = idempotency_window
        self._clock = clock
        self._sleep = sleep
        self._recent: Dict[str, Tuple[PaymentRecord, datetime, Fingerprint]] = {}
        self._pending: Dict[str, Tuple["asyncio.Future[PaymentRecord]", Fingerprint]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        directory: StudentDirectory,
        ledger: PaymentLedger,
        coordinator: FeeCoordinator,
    ) -> "PaymentGateway":
        return cls(
            directory,
            ledger,
            coordinator,
            retry_policy=RetryPolicy.from_settings(settings),
            current_term=settings.current_term,
            current_year=settings.current_year,
            idempotency_window=timedelta(seconds=settings.idempotency_window_seconds),
        )

    async def submit(self, payload: PaymentInput) -> PaymentRecord:
        student_id, amount, billing_type = validate_payment(payload)
        method = (payload.method or "").strip() or DEFAULT_METHOD
        reference = (payload.reference or "").strip() or None
        draft_fields = (student_id, amount, billing_type, method, reference)

        key = (payload.idempotency_key or "").strip()
        if not key:
            return await self._submit(payload, draft_fields)

        self._expire_recent()
        seen = self._recent.get(key)
        if seen is not None:
            record, _, fingerprint = seen
            self._check_fingerprint(key, fingerprint, draft_fields)
            logger.info("Duplicate submission %s, returning payment %s", key, record.id)
            return record
        pending = self._pending.get(key)
        if pending is None:
            task = asyncio.ensure_future(self._submit(payload, draft_fields))
            pending = (task, draft_fields)
            self._pending[key] = pending
            task.add_done_callback(lambda _f, k=key: self._pending.pop(k, None))
        else:
            self._check_fingerprint(key, pending[1], draft_fields)
        record = await asyncio.shield(pending[0])
        self._recent[key] = (record, self._clock(), draft_fields)
        return record

    async def _submit(self, payload: PaymentInput, draft_fields: Fingerprint) -> PaymentRecord:
        student_id, amount, billing_type, method, reference = draft_fields

        # NotFoundError surfaces as-is; only transient lookup failures are retried.
        student = await call_with_retry(
            lambda: self._directory.get_student(student_id),
            self._retry,
            f"Student lookup for {student_id}",
            sleep=self._sleep,
        )

        description = (payload.description or "").strip() or default_description(billing_type, method, reference)
        draft = PaymentDraft(
            student_id=student.id,
            amount=amount,
            billing_type=billing_type,
            method=method,
            reference=reference,
            description=description,
            term=self.current_term,
            year=self.current_year,
        )

        # Writes are not retried: a lost response could otherwise record the payment twice.
        record = await self._ledger.record_payment(draft)
        logger.info(
            "Recorded payment %s: %s %s for student %s (ref %s)",
            record.id, record.amount, record.billing_type, record.student_id, record.reference,
        )
        self._coordinator.on_payment_submitted(PaymentSubmitted(student_id=student_id))
        if record.student_id != student_id:
            self._coordinator.on_payment_submitted(PaymentSubmitted(student_id=record.student_id))
        return record

    def _check_fingerprint(self, key: str, stored: Fingerprint, incoming: Fingerprint) -> None:
        if stored != incoming:
            logger.warning("Idempotency key %s reused with a different payment", key)
            raise ValidationError("Idempotency key reused with a different payment", field="idempotency_key")

    def _expire_recent(self) -> None:
        cutoff = self._clock() - self._window
        for key in [k for k, (_, at, _) in self._recent.items() if at < cutoff]:
            del self._recent[key]
