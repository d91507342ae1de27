"""Interfaces of the external services the billing engine reads from and writes to."""

from typing import List, Protocol

from feeledger.core.schemas import BillingItem, PaymentDraft, PaymentRecord, Student


class BillingCatalog(Protocol):
    async def list_items(self, class_id: str) -> List[BillingItem]:
        """All billing items configured for a class. Empty list for an unknown class."""
        ...


class StudentDirectory(Protocol):
    async def get_student(self, student_id: str) -> Student:
        """Raises NotFoundError when the student does not exist."""
        ...


class PaymentLedgerReader(Protocol):
    async def list_payments(self, student_id: str) -> List[PaymentRecord]:
        ...


class PaymentLedger(PaymentLedgerReader, Protocol):
    async def record_payment(self, draft: PaymentDraft) -> PaymentRecord:
        """Append a payment. Raises PersistenceError when the write is rejected."""
        ...
