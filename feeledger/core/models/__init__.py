from feeledger.core.models.billing_item import BillingItemRow
from feeledger.core.models.student import StudentRow
from feeledger.core.models.payment_record import PaymentRecordRow

__all__ = [
    "BillingItemRow",
    "StudentRow",
    "PaymentRecordRow",
]
