"""Fees API schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from feeledger.core.enums import ResidenceType
from feeledger.core.schemas import PaymentInput


# --- Payment ---
class PaymentCreate(BaseModel):
    """Submission body. Amount and billing type are checked by the payment gateway."""

    student_id: str
    amount: Decimal = Field(..., allow_inf_nan=True)
    billing_type: str
    payment_method: Optional[str] = Field(None, description="cash, momo, airtel-money, bank-transfer, visa")
    payment_reference: Optional[str] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=128)

    def to_input(self) -> PaymentInput:
        return PaymentInput(
            student_id=self.student_id,
            amount=self.amount,
            billing_type=self.billing_type,
            method=self.payment_method,
            reference=self.payment_reference,
            description=self.description,
            idempotency_key=self.idempotency_key,
        )


# --- Student events ---
class StudentUpdatedRequest(BaseModel):
    residence_type: Optional[ResidenceType] = None
