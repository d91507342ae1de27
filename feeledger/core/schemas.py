"""Domain entities shared by the billing engine, the adapters and the API."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from feeledger.core.enums import (
    BillingFrequency,
    PaymentStatus,
    ResidenceScope,
    ResidenceType,
)


# --- Inputs read from the external services ---
class BillingItem(BaseModel):
    """One priced fee category from the class billing catalog."""

    id: str
    name: str
    amount: Decimal = Field(..., ge=0)
    frequency: BillingFrequency = BillingFrequency.TERMLY
    class_id: str
    term: Optional[str] = None
    year: Optional[str] = None
    residence_scope: ResidenceScope = ResidenceScope.UNSPECIFIED
    is_active: bool = True

    class Config:
        frozen = True
        from_attributes = True


class Student(BaseModel):
    id: str
    class_id: str
    residence_type: Optional[ResidenceType] = None

    class Config:
        frozen = True
        from_attributes = True


class PaymentRecord(BaseModel):
    """A persisted ledger entry. Never mutated once written."""

    id: str
    student_id: str
    billing_type: str
    amount: Decimal = Field(..., gt=0)
    timestamp: datetime
    method: str
    status: PaymentStatus = PaymentStatus.paid
    reference: Optional[str] = None
    description: Optional[str] = None
    term: Optional[str] = None
    year: Optional[str] = None

    class Config:
        frozen = True
        from_attributes = True


# --- Payment submission ---
class PaymentInput(BaseModel):
    """Unvalidated caller request; the gateway checks every field."""

    student_id: str
    amount: Decimal = Field(..., allow_inf_nan=True)
    billing_type: str
    method: Optional[str] = None
    reference: Optional[str] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = None


class PaymentDraft(BaseModel):
    """Validated, normalized payment handed to the ledger for writing."""

    student_id: str
    amount: Decimal
    billing_type: str
    method: str
    reference: Optional[str] = None
    description: str
    term: Optional[str] = None
    year: Optional[str] = None

    class Config:
        frozen = True


# --- Derived views ---
class FeeStructureSnapshot(BaseModel):
    """Residence-filtered billing items for a class and their total."""

    class_id: str
    residence: ResidenceType
    residence_defaulted: bool = False
    term: Optional[str] = None
    year: Optional[str] = None
    items: List[BillingItem]
    total: Decimal
    stale: bool = False

    class Config:
        frozen = True


class BreakdownLine(BaseModel):
    billing_type: str
    required: Decimal
    paid: Decimal
    remaining: Decimal
    frequency: BillingFrequency
    term: Optional[str] = None
    year: Optional[str] = None

    class Config:
        frozen = True


class PaymentSummary(BaseModel):
    """Required vs paid vs remaining for one student."""

    student_id: str
    class_id: str
    residence: ResidenceType
    term: Optional[str] = None
    year: Optional[str] = None
    total_required: Decimal
    total_paid: Decimal
    balance: Decimal
    breakdown: List[BreakdownLine]
    unattributed_paid: Decimal
    stale: bool = False

    class Config:
        frozen = True
