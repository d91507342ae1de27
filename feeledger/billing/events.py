"""Domain events that drive cache invalidation in the fee coordinator."""

from dataclasses import dataclass
from typing import Optional

from feeledger.core.enums import ResidenceType


@dataclass(frozen=True)
class ManualRefreshRequested:
    student_id: str


@dataclass(frozen=True)
class StudentUpdated:
    student_id: str
    new_residence: Optional[ResidenceType] = None


@dataclass(frozen=True)
class PaymentSubmitted:
    student_id: str
