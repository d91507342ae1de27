"""
Fee reconciliation: match ledger entries to catalog items by normalized name.

Only payments with status ``paid`` count. A paid entry whose billing type
matches no catalog item is kept as unattributed: it raises total_paid but
reduces no item's remaining amount.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Set

from feeledger.billing.catalog import normalize_key
from feeledger.core.enums import PaymentStatus
from feeledger.core.exceptions import ValidationError
from feeledger.core.schemas import (
    BreakdownLine,
    FeeStructureSnapshot,
    PaymentRecord,
    PaymentSummary,
)

ZERO = Decimal("0")


def paid_by_key(payments: Iterable[PaymentRecord]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in payments:
        if payment.status != PaymentStatus.paid:
            continue
        totals[normalize_key(payment.billing_type)] += payment.amount
    return dict(totals)


def reconcile(
    snapshot: FeeStructureSnapshot,
    payments: Iterable[PaymentRecord],
    student_id: str,
) -> PaymentSummary:
    """Build the payment summary of ``student_id`` for ``snapshot`` against ``payments``."""
    student_id = (student_id or "").strip()
    if not student_id:
        raise ValidationError("Student is required", field="student_id")
    payments = list(payments)

    totals = paid_by_key(payments)
    claimed: Set[str] = set()
    breakdown: List[BreakdownLine] = []
    attributed = ZERO

    for item in snapshot.items:
        key = normalize_key(item.name)
        # Duplicate names in one snapshot: the first item takes the payments.
        paid = totals.get(key, ZERO) if key not in claimed else ZERO
        claimed.add(key)
        attributed += paid
        breakdown.append(
            BreakdownLine(
                billing_type=item.name,
                required=item.amount,
                paid=paid,
                remaining=max(ZERO, item.amount - paid),
                frequency=item.frequency,
                term=item.term or snapshot.term,
                year=item.year or snapshot.year,
            )
        )

    unattributed = sum((amount for key, amount in totals.items() if key not in claimed), ZERO)
    total_required = sum((item.amount for item in snapshot.items), ZERO)
    total_paid = attributed + unattributed

    return PaymentSummary(
        student_id=student_id,
        class_id=snapshot.class_id,
        residence=snapshot.residence,
        term=snapshot.term,
        year=snapshot.year,
        total_required=total_required,
        total_paid=total_paid,
        balance=max(ZERO, total_required - total_paid),
        breakdown=breakdown,
        unattributed_paid=unattributed,
    )
