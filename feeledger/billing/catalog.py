"""Catalog and ledger preparation ahead of residence filtering and reconciliation."""

from typing import Dict, Iterable, List, Optional

from feeledger.core.schemas import BillingItem, PaymentRecord


def normalize_key(value: Optional[str]) -> str:
    """Matching key for catalog names and payment billing types."""
    return (value or "").strip().lower()


def _same_term(a: Optional[str], b: Optional[str]) -> bool:
    return normalize_key(a) == normalize_key(b)


def _same_year(a: Optional[str], b: Optional[str]) -> bool:
    return str(a or "").strip() == str(b or "").strip()


def in_period(term: Optional[str], year: Optional[str], current_term: Optional[str], current_year: Optional[str]) -> bool:
    if current_term is not None and not _same_term(term, current_term):
        return False
    if current_year is not None and not _same_year(year, current_year):
        return False
    return True


def dedupe_by_name(items: Iterable[BillingItem]) -> List[BillingItem]:
    """One item per normalized name, the highest amount winning. First-seen order is kept."""
    best: Dict[str, BillingItem] = {}
    for item in items:
        key = normalize_key(item.name)
        current = best.get(key)
        if current is None or item.amount > current.amount:
            best[key] = item
    return list(best.values())


def prepare_catalog(
    items: Iterable[BillingItem],
    current_term: Optional[str] = None,
    current_year: Optional[str] = None,
) -> List[BillingItem]:
    """Active items of the current period, de-duplicated by name."""
    scoped = [
        item
        for item in items
        if item.is_active and in_period(item.term, item.year, current_term, current_year)
    ]
    return dedupe_by_name(scoped)


def scope_payments(
    payments: Iterable[PaymentRecord],
    current_term: Optional[str] = None,
    current_year: Optional[str] = None,
) -> List[PaymentRecord]:
    """Drop payments stamped with another period. Unstamped payments always count."""
    out = []
    for payment in payments:
        if payment.term is not None and current_term is not None and not _same_term(payment.term, current_term):
            continue
        if payment.year is not None and current_year is not None and not _same_year(payment.year, current_year):
            continue
        out.append(payment)
    return out
