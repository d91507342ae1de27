"""
Residence filter: which billing items a Day or Boarding student owes.

Day residence:      Day + Both + Unspecified items
Boarding residence: Boarding + Both + Unspecified items, plus Day items
                    unless boarding_inherits_day is turned off
Absent residence:   treated as Day, with an AmbiguousResidenceWarning
"""

import logging
import warnings
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

from feeledger.core.enums import ResidenceScope, ResidenceType
from feeledger.core.exceptions import AmbiguousResidenceWarning
from feeledger.core.schemas import BillingItem

logger = logging.getLogger(__name__)

DEFAULT_RESIDENCE = ResidenceType.DAY

BOARDING_NAME_TOKENS = ("board",)
DAY_NAME_TOKENS = ("lunch", "luch")


class ResidenceFilterResult(BaseModel):
    items: List[BillingItem]
    total: Decimal
    residence: ResidenceType
    residence_defaulted: bool = False

    class Config:
        frozen = True


def normalize_residence(value: Union[ResidenceType, str, None]) -> Optional[ResidenceType]:
    """Map free-form residence text ("boarding", " DAY scholar ") to a ResidenceType."""
    if value is None:
        return None
    if isinstance(value, ResidenceType):
        return value
    raw = str(value).strip().lower()
    if "board" in raw:
        return ResidenceType.BOARDING
    if "day" in raw:
        return ResidenceType.DAY
    return None


def resolve_residence(value: Union[ResidenceType, str, None]) -> Tuple[ResidenceType, bool]:
    """Return (residence, defaulted). Unknown or missing residence becomes Day."""
    residence = normalize_residence(value)
    if residence is not None:
        return residence, False
    message = f"Residence {value!r} is not Day or Boarding; defaulting to {DEFAULT_RESIDENCE.value}"
    logger.warning(message)
    warnings.warn(message, AmbiguousResidenceWarning, stacklevel=3)
    return DEFAULT_RESIDENCE, True


def infer_scope_from_name(name: Optional[str]) -> ResidenceScope:
    """Guess a scope from the item name. Only used for legacy Unspecified items."""
    label = (name or "").strip().lower()
    if any(token in label for token in BOARDING_NAME_TOKENS):
        return ResidenceScope.BOARDING
    if any(token in label for token in DAY_NAME_TOKENS):
        return ResidenceScope.DAY
    return ResidenceScope.UNSPECIFIED


def effective_scope(item: BillingItem, infer_unspecified: bool = False) -> ResidenceScope:
    if item.residence_scope == ResidenceScope.UNSPECIFIED and infer_unspecified:
        return infer_scope_from_name(item.name)
    return item.residence_scope


def applies_to(
    item: BillingItem,
    residence: ResidenceType,
    boarding_inherits_day: bool = True,
    infer_unspecified: bool = False,
) -> bool:
    scope = effective_scope(item, infer_unspecified)
    if scope in (ResidenceScope.BOTH, ResidenceScope.UNSPECIFIED):
        return True
    if scope == ResidenceScope.BOARDING:
        return residence == ResidenceType.BOARDING
    # Day-only item
    return residence == ResidenceType.DAY or boarding_inherits_day


def filter_by_residence(
    items: Iterable[BillingItem],
    residence: Union[ResidenceType, str, None],
    boarding_inherits_day: bool = True,
    infer_unspecified: bool = False,
) -> ResidenceFilterResult:
    """Keep the items that apply to ``residence``, in input order, and total them."""
    resolved, defaulted = resolve_residence(residence)
    kept = [
        item
        for item in items
        if applies_to(item, resolved, boarding_inherits_day, infer_unspecified)
    ]
    total = sum((item.amount for item in kept), Decimal("0"))
    return ResidenceFilterResult(
        items=kept,
        total=total,
        residence=resolved,
        residence_defaulted=defaulted,
    )
