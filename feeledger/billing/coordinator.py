"""
Cache & refresh coordinator: sole owner of the derived fee caches.

Caches:
    snapshots  class_id   -> FeeStructureSnapshot, tagged with its residence
    summaries  student_id -> PaymentSummary

Every outbound read for a cache slot goes through one shared in-flight task,
so concurrent callers never duplicate a read. Each slot carries a generation
counter that is bumped whenever a new read is issued or the slot is
invalidated; a result is only written back if its generation is still the
latest for the slot.

Events:
    ManualRefreshRequested -> re-read catalog and ledger, replace both caches
    StudentUpdated         -> drop the student's summary
    PaymentSubmitted       -> drop the student's summary (catalog untouched)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

from feeledger.billing.catalog import prepare_catalog, scope_payments
from feeledger.billing.events import ManualRefreshRequested, PaymentSubmitted, StudentUpdated
from feeledger.billing.ports import BillingCatalog, PaymentLedgerReader, StudentDirectory
from feeledger.billing.reconciliation import reconcile
from feeledger.billing.residence import filter_by_residence, resolve_residence
from feeledger.billing.retry import RetryPolicy, call_with_retry
from feeledger.core.config import Settings
from feeledger.core.enums import CacheScope, ResidenceType
from feeledger.core.exceptions import NetworkError
from feeledger.core.schemas import BillingItem, FeeStructureSnapshot, PaymentRecord, PaymentSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")
Slot = Tuple[CacheScope, str]


@dataclass
class CacheEntry(Generic[T]):
    value: T
    generation: int
    fetched_at: datetime
    residence: Optional[ResidenceType] = None
    stale: bool = False


@dataclass
class _Flight:
    generation: int
    task: Optional["asyncio.Future[Any]"] = None
    # Class of the student whose summary is being computed, once known.
    class_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeeCoordinator:
    """Serves fee snapshots and payment summaries from a coherent cache."""

    def __init__(
        self,
        catalog: BillingCatalog,
        directory: StudentDirectory,
        ledger: PaymentLedgerReader,
        retry_policy: Optional[RetryPolicy] = None,
        current_term: Optional[str] = None,
        current_year: Optional[str] = None,
        boarding_inherits_day: bool = True,
        infer_unspecified: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._catalog = catalog
        self._directory = directory
        self._ledger = ledger
        self._retry = retry_policy or RetryPolicy()
        self.current_term = current_term
        self.current_year = current_year
        self.boarding_inherits_day = boarding_inherits_day
        self.infer_unspecified = infer_unspecified
        self._clock = clock
        self._sleep = sleep

        self._snapshots: Dict[str, CacheEntry[FeeStructureSnapshot]] = {}
        self._summaries: Dict[str, CacheEntry[PaymentSummary]] = {}
        self._generations: Dict[Slot, int] = {}
        self._inflight: Dict[Slot, _Flight] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: BillingCatalog,
        directory: StudentDirectory,
        ledger: PaymentLedgerReader,
    ) -> "FeeCoordinator":
        return cls(
            catalog,
            directory,
            ledger,
            retry_policy=RetryPolicy.from_settings(settings),
            current_term=settings.current_term,
            current_year=settings.current_year,
            boarding_inherits_day=settings.boarding_inherits_day_items,
            infer_unspecified=settings.infer_residence_scope_from_name,
        )

    # --- Read API ---
    async def get_fee_structure(
        self,
        class_id: str,
        residence: Union[ResidenceType, str, None] = None,
        force: bool = False,
    ) -> FeeStructureSnapshot:
        resolved, defaulted = resolve_residence(residence)
        entry = self._snapshots.get(class_id)
        if entry is not None and not force and not entry.stale:
            if entry.residence == resolved:
                logger.debug("Fee structure cache hit for class %s (%s)", class_id, resolved.value)
                return self._mark_defaulted(entry.value, defaulted)
            logger.info(
                "Fee structure for class %s cached for %s, recomputing for %s",
                class_id, entry.residence.value, resolved.value,
            )

        slot = (CacheScope.CATALOG, class_id)
        try:
            items, generation = await self._shared(
                slot,
                lambda _flight: self._read(lambda: self._catalog.list_items(class_id), f"Catalog read for class {class_id}"),
                force=force,
            )
        except NetworkError:
            if entry is not None and entry.residence == resolved:
                return self._mark_defaulted(self._serve_stale(slot, entry), defaulted)
            raise

        snapshot = self._build_snapshot(class_id, items, resolved, defaulted)
        if self._is_latest(slot, generation):
            self._snapshots[class_id] = CacheEntry(
                value=snapshot,
                generation=generation,
                fetched_at=self._clock(),
                residence=resolved,
            )
        else:
            logger.info("Discarding superseded fee structure for class %s (generation %d)", class_id, generation)
        return snapshot

    async def get_payment_summary(self, student_id: str, force: bool = False) -> PaymentSummary:
        entry = self._summaries.get(student_id)
        if entry is not None and not force and not entry.stale:
            logger.debug("Payment summary cache hit for student %s", student_id)
            return entry.value

        slot = (CacheScope.SUMMARY, student_id)
        try:
            summary, generation = await self._shared(
                slot,
                lambda flight: self._compute_summary(student_id, force, flight),
                force=force,
            )
        except NetworkError:
            if entry is not None:
                return self._serve_stale(slot, entry)
            raise

        if self._is_latest(slot, generation):
            self._summaries[student_id] = CacheEntry(
                value=summary,
                generation=generation,
                fetched_at=self._clock(),
                residence=summary.residence,
                stale=summary.stale,
            )
        else:
            logger.info("Discarding superseded payment summary for student %s (generation %d)", student_id, generation)
        return summary

    async def refresh(self, student_id: str) -> PaymentSummary:
        """Re-read the student's class catalog and ledger and replace both caches."""
        logger.info("Manual refresh for student %s", student_id)
        return await self.get_payment_summary(student_id, force=True)

    # --- Invalidation API ---
    def invalidate(self, scope: Union[CacheScope, str], key: str) -> None:
        scope = CacheScope(scope)
        slot = (scope, key)
        self._bump(slot)
        self._inflight.pop(slot, None)
        if scope == CacheScope.SUMMARY:
            self._summaries.pop(key, None)
            logger.info("Invalidated payment summary for student %s", key)
            return

        self._snapshots.pop(key, None)
        logger.info("Invalidated fee structure for class %s", key)
        # Summaries derived from this class, cached or still being computed, are no longer coherent.
        # A summary whose student is not resolved yet will read the catalog afresh.
        dependent = [sid for sid, e in self._summaries.items() if e.value.class_id == key]
        computing = [
            k for (s, k), f in self._inflight.items()
            if s == CacheScope.SUMMARY and f.class_id == key
        ]
        for student_id in set(dependent) | set(computing):
            self.invalidate(CacheScope.SUMMARY, student_id)

    def on_student_updated(self, event: StudentUpdated) -> None:
        new_residence = event.new_residence.value if event.new_residence else "unset"
        logger.info("Student %s updated (residence %s)", event.student_id, new_residence)
        self.invalidate(CacheScope.SUMMARY, event.student_id)

    def on_payment_submitted(self, event: PaymentSubmitted) -> None:
        self.invalidate(CacheScope.SUMMARY, event.student_id)

    async def dispatch(self, event: Any) -> Optional[PaymentSummary]:
        """Apply the cache action mapped to a domain event."""
        if isinstance(event, ManualRefreshRequested):
            return await self.refresh(event.student_id)
        if isinstance(event, StudentUpdated):
            self.on_student_updated(event)
            return None
        if isinstance(event, PaymentSubmitted):
            self.on_payment_submitted(event)
            return None
        raise TypeError(f"Unsupported event: {type(event).__name__}")

    def peek(self, scope: Union[CacheScope, str], key: str) -> Optional[CacheEntry]:
        """Cached entry for a slot, without triggering any read."""
        if CacheScope(scope) == CacheScope.CATALOG:
            return self._snapshots.get(key)
        return self._summaries.get(key)

    # --- Internals ---
    async def _compute_summary(self, student_id: str, force: bool, flight: _Flight) -> PaymentSummary:
        student = await self._read(
            lambda: self._directory.get_student(student_id),
            f"Student lookup for {student_id}",
        )
        flight.class_id = student.class_id
        snapshot, payments = await asyncio.gather(
            self.get_fee_structure(student.class_id, student.residence_type, force=force),
            self._read(lambda: self._ledger.list_payments(student_id), f"Ledger read for student {student_id}"),
        )
        payments = scope_payments(payments, self.current_term, self.current_year)
        summary = reconcile(snapshot, payments, student_id=student.id)
        if snapshot.stale:
            summary = summary.model_copy(update={"stale": True})
        logger.info(
            "Reconciled student %s: required=%s paid=%s balance=%s",
            student_id, summary.total_required, summary.total_paid, summary.balance,
        )
        return summary

    def _build_snapshot(
        self,
        class_id: str,
        items: List[BillingItem],
        residence: ResidenceType,
        defaulted: bool,
    ) -> FeeStructureSnapshot:
        prepared = prepare_catalog(items, self.current_term, self.current_year)
        if items and not prepared:
            logger.warning(
                "No billing items for class %s in term %s %s",
                class_id, self.current_term, self.current_year,
            )
        filtered = filter_by_residence(
            prepared,
            residence,
            boarding_inherits_day=self.boarding_inherits_day,
            infer_unspecified=self.infer_unspecified,
        )
        return FeeStructureSnapshot(
            class_id=class_id,
            residence=filtered.residence,
            residence_defaulted=defaulted,
            term=self.current_term,
            year=self.current_year,
            items=filtered.items,
            total=filtered.total,
        )

    async def _read(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await call_with_retry(operation, self._retry, description, sleep=self._sleep)

    async def _shared(
        self,
        slot: Slot,
        operation: Callable[[_Flight], Awaitable[T]],
        force: bool = False,
    ) -> Tuple[T, int]:
        """Run ``operation(flight)`` once per slot; concurrent callers await the same task."""
        flight = self._inflight.get(slot)
        if flight is None or force:
            generation = self._bump(slot)
            flight = _Flight(generation=generation)
            flight.task = asyncio.ensure_future(operation(flight))
            self._inflight[slot] = flight
            flight.task.add_done_callback(lambda _t, s=slot, f=flight: self._land(s, f))
            logger.debug("Issued %s read for %s (generation %d)", slot[0].value, slot[1], generation)
        else:
            logger.debug("Joined in-flight %s read for %s", slot[0].value, slot[1])
        value = await asyncio.shield(flight.task)
        return value, flight.generation

    def _land(self, slot: Slot, flight: _Flight) -> None:
        if self._inflight.get(slot) is flight:
            del self._inflight[slot]
        if not flight.task.cancelled():
            # Retrieve the exception so an abandoned flight is not reported as unhandled.
            flight.task.exception()

    def _bump(self, slot: Slot) -> int:
        generation = self._generations.get(slot, 0) + 1
        self._generations[slot] = generation
        return generation

    def _is_latest(self, slot: Slot, generation: int) -> bool:
        return self._generations.get(slot, 0) == generation

    def _serve_stale(self, slot: Slot, entry: CacheEntry) -> Any:
        entry.stale = True
        logger.warning(
            "Refresh of %s %s failed; serving value from %s",
            slot[0].value, slot[1], entry.fetched_at.isoformat(),
        )
        return entry.value.model_copy(update={"stale": True})

    @staticmethod
    def _mark_defaulted(snapshot: FeeStructureSnapshot, defaulted: bool) -> FeeStructureSnapshot:
        if snapshot.residence_defaulted == defaulted:
            return snapshot
        return snapshot.model_copy(update={"residence_defaulted": defaulted})
