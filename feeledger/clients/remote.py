"""
httpx adapter for the remote school data service.

Implements BillingCatalog, StudentDirectory and PaymentLedger over its REST API:
    GET  /billing-types?classId=<id>
    GET  /students/<id>
    GET  /payments/student/<id>
    POST /payments/process
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, List, Optional

import httpx
import pydantic
from fastapi import status

from feeledger.billing.residence import normalize_residence
from feeledger.core.config import Settings
from feeledger.core.enums import BillingFrequency, PaymentStatus, ResidenceScope
from feeledger.core.exceptions import NetworkError, NotFoundError, PersistenceError, ServiceError
from feeledger.core.schemas import BillingItem, PaymentDraft, PaymentRecord, Student

logger = logging.getLogger(__name__)

_FREQUENCIES = {
    "termly": BillingFrequency.TERMLY,
    "term": BillingFrequency.TERMLY,
    "term_wise": BillingFrequency.TERMLY,
    "monthly": BillingFrequency.MONTHLY,
    "annual": BillingFrequency.ANNUAL,
    "yearly": BillingFrequency.ANNUAL,
    "one-time": BillingFrequency.ONE_TIME,
    "one_time": BillingFrequency.ONE_TIME,
}

_SCOPES = {scope.value.lower(): scope for scope in ResidenceScope}

# Ledger rows that are charges rather than payments carry another "type".
_PAYMENT_ROW_TYPES = ("payment", "sponsorship")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite():
        raise ServiceError(f"Invalid amount from data service: {value!r}", status.HTTP_502_BAD_GATEWAY)
    return amount


@contextmanager
def _rows_of(what: str) -> Iterator[None]:
    """Report rows that do not fit the domain schemas as a bad upstream response."""
    try:
        yield
    except pydantic.ValidationError as e:
        logger.warning("Malformed %s from data service: %s", what, e)
        raise ServiceError(
            f"Malformed {what} from data service: {e.error_count()} invalid field(s)",
            status.HTTP_502_BAD_GATEWAY,
        )


def _to_status(value: Any) -> PaymentStatus:
    raw = (_text(value) or "").lower()
    if raw in ("paid", "completed", "success"):
        return PaymentStatus.paid
    if raw == "overdue":
        return PaymentStatus.overdue
    return PaymentStatus.pending


def _item_from_json(data: dict, class_id: str) -> BillingItem:
    return BillingItem(
        id=str(data.get("id")),
        name=_text(data.get("name")) or "General Fee",
        amount=_to_decimal(data.get("amount")),
        frequency=_FREQUENCIES.get((_text(data.get("frequency")) or "").lower(), BillingFrequency.TERMLY),
        class_id=_text(data.get("classId")) or _text(data.get("className")) or class_id,
        term=_text(data.get("term")),
        year=_text(data.get("year")),
        residence_scope=_SCOPES.get((_text(data.get("residenceScope")) or "").lower(), ResidenceScope.UNSPECIFIED),
        is_active=bool(data.get("isActive", True)),
    )


def _student_from_json(data: dict) -> Student:
    class_id = _text(data.get("classId")) or _text(data.get("class"))
    if not class_id:
        raise NotFoundError(f"Student {data.get('id')} has no class assigned")
    return Student(
        id=str(data.get("id")),
        class_id=class_id,
        residence_type=normalize_residence(data.get("residenceType")),
    )


def _payment_from_json(data: dict, student_id: str) -> PaymentRecord:
    timestamp = data.get("paymentDate") or data.get("paidDate") or data.get("date") or data.get("createdAt")
    return PaymentRecord(
        id=str(data.get("id")),
        student_id=_text(data.get("studentId")) or student_id,
        billing_type=_text(data.get("billingType")) or _text(data.get("type")) or "General Fee",
        amount=_to_decimal(data.get("amount")),
        timestamp=timestamp or datetime.now(timezone.utc),
        method=_text(data.get("paymentMethod")) or _text(data.get("method")) or "cash",
        status=_to_status(data.get("status")),
        reference=_text(data.get("receiptNumber")) or _text(data.get("reference")),
        description=_text(data.get("description")),
        term=_text(data.get("term")),
        year=_text(data.get("year")),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("detail") or body)
    return str(body)


class RemoteDataService:
    """Catalog, student directory and payment ledger backed by the data service REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteDataService":
        return cls(settings.data_service_url, timeout=settings.data_service_timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- BillingCatalog ---
    async def list_items(self, class_id: str) -> List[BillingItem]:
        response = await self._request("GET", "/billing-types", params={"classId": class_id})
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise NotFoundError(f"Class {class_id} not found")
        rows = self._read_body(response, f"billing items for class {class_id}")
        with _rows_of(f"billing items for class {class_id}"):
            return [_item_from_json(row, class_id) for row in rows or []]

    # --- StudentDirectory ---
    async def get_student(self, student_id: str) -> Student:
        response = await self._request("GET", f"/students/{student_id}")
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise NotFoundError(f"Student {student_id} not found")
        body = self._read_body(response, f"student {student_id}")
        if isinstance(body, dict) and isinstance(body.get("student"), dict):
            body = body["student"]
        if not body:
            raise NotFoundError(f"Student {student_id} not found")
        with _rows_of(f"student {student_id}"):
            return _student_from_json(body)

    # --- PaymentLedger ---
    async def list_payments(self, student_id: str) -> List[PaymentRecord]:
        response = await self._request("GET", f"/payments/student/{student_id}")
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise NotFoundError(f"Student {student_id} not found")
        records = []
        for row in self._read_body(response, f"payments for student {student_id}") or []:
            row_type = (_text(row.get("type")) or "payment").lower()
            if "billingType" in row and row_type not in _PAYMENT_ROW_TYPES:
                continue
            if _to_decimal(row.get("amount")) <= 0:
                logger.warning("Skipping non-positive ledger entry %s for student %s", row.get("id"), student_id)
                continue
            with _rows_of(f"payments for student {student_id}"):
                records.append(_payment_from_json(row, student_id))
        return records

    async def record_payment(self, draft: PaymentDraft) -> PaymentRecord:
        payload = {
            "studentId": draft.student_id,
            "amount": str(draft.amount),
            "billingType": draft.billing_type,
            "paymentMethod": draft.method,
            "paymentReference": draft.reference,
            "description": draft.description,
            "term": draft.term,
            "year": draft.year,
        }
        response = await self._request("POST", "/payments/process", json=payload)
        if response.status_code == status.HTTP_404_NOT_FOUND:
            raise NotFoundError(_error_message(response))
        if response.is_client_error:
            raise PersistenceError(f"Payment rejected: {_error_message(response)}")
        body = self._read_body(response, "payment write")
        row = body.get("record") or body.get("payment") or body
        # The legacy payment model echoes fewer fields; fill the gaps from what was sent.
        row = {
            "billingType": draft.billing_type,
            "amount": str(draft.amount),
            "paymentMethod": draft.method,
            "description": draft.description,
            "term": draft.term,
            "year": draft.year,
            **{k: v for k, v in row.items() if v is not None},
        }
        with _rows_of("payment write"):
            record = _payment_from_json(row, draft.student_id)
        if record.reference is None and draft.reference:
            record = record.model_copy(update={"reference": draft.reference})
        return record

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out: {e}")
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}")
        if response.is_server_error:
            raise NetworkError(f"{method} {path} returned {response.status_code}: {_error_message(response)}")
        return response

    @staticmethod
    def _read_body(response: httpx.Response, what: str) -> Any:
        if response.is_error:
            raise ServiceError(
                f"Data service refused {what}: {_error_message(response)}",
                status.HTTP_502_BAD_GATEWAY,
            )
        try:
            return response.json()
        except ValueError:
            raise ServiceError(f"Malformed response for {what}", status.HTTP_502_BAD_GATEWAY)
