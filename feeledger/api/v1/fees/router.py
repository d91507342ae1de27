"""Fees router: fee structure, payment summary, refresh, payment submission, cache control."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from feeledger.api.dependencies import get_coordinator, get_gateway
from feeledger.billing.coordinator import FeeCoordinator
from feeledger.billing.events import ManualRefreshRequested, StudentUpdated
from feeledger.billing.gateway import PaymentGateway
from feeledger.core.enums import CacheScope, ResidenceType
from feeledger.core.exceptions import ServiceError
from feeledger.core.schemas import FeeStructureSnapshot, PaymentRecord, PaymentSummary

from .schemas import PaymentCreate, StudentUpdatedRequest

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee structure ---
@router.get("/structure/{class_id}", response_model=FeeStructureSnapshot)
async def get_fee_structure(
    class_id: str,
    residence: Optional[ResidenceType] = Query(None, description="Day or Boarding; Day when omitted"),
    coordinator: FeeCoordinator = Depends(get_coordinator),
) -> FeeStructureSnapshot:
    try:
        return await coordinator.get_fee_structure(class_id, residence)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Payment summary ---
@router.get("/summary/{student_id}", response_model=PaymentSummary)
async def get_payment_summary(
    student_id: str,
    coordinator: FeeCoordinator = Depends(get_coordinator),
) -> PaymentSummary:
    try:
        return await coordinator.get_payment_summary(student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/summary/{student_id}/refresh", response_model=PaymentSummary)
async def refresh_payment_summary(
    student_id: str,
    coordinator: FeeCoordinator = Depends(get_coordinator),
) -> PaymentSummary:
    try:
        return await coordinator.dispatch(ManualRefreshRequested(student_id=student_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Payment ---
@router.post(
    "/payments",
    response_model=PaymentRecord,
    status_code=status.HTTP_201_CREATED,
)
async def submit_payment(
    payload: PaymentCreate,
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentRecord:
    try:
        return await gateway.submit(payload.to_input())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Cache control ---
@router.post("/students/{student_id}/updated", status_code=status.HTTP_204_NO_CONTENT)
async def student_updated(
    student_id: str,
    payload: StudentUpdatedRequest,
    coordinator: FeeCoordinator = Depends(get_coordinator),
) -> Response:
    await coordinator.dispatch(
        StudentUpdated(student_id=student_id, new_residence=payload.residence_type)
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/cache/{scope}/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_cache(
    scope: CacheScope,
    key: str,
    coordinator: FeeCoordinator = Depends(get_coordinator),
) -> Response:
    coordinator.invalidate(scope, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
