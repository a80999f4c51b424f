# Commission endpoints: derive the platform commission for a confirmed booking and track its payment status.
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import commissions as commission_service
from ..settings import Settings, get_settings
from .auth import get_current_user, require_host

router = APIRouter()


@router.post(
    "/bookings/{booking_id}/commission",
    response_model=schemas.CommissionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_commission(
    booking_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    settings: Settings = Depends(get_settings),
):
    """
    Derive the commission for a confirmed booking owned by the caller.

    Idempotent by outcome: a second call answers 409 and leaves the single existing row untouched.
    """
    return commission_service.create_commission(
        db, booking_id, commission_rate=settings.commission_rate, actor_id=user.id
    )


@router.get("/commissions/rate", response_model=schemas.CommissionRateResponse)
def commission_rate(settings: Settings = Depends(get_settings)):
    return schemas.CommissionRateResponse(
        commission_rate=settings.commission_rate,
        description=f"Platform commission of {settings.commission_rate}% on each confirmed booking total",
    )


@router.post("/commissions/preview", response_model=schemas.CommissionPreviewResponse)
def preview(payload: schemas.CommissionPreviewRequest, settings: Settings = Depends(get_settings)):
    rate = payload.commission_rate if payload.commission_rate is not None else settings.commission_rate
    return commission_service.preview_commission(payload.booking_amount, rate, payload.currency.upper())


@router.get("/commissions/host", response_model=schemas.CommissionList)
def list_host_commissions(
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    status_filter: Optional[schemas.CommissionStatusName] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    items, total = commission_service.list_host_commissions(db, user.id, status_filter, limit, offset)
    return schemas.CommissionList(items=items, total=total, limit=limit, offset=offset)


@router.get("/commissions/summary", response_model=schemas.CommissionSummary)
def host_summary(
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    settings: Settings = Depends(get_settings),
):
    return commission_service.get_host_commission_summary(db, user.id, settings.commission_rate)


@router.get("/commissions/{transaction_id}", response_model=schemas.CommissionRead)
def read_commission(transaction_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return commission_service.get_commission(db, transaction_id, user.id)


@router.post(
    "/commissions/{transaction_id}/process",
    response_model=schemas.CommissionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def process_commission(
    transaction_id: int,
    payload: Optional[schemas.CommissionProcessRequest] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
):
    return commission_service.start_commission_processing(
        db,
        transaction_id,
        actor_id=user.id,
        payment_provider=payload.payment_provider if payload else None,
        payment_intent_id=payload.payment_intent_id if payload else None,
    )


@router.post(
    "/commissions/{transaction_id}/pay",
    response_model=schemas.CommissionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def pay_commission(
    transaction_id: int,
    payload: schemas.CommissionPayRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
):
    return commission_service.pay_commission(
        db,
        transaction_id,
        user.id,
        payload.payment_method,
        payment_provider=payload.payment_provider,
        payment_intent_id=payload.payment_intent_id,
    )


@router.post(
    "/commissions/{transaction_id}/fail",
    response_model=schemas.CommissionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def fail_commission(
    transaction_id: int,
    payload: schemas.CommissionFailRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
):
    return commission_service.fail_commission(db, transaction_id, payload.reason, actor_id=user.id)


@router.post(
    "/commissions/{transaction_id}/cancel",
    response_model=schemas.CommissionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def cancel_commission(transaction_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_host)):
    return commission_service.cancel_commission(db, transaction_id, actor_id=user.id)


@router.post(
    "/commissions/{transaction_id}/refund",
    response_model=schemas.CommissionRead,
    dependencies=[Depends(rate_limit("write"))],
)
def refund_commission(transaction_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_host)):
    return commission_service.refund_commission(db, transaction_id, actor_id=user.id)
