# Booking endpoints: create/confirm/reject/cancel, stay progress, calendar availability and listings of bookings.
# Handlers stay thin; the booking service owns locking, state guards and error semantics.
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import bookings as booking_service
from .auth import get_current_user, require_host

router = APIRouter()


@router.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """
    Request a stay. The booking starts pending and awaits the host.

    - 400 on invalid dates, guest count, or an unpublished listing
    - 404 when the listing does not exist
    - 409 when an occupying booking overlaps the dates
    - 429 when the caller spent its write budget for the window
    """
    return booking_service.create_booking(
        db,
        guest_id=user.id,
        listing_id=payload.listing_id,
        check_in=payload.check_in_date,
        check_out=payload.check_out_date,
        guest_count=payload.guest_count,
        special_requests=payload.special_requests,
        guest_message=payload.guest_message,
        discount_code=payload.discount_code,
    )


@router.get("/bookings/me", response_model=schemas.BookingList)
def list_my_bookings(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    status_filter: Optional[schemas.BookingStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Bookings made by the caller as a guest, newest first."""
    items, total = booking_service.list_guest_bookings(db, user.id, status_filter, limit, offset)
    return schemas.BookingList(items=items, total=total, limit=limit, offset=offset)


@router.get("/bookings/host", response_model=schemas.BookingList)
def list_host_bookings(
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    status_filter: Optional[schemas.BookingStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Bookings across the caller's listings, newest first."""
    items, total = booking_service.list_host_bookings(db, user.id, status_filter, limit, offset)
    return schemas.BookingList(items=items, total=total, limit=limit, offset=offset)


@router.get("/bookings/upcoming", response_model=List[schemas.BookingRead])
def list_upcoming_bookings(
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    limit: int = Query(default=10, ge=1, le=50),
):
    return booking_service.list_upcoming_bookings(db, user.id, limit)


@router.get("/bookings/listing/{listing_id}", response_model=schemas.BookingList)
def list_listing_bookings(
    listing_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    """Bookings for one of the caller's listings, newest first. 403 for someone else's listing."""
    items, total = booking_service.list_listing_bookings(db, listing_id, user.id, limit, offset)
    return schemas.BookingList(items=items, total=total, limit=limit, offset=offset)


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def read_booking(booking_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return booking_service.get_booking(db, booking_id, user.id)


@router.post(
    "/bookings/{booking_id}/confirm",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def confirm_booking(
    booking_id: int,
    payload: Optional[schemas.HostResponse] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Host accepts a pending booking. 409 if the dates were taken since it was requested."""
    note = payload.host_response if payload else None
    return booking_service.confirm_booking(db, booking_id, user.id, host_response=note)


@router.post(
    "/bookings/{booking_id}/reject",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def reject_booking(
    booking_id: int,
    payload: Optional[schemas.HostResponse] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    note = payload.host_response if payload else None
    return booking_service.reject_booking(db, booking_id, user.id, host_response=note)


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=schemas.CancellationResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def cancel_booking(
    booking_id: int,
    payload: Optional[schemas.CancelRequest] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Guest or host cancels; the response carries the refund owed under the listing's policy."""
    result = booking_service.cancel_booking(db, booking_id, user.id, reason=payload.reason if payload else None)
    return schemas.CancellationResponse(
        booking=schemas.BookingRead.model_validate(result.booking),
        refund_amount=result.refund_amount,
        refund_percentage=result.refund_percentage,
        days_until_check_in=result.days_until_check_in,
    )


@router.post(
    "/bookings/{booking_id}/check-in",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def check_in(booking_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return booking_service.check_in_booking(db, booking_id, user.id)


@router.post(
    "/bookings/{booking_id}/check-out",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def check_out(booking_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return booking_service.check_out_booking(db, booking_id, user.id)


@router.post("/bookings/{booking_id}/payment", response_model=schemas.BookingRead)
def record_payment(
    booking_id: int,
    payload: schemas.BookingPaymentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_host),
):
    """
    Host records the payment collaborator's outcome for one of their bookings.

    - 403 for guests and for hosts of other listings
    - 400 when the booking's status does not fit the outcome (e.g. refunded on a live booking)
    - 409 when the payment status cannot follow the current one
    """
    return booking_service.record_booking_payment(
        db, booking_id, payload.payment_status, payload.payment_intent_id, actor_id=user.id
    )


@router.get("/listings/{listing_id}/availability", response_model=schemas.AvailabilityResponse)
def listing_availability(
    listing_id: int,
    check_in: date = Query(...),
    check_out: date = Query(...),
    db: Session = Depends(get_db),
):
    available, blocked = booking_service.get_availability(db, listing_id, check_in, check_out)
    return schemas.AvailabilityResponse(
        listing_id=listing_id,
        check_in_date=check_in,
        check_out_date=check_out,
        available=available,
        blocked=[
            schemas.BlockedRange(
                booking_id=b.id,
                check_in_date=b.check_in_date,
                check_out_date=b.check_out_date,
                status=b.status,
            )
            for b in blocked
        ],
    )


@router.get("/listings/{listing_id}/stats", response_model=schemas.ListingBookingStats)
def listing_stats(listing_id: int, db: Session = Depends(get_db), user: models.User = Depends(require_host)):
    return booking_service.get_listing_booking_stats(db, listing_id, user.id)


@router.post("/pricing/preview", response_model=schemas.PricingPreviewResponse)
def pricing_preview(payload: schemas.PricingPreviewRequest, db: Session = Depends(get_db)):
    preview = booking_service.preview_pricing(
        db, payload.listing_id, payload.check_in_date, payload.check_out_date, payload.discount_amount
    )
    b = preview.breakdown
    return schemas.PricingPreviewResponse(
        listing_id=preview.listing_id,
        check_in_date=preview.check_in,
        check_out_date=preview.check_out,
        nights=preview.nights,
        currency=preview.currency,
        pricing=schemas.PriceBreakdownRead(
            base_price=b.base,
            cleaning_fee=b.cleaning,
            service_fee=b.service,
            discount_amount=b.discount,
            total_price=b.total,
        ),
    )
