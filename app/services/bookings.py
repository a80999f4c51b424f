# Booking lifecycle service: creation, host response, cancellation and stay progress.
#
# Every write goes through an explicit transaction. Writes that depend on the listing calendar
# (create, confirm) run inside listing_transaction() so the availability read and the write
# are atomic with respect to other workers. Lifecycle changes are compare-and-set updates
# keyed on (id, version, status, stage).
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..availability import blocked_ranges, is_available
from ..cancellation import calculate_refund, parse_policy, refund_percentage
from ..dates import days_until, nights_between, utc_now, utc_today
from ..db import translate_lock_timeouts, unit_of_work
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..locks import listing_transaction
from ..pricing import Number, PriceBreakdown, calculate_pricing
from ..settings import get_settings
from ..states import ACTION_PARTIES, BookingAction, BookingState, Party, next_booking_state
from .directory import get_listing

logger = logging.getLogger("nestly.bookings")

# Reported payment status -> payment statuses it may follow
PAYMENT_MOVES: Dict[str, Tuple[str, ...]] = {
    "completed": ("pending", "failed"),
    "failed": ("pending",),
    "refunded": ("completed",),
}
# Reported payment status -> booking statuses it applies to
PAYMENT_BOOKING_STATUSES: Dict[str, Tuple[str, ...]] = {
    "completed": ("pending", "confirmed"),
    "failed": ("pending", "confirmed"),
    "refunded": ("cancelled",),
}


@dataclass(frozen=True)
class CancellationResult:
    booking: models.Booking
    refund_amount: Decimal
    refund_percentage: int
    days_until_check_in: int


@dataclass(frozen=True)
class PricingPreview:
    listing_id: int
    check_in: date
    check_out: date
    nights: int
    currency: str
    breakdown: PriceBreakdown


def validate_stay(check_in: date, check_out: date, max_nights: Optional[int] = None) -> int:
    """Return the night count for a requested stay or raise ValidationError."""
    if check_in >= check_out:
        raise ValidationError("check-in must be before check-out")
    if check_in <= utc_today():
        raise ValidationError("check-in and check-out must be in the future")
    nights = nights_between(check_in, check_out)
    limit = max_nights if max_nights is not None else get_settings().max_stay_nights
    if nights > limit:
        raise ValidationError(f"stay cannot exceed {limit} nights")
    return nights


def _load(db: Session, booking_id: int) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking")
    return booking


def _parties(booking: models.Booking, actor_id: int) -> FrozenSet[Party]:
    parties = set()
    if booking.guest_id == actor_id:
        parties.add(Party.GUEST)
    if booking.host_id == actor_id:
        parties.add(Party.HOST)
    return frozenset(parties)


def _authorize(booking: models.Booking, actor_id: int, action: BookingAction) -> FrozenSet[Party]:
    parties = _parties(booking, actor_id)
    if not parties:
        raise AuthorizationError("not the guest or host of this booking")
    if not parties & ACTION_PARTIES[action]:
        allowed = " or ".join(sorted(p.value for p in ACTION_PARTIES[action]))
        raise AuthorizationError(f"only the {allowed} of this booking may {action.value.replace('_', '-')}")
    return parties


def _apply(db: Session, booking: models.Booking, target: BookingState, changes: Dict[Any, Any]) -> None:
    """Compare-and-set the booking into `target`; losing a race raises ConflictError."""
    values = {
        models.Booking.status: target.status,
        models.Booking.stage: target.stage,
        models.Booking.version: booking.version + 1,
    }
    values.update(changes)
    rows = (
        db.query(models.Booking)
        .filter(
            models.Booking.id == booking.id,
            models.Booking.version == booking.version,
            models.Booking.status == booking.status,
            models.Booking.stage == booking.stage,
        )
        .update(values, synchronize_session=False)
    )
    if rows == 0:
        raise ConflictError("booking was modified concurrently; reload and retry")


@translate_lock_timeouts
def create_booking(
    db: Session,
    *,
    guest_id: int,
    listing_id: int,
    check_in: date,
    check_out: date,
    guest_count: int = 1,
    special_requests: Optional[str] = None,
    guest_message: Optional[str] = None,
    discount_code: Optional[str] = None,
) -> models.Booking:
    """
    Create a pending booking awaiting the host.

    Raises:
    - ValidationError: bad date range, unpublished listing, guest count out of range
    - NotFoundError: listing absent
    - ConflictError: an occupying booking overlaps the requested dates
    """
    nights = validate_stay(check_in, check_out)
    listing = get_listing(db, listing_id)
    if not listing.is_published:
        raise ValidationError("this listing is not available for booking")
    if guest_count < 1 or guest_count > listing.max_guests:
        raise ValidationError(f"guest count must be between 1 and {listing.max_guests}")

    # Discount codes are recorded but not redeemed by the engine
    pricing = calculate_pricing(listing.base_price_per_night, listing.cleaning_fee, nights, 0)

    with listing_transaction(db, listing_id):
        if not is_available(db, listing_id, check_in, check_out):
            raise ConflictError("listing unavailable for selected dates")
        obj = models.Booking(
            listing_id=listing_id,
            guest_id=guest_id,
            host_id=listing.host_id,
            check_in_date=check_in,
            check_out_date=check_out,
            guest_count=guest_count,
            nights=nights,
            base_total=pricing.base,
            cleaning_fee=pricing.cleaning,
            service_fee=pricing.service,
            discount_amount=pricing.discount,
            discount_code=discount_code,
            total_price=pricing.total,
            currency=listing.currency,
            payment_status="pending",
            special_requests=special_requests,
            guest_message=guest_message,
            version=1,
        )
        obj.state = BookingState.AWAITING_HOST
        db.add(obj)
        db.flush()

    db.refresh(obj)
    logger.info(
        "booking.created",
        extra={
            "booking_id": obj.id,
            "listing_id": listing_id,
            "guest_id": guest_id,
            "nights": nights,
            "total": str(obj.total_price),
        },
    )
    return obj


@translate_lock_timeouts
def get_booking(db: Session, booking_id: int, actor_id: int) -> models.Booking:
    booking = _load(db, booking_id)
    if not _parties(booking, actor_id):
        raise AuthorizationError("you do not have access to this booking")
    return booking


@translate_lock_timeouts
def confirm_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    host_response: Optional[str] = None,
) -> models.Booking:
    """
    Host accepts a pending booking.

    Availability is re-checked under the listing lock: another booking for overlapping dates
    may have been confirmed since this one was requested. Confirmation never creates the
    commission transaction; that is a separate call.
    """
    booking = _load(db, booking_id)
    _authorize(booking, actor_id, BookingAction.CONFIRM)
    # Fail fast on the state guard before taking any lock
    next_booking_state(booking.state, BookingAction.CONFIRM)

    with listing_transaction(db, booking.listing_id):
        db.refresh(booking)
        target = next_booking_state(booking.state, BookingAction.CONFIRM)
        if not is_available(
            db, booking.listing_id, booking.check_in_date, booking.check_out_date, exclude_booking_id=booking.id
        ):
            raise ConflictError("listing unavailable for selected dates")
        _apply(db, booking, target, {
            models.Booking.host_response: host_response,
            models.Booking.host_responded_at: utc_now(),
        })

    db.refresh(booking)
    logger.info("booking.confirmed", extra={"booking_id": booking.id, "host_id": actor_id})
    return booking


@translate_lock_timeouts
def reject_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    host_response: Optional[str] = None,
) -> models.Booking:
    """Host declines a pending booking; the stage stays at awaiting_host."""
    booking = _load(db, booking_id)
    _authorize(booking, actor_id, BookingAction.REJECT)
    with unit_of_work(db):
        target = next_booking_state(booking.state, BookingAction.REJECT)
        _apply(db, booking, target, {
            models.Booking.host_response: host_response,
            models.Booking.host_responded_at: utc_now(),
        })

    db.refresh(booking)
    logger.info("booking.rejected", extra={"booking_id": booking.id, "host_id": actor_id})
    return booking


@translate_lock_timeouts
def cancel_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    reason: Optional[str] = None,
) -> CancellationResult:
    """
    Guest or host cancels a pending or confirmed booking.

    The refund follows the listing's cancellation policy and the days left until check-in.
    Cancelling always succeeds when the state allows it, even with a zero refund.
    """
    booking = _load(db, booking_id)
    parties = _authorize(booking, actor_id, BookingAction.CANCEL)
    listing = get_listing(db, booking.listing_id)

    with unit_of_work(db):
        target = next_booking_state(booking.state, BookingAction.CANCEL)
        days = days_until(booking.check_in_date)
        policy = parse_policy(listing.cancellation_policy)
        percent = refund_percentage(policy, days)
        refund = calculate_refund(policy, days, booking.total_price)
        _apply(db, booking, target, {
            models.Booking.cancelled_by: Party.GUEST.value if Party.GUEST in parties else Party.HOST.value,
            models.Booking.cancellation_reason: reason,
            models.Booking.cancelled_at: utc_now(),
            models.Booking.refund_amount: refund,
        })

    db.refresh(booking)
    logger.info(
        "booking.cancelled",
        extra={
            "booking_id": booking.id,
            "cancelled_by": booking.cancelled_by,
            "days_until_check_in": days,
            "refund_amount": str(refund),
        },
    )
    return CancellationResult(booking=booking, refund_amount=refund, refund_percentage=percent, days_until_check_in=days)


@translate_lock_timeouts
def check_in_booking(db: Session, booking_id: int, actor_id: int) -> models.Booking:
    booking = _load(db, booking_id)
    _authorize(booking, actor_id, BookingAction.CHECK_IN)
    with unit_of_work(db):
        target = next_booking_state(booking.state, BookingAction.CHECK_IN)
        if booking.check_in_date > utc_today():
            raise ValidationError("cannot check in before the check-in date")
        _apply(db, booking, target, {models.Booking.checked_in_at: utc_now()})

    db.refresh(booking)
    logger.info("booking.checked_in", extra={"booking_id": booking.id, "actor_id": actor_id})
    return booking


@translate_lock_timeouts
def check_out_booking(db: Session, booking_id: int, actor_id: int) -> models.Booking:
    booking = _load(db, booking_id)
    _authorize(booking, actor_id, BookingAction.CHECK_OUT)
    with unit_of_work(db):
        target = next_booking_state(booking.state, BookingAction.CHECK_OUT)
        _apply(db, booking, target, {models.Booking.checked_out_at: utc_now()})

    db.refresh(booking)
    logger.info("booking.completed", extra={"booking_id": booking.id, "actor_id": actor_id})
    return booking


@translate_lock_timeouts
def record_booking_payment(
    db: Session,
    booking_id: int,
    payment_status: str,
    payment_intent_id: Optional[str] = None,
    *,
    actor_id: Optional[int] = None,
) -> models.Booking:
    """
    Store the payment collaborator's outcome for a booking. No money moves here.

    actor_id is None for internal callers; otherwise only the host of record may report.

    - completed / failed: booking must be pending or confirmed
    - refunded: booking must be cancelled and its payment completed
    - a failed payment may later complete; completed and refunded are final for that direction

    Raises ValidationError for a booking in the wrong state, ConflictError for a payment
    status that cannot follow the current one (including a concurrent update).
    """
    if payment_status not in PAYMENT_MOVES:
        raise ValidationError(f"payment status must be one of {', '.join(sorted(PAYMENT_MOVES))}")
    booking = _load(db, booking_id)
    if actor_id is not None and Party.HOST not in _parties(booking, actor_id):
        raise AuthorizationError("only the host of this booking may record its payment")

    allowed_booking = PAYMENT_BOOKING_STATUSES[payment_status]
    if booking.status not in allowed_booking:
        raise ValidationError(f"cannot mark payment {payment_status} on a {booking.status} booking")
    if booking.payment_status not in PAYMENT_MOVES[payment_status]:
        raise ConflictError(f"payment is {booking.payment_status}; cannot mark it {payment_status}")

    previous = booking.payment_status
    values: Dict[Any, Any] = {models.Booking.payment_status: payment_status}
    if payment_intent_id:
        values[models.Booking.payment_intent_id] = payment_intent_id
    with unit_of_work(db):
        rows = (
            db.query(models.Booking)
            .filter(
                models.Booking.id == booking.id,
                models.Booking.status == booking.status,
                models.Booking.payment_status == previous,
            )
            .update(values, synchronize_session=False)
        )
        if rows == 0:
            raise ConflictError("booking was modified concurrently; reload and retry")

    db.refresh(booking)
    logger.info(
        "booking.payment_recorded",
        extra={"booking_id": booking.id, "from_status": previous, "payment_status": payment_status},
    )
    return booking


@translate_lock_timeouts
def get_availability(
    db: Session,
    listing_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> Tuple[bool, List[models.Booking]]:
    """Return (available, occupying bookings in the window). Read-only; takes no locks."""
    if check_in >= check_out:
        raise ValidationError("check-in must be before check-out")
    get_listing(db, listing_id)
    available = is_available(db, listing_id, check_in, check_out, exclude_booking_id)
    return available, blocked_ranges(db, listing_id, check_in, check_out)


@translate_lock_timeouts
def preview_pricing(
    db: Session,
    listing_id: int,
    check_in: date,
    check_out: date,
    discount: Number = 0,
) -> PricingPreview:
    nights = validate_stay(check_in, check_out)
    listing = get_listing(db, listing_id)
    breakdown = calculate_pricing(listing.base_price_per_night, listing.cleaning_fee, nights, discount)
    return PricingPreview(
        listing_id=listing.id,
        check_in=check_in,
        check_out=check_out,
        nights=nights,
        currency=listing.currency,
        breakdown=breakdown,
    )


def _paginate(q, limit: int, offset: int) -> Tuple[List[models.Booking], int]:
    total = q.count()
    items = (
        q.order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


@translate_lock_timeouts
def list_guest_bookings(
    db: Session, guest_id: int, status: Optional[str] = None, limit: int = 20, offset: int = 0
) -> Tuple[List[models.Booking], int]:
    q = db.query(models.Booking).filter(models.Booking.guest_id == guest_id)
    if status:
        q = q.filter(models.Booking.status == status)
    return _paginate(q, limit, offset)


@translate_lock_timeouts
def list_host_bookings(
    db: Session, host_id: int, status: Optional[str] = None, limit: int = 20, offset: int = 0
) -> Tuple[List[models.Booking], int]:
    q = db.query(models.Booking).filter(models.Booking.host_id == host_id)
    if status:
        q = q.filter(models.Booking.status == status)
    return _paginate(q, limit, offset)


def _require_listing_owner(db: Session, listing_id: int, host_id: int) -> models.Listing:
    listing = get_listing(db, listing_id)
    if listing.host_id != host_id:
        raise AuthorizationError("you do not own this listing")
    return listing


@translate_lock_timeouts
def list_listing_bookings(
    db: Session, listing_id: int, host_id: int, limit: int = 20, offset: int = 0
) -> Tuple[List[models.Booking], int]:
    """All bookings of one listing, newest first. Only the listing's host may read them."""
    _require_listing_owner(db, listing_id, host_id)
    q = db.query(models.Booking).filter(models.Booking.listing_id == listing_id)
    return _paginate(q, limit, offset)


@translate_lock_timeouts
def list_upcoming_bookings(db: Session, host_id: int, limit: int = 10) -> List[models.Booking]:
    return (
        db.query(models.Booking)
        .filter(
            models.Booking.host_id == host_id,
            models.Booking.status == "confirmed",
            models.Booking.check_in_date >= utc_today(),
        )
        .order_by(models.Booking.check_in_date.asc(), models.Booking.id.asc())
        .limit(limit)
        .all()
    )


@translate_lock_timeouts
def get_listing_booking_stats(db: Session, listing_id: int, host_id: int) -> Dict[str, Any]:
    listing = _require_listing_owner(db, listing_id, host_id)

    rows = (
        db.query(models.Booking.status, func.count(models.Booking.id), func.coalesce(func.sum(models.Booking.nights), 0))
        .filter(models.Booking.listing_id == listing_id)
        .group_by(models.Booking.status)
        .all()
    )
    by_status = {status: (count, nights) for status, count, nights in rows}
    completed_totals = [
        Decimal(str(v))
        for (v,) in db.query(models.Booking.total_price)
        .filter(models.Booking.listing_id == listing_id, models.Booking.status == "completed")
        .all()
    ]
    revenue = sum(completed_totals, Decimal("0.00"))
    average = (revenue / len(completed_totals)).quantize(Decimal("0.01")) if completed_totals else Decimal("0.00")
    booked = ("confirmed", "completed")
    return {
        "listing_id": listing_id,
        "total_bookings": sum(count for count, _ in by_status.values()),
        "confirmed_bookings": sum(by_status.get(s, (0, 0))[0] for s in booked),
        "booked_nights": int(sum(by_status.get(s, (0, 0))[1] for s in booked)),
        "total_revenue": revenue,
        "average_booking_value": average,
        "currency": listing.currency,
    }
