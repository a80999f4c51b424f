# Availability oracle: is a listing free for [check_in, check_out)?
#
# Callers that write afterwards must evaluate this inside listing_transaction() so the
# read and the write share one lock scope.
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Query, Session

from . import models
from .states import OCCUPYING_STATUSES


def _overlapping(
    db: Session,
    listing_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> Query:
    """
    Bookings on the listing that hold the calendar and intersect [check_in, check_out).

    Two half-open ranges overlap iff existing.check_in < check_out AND check_in < existing.check_out.
    Cancelled, completed and disputed bookings never block.
    """
    q = db.query(models.Booking).filter(
        models.Booking.listing_id == listing_id,
        models.Booking.status.in_(OCCUPYING_STATUSES),
        models.Booking.check_in_date < check_out,
        models.Booking.check_out_date > check_in,
    )
    if exclude_booking_id is not None:
        q = q.filter(models.Booking.id != exclude_booking_id)
    return q


def is_available(
    db: Session,
    listing_id: int,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    hit = (
        _overlapping(db, listing_id, check_in, check_out, exclude_booking_id)
        .with_entities(models.Booking.id)
        .first()
    )
    return hit is None


def blocked_ranges(db: Session, listing_id: int, start: date, end: date) -> List[models.Booking]:
    """Occupying bookings intersecting [start, end), ordered by arrival; for calendar display."""
    return (
        _overlapping(db, listing_id, start, end)
        .order_by(models.Booking.check_in_date.asc(), models.Booking.id.asc())
        .all()
    )
