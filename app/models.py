# SQLAlchemy ORM models for the marketplace tables (users, listings, bookings, commission transactions).
# Keep business logic out of models; lifecycle rules live in states.py and the services package.
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base
from .states import BookingState, LEGAL_STATE_PAIRS

# Money columns: two decimal places, plenty of headroom for realistic totals
Money = Numeric(12, 2)


def _legal_pairs_sql() -> str:
    pairs = " OR ".join(f"(status = '{status}' AND stage = '{stage}')" for status, stage in LEGAL_STATE_PAIRS)
    return f"({pairs})"


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Marketplace account.

    user_type:
    - guest: books stays
    - host: publishes listings and owes commission on confirmed stays
    - both: either role
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    user_type = Column(String(10), nullable=False, index=True, default="guest")


class Listing(Base, TimestampMixin):
    """Rental listing. Owned by the catalog; the booking engine only reads it."""
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    base_price_per_night = Column(Money, nullable=False)
    cleaning_fee = Column(Money, nullable=False, default=0)
    max_guests = Column(Integer, nullable=False, default=1)
    cancellation_policy = Column(String(20), nullable=False, default="moderate")
    currency = Column(String(3), nullable=False, default="USD")
    is_published = Column(Boolean, nullable=False, default=True)


class Booking(Base, TimestampMixin):
    """Reservation of a listing for the half-open date range [check_in_date, check_out_date).

    `status` and `stage` are only legal in the combinations enumerated by BookingState;
    the check constraint mirrors that table. Rows are never deleted; cancellation is a state.

    'version' is bumped on every transition for compare-and-set updates.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Denormalized from the listing at creation time
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=False, default=1)
    nights = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    stage = Column(String(20), nullable=False, default="awaiting_host")

    # Pricing breakdown captured at creation
    base_total = Column(Money, nullable=False)
    cleaning_fee = Column(Money, nullable=False)
    service_fee = Column(Money, nullable=False)
    discount_amount = Column(Money, nullable=False, default=0)
    discount_code = Column(String(50), nullable=True)
    total_price = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    payment_status = Column(String(20), nullable=False, default="pending")
    payment_intent_id = Column(String(255), nullable=True, index=True)

    special_requests = Column(Text, nullable=True)
    guest_message = Column(Text, nullable=True)
    host_response = Column(Text, nullable=True)
    host_responded_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_by = Column(String(10), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Money, nullable=True)

    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    # Indexed access patterns: overlap scans per listing, host/guest dashboards by status
    __table_args__ = (
        Index("ix_bookings_listing_dates", "listing_id", "check_in_date", "check_out_date"),
        Index("ix_bookings_listing_status", "listing_id", "status"),
        Index("ix_bookings_host_status", "host_id", "status"),
        CheckConstraint("check_in_date < check_out_date", name="ck_bookings_date_order"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_non_negative"),
        CheckConstraint("guest_count >= 1", name="ck_bookings_guest_count"),
        CheckConstraint(_legal_pairs_sql(), name="ck_bookings_state_pair"),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'refunded', 'failed')",
            name="ck_bookings_payment_status",
        ),
    )

    @property
    def state(self) -> BookingState:
        return BookingState.from_columns(self.status, self.stage)

    @state.setter
    def state(self, value: BookingState) -> None:
        self.status, self.stage = value.value


class CommissionTransaction(Base, TimestampMixin):
    """Platform commission owed by the host for one confirmed booking.

    At most one row per booking (unique booking_id). Payment status moves independently
    of the booking's own lifecycle.
    """
    __tablename__ = "commission_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_reference = Column(String(40), nullable=False, unique=True)
    booking_total = Column(Money, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(Money, nullable=False)
    net_amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending")
    payment_due_date = Column(Date, nullable=True)
    description = Column(String(255), nullable=True)

    payment_method = Column(String(50), nullable=True)
    payment_provider = Column(String(50), nullable=True)
    payment_intent_id = Column(String(255), nullable=True)
    failure_reason = Column(String(255), nullable=True)
    payment_completed_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_commission_transactions_booking_id"),
        Index("ix_commission_transactions_host_status", "host_id", "status"),
        CheckConstraint("commission_amount >= 0", name="ck_commission_amount_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'refunded', 'cancelled')",
            name="ck_commission_status",
        ),
    )
