"""initial schema: users, listings, bookings, commission_transactions

Revision ID: 3c9e1d7a5b20
Revises:
Create Date: 2026-10-18 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c9e1d7a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)

# Must stay in sync with BookingState
_STATE_PAIRS = (
    ("pending", "awaiting_host"),
    ("confirmed", "confirmed"),
    ("confirmed", "checked_in"),
    ("completed", "checked_out"),
    ("cancelled", "awaiting_host"),
    ("cancelled", "confirmed"),
    ("cancelled", "checked_in"),
    ("dispute", "checked_in"),
    ("dispute", "checked_out"),
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("user_type", sa.String(length=10), nullable=False),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_user_type", "users", ["user_type"])

    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("base_price_per_night", MONEY, nullable=False),
        sa.Column("cleaning_fee", MONEY, nullable=False),
        sa.Column("max_guests", sa.Integer(), nullable=False),
        sa.Column("cancellation_policy", sa.String(length=20), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_listings_id", "listings", ["id"])
    op.create_index("ix_listings_host_id", "listings", ["host_id"])

    state_check = " OR ".join(f"(status = '{s}' AND stage = '{g}')" for s, g in _STATE_PAIRS)
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("guest_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("check_out_date", sa.Date(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("stage", sa.String(length=20), nullable=False),
        sa.Column("base_total", MONEY, nullable=False),
        sa.Column("cleaning_fee", MONEY, nullable=False),
        sa.Column("service_fee", MONEY, nullable=False),
        sa.Column("discount_amount", MONEY, nullable=False),
        sa.Column("discount_code", sa.String(length=50), nullable=True),
        sa.Column("total_price", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("guest_message", sa.Text(), nullable=True),
        sa.Column("host_response", sa.Text(), nullable=True),
        sa.Column("host_responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=10), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", MONEY, nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("check_in_date < check_out_date", name="ck_bookings_date_order"),
        sa.CheckConstraint("total_price >= 0", name="ck_bookings_total_non_negative"),
        sa.CheckConstraint("guest_count >= 1", name="ck_bookings_guest_count"),
        sa.CheckConstraint(f"({state_check})", name="ck_bookings_state_pair"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'refunded', 'failed')",
            name="ck_bookings_payment_status",
        ),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_listing_id", "bookings", ["listing_id"])
    op.create_index("ix_bookings_guest_id", "bookings", ["guest_id"])
    op.create_index("ix_bookings_host_id", "bookings", ["host_id"])
    op.create_index("ix_bookings_payment_intent_id", "bookings", ["payment_intent_id"])
    op.create_index("ix_bookings_listing_dates", "bookings", ["listing_id", "check_in_date", "check_out_date"])
    op.create_index("ix_bookings_listing_status", "bookings", ["listing_id", "status"])
    op.create_index("ix_bookings_host_status", "bookings", ["host_id", "status"])

    op.create_table(
        "commission_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("guest_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("transaction_reference", sa.String(length=40), nullable=False),
        sa.Column("booking_total", MONEY, nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_amount", MONEY, nullable=False),
        sa.Column("net_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_due_date", sa.Date(), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_provider", sa.String(length=50), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("payment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", name="uq_commission_transactions_booking_id"),
        sa.UniqueConstraint("transaction_reference", name="uq_commission_transactions_reference"),
        sa.CheckConstraint("commission_amount >= 0", name="ck_commission_amount_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'refunded', 'cancelled')",
            name="ck_commission_status",
        ),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_commission_transactions_id", "commission_transactions", ["id"])
    op.create_index("ix_commission_transactions_listing_id", "commission_transactions", ["listing_id"])
    op.create_index("ix_commission_transactions_host_id", "commission_transactions", ["host_id"])
    op.create_index("ix_commission_transactions_guest_id", "commission_transactions", ["guest_id"])
    op.create_index("ix_commission_transactions_host_status", "commission_transactions", ["host_id", "status"])


def downgrade() -> None:
    op.drop_table("commission_transactions")
    op.drop_table("bookings")
    op.drop_table("listings")
    op.drop_table("users")
