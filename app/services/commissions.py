# Host commission transactions: derivation from confirmed bookings and payment-status lifecycle.
#
# Derivation is an explicit, retryable call made after confirmation. The UNIQUE(booking_id)
# constraint is the backstop that turns a concurrent duplicate into a ConflictError.
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..dates import utc_now
from ..db import translate_lock_timeouts, unit_of_work
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..pricing import Number, to_money
from ..states import CommissionStatus, check_commission_transition

logger = logging.getLogger("nestly.commissions")

# Commission is due this many days after the guest checks out
PAYMENT_DUE_DAYS = 7


def calculate_commission(booking_total: Number, commission_rate: Number) -> Tuple[Decimal, Decimal]:
    """Return (commission_amount, net_amount) for a booking total and a percent rate."""
    total = Decimal(str(booking_total))
    rate = Decimal(str(commission_rate))
    if rate < 0 or rate > 100:
        raise ValidationError("commission rate must be between 0 and 100")
    commission = to_money(total * rate / 100)
    return commission, to_money(total) - commission


def preview_commission(booking_amount: Number, commission_rate: Number, currency: str = "USD") -> Dict[str, Any]:
    amount = Decimal(str(booking_amount))
    if amount <= 0:
        raise ValidationError("booking amount must be greater than 0")
    commission, net = calculate_commission(amount, commission_rate)
    return {
        "booking_amount": to_money(amount),
        "commission_rate": Decimal(str(commission_rate)),
        "commission_amount": commission,
        "host_net_amount": net,
        "currency": currency,
    }


def generate_transaction_reference() -> str:
    # Display/reconciliation handle, not a secret
    return f"CMT-{utc_now():%Y%m%d}-{uuid4().hex[:12].upper()}"


def _load(db: Session, transaction_id: int) -> models.CommissionTransaction:
    tx = db.get(models.CommissionTransaction, transaction_id)
    if tx is None:
        raise NotFoundError("Commission transaction")
    return tx


def _require_owner(tx: models.CommissionTransaction, actor_id: Optional[int]) -> None:
    if actor_id is not None and tx.host_id != actor_id:
        raise AuthorizationError("only the host of record may act on this transaction")


def _move(
    db: Session,
    tx: models.CommissionTransaction,
    target: CommissionStatus,
    changes: Optional[Dict[Any, Any]] = None,
) -> None:
    """Compare-and-set the transaction status; a concurrent change raises ConflictError."""
    check_commission_transition(CommissionStatus(tx.status), target)
    values = {models.CommissionTransaction.status: target.value}
    values.update(changes or {})
    rows = (
        db.query(models.CommissionTransaction)
        .filter(
            models.CommissionTransaction.id == tx.id,
            models.CommissionTransaction.status == tx.status,
        )
        .update(values, synchronize_session=False)
    )
    if rows == 0:
        raise ConflictError("transaction was modified concurrently; reload and retry")


@translate_lock_timeouts
def create_commission(
    db: Session,
    booking_id: int,
    *,
    commission_rate: Number,
    actor_id: Optional[int] = None,
) -> models.CommissionTransaction:
    """
    Derive the platform commission for a confirmed booking.

    Raises:
    - NotFoundError: booking absent
    - AuthorizationError: actor given and not the booking's host
    - ValidationError: booking is not confirmed
    - ConflictError: a commission transaction already exists for the booking
    """
    try:
        with unit_of_work(db):
            booking = db.get(models.Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking")
            if actor_id is not None and booking.host_id != actor_id:
                raise AuthorizationError("only the host of this booking may create its commission")
            if booking.status != "confirmed":
                raise ValidationError("commission can only be created for confirmed bookings")

            existing = (
                db.query(models.CommissionTransaction.id)
                .filter(models.CommissionTransaction.booking_id == booking_id)
                .first()
            )
            if existing is not None:
                raise ConflictError("commission transaction already exists for this booking")

            commission, net = calculate_commission(booking.total_price, commission_rate)
            tx = models.CommissionTransaction(
                booking_id=booking.id,
                listing_id=booking.listing_id,
                host_id=booking.host_id,
                guest_id=booking.guest_id,
                transaction_reference=generate_transaction_reference(),
                booking_total=booking.total_price,
                commission_rate=Decimal(str(commission_rate)),
                commission_amount=commission,
                net_amount=net,
                currency=booking.currency or "USD",
                status=CommissionStatus.PENDING.value,
                payment_due_date=booking.check_out_date + timedelta(days=PAYMENT_DUE_DAYS),
                description=f"Platform commission for booking {booking.id}",
            )
            db.add(tx)
            db.flush()
    except IntegrityError as exc:
        # Lost the insert race on UNIQUE(booking_id)
        raise ConflictError("commission transaction already exists for this booking") from exc

    db.refresh(tx)
    logger.info(
        "commission.created",
        extra={
            "transaction_id": tx.id,
            "booking_id": booking_id,
            "commission_amount": str(tx.commission_amount),
            "reference": tx.transaction_reference,
        },
    )
    return tx


@translate_lock_timeouts
def get_commission(db: Session, transaction_id: int, actor_id: int) -> models.CommissionTransaction:
    tx = _load(db, transaction_id)
    if actor_id not in (tx.host_id, tx.guest_id):
        raise AuthorizationError("you are not authorized to view this transaction")
    return tx


@translate_lock_timeouts
def start_commission_processing(
    db: Session,
    transaction_id: int,
    actor_id: Optional[int] = None,
    payment_provider: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> models.CommissionTransaction:
    """pending -> processing while the payment collaborator settles the charge."""
    tx = _load(db, transaction_id)
    _require_owner(tx, actor_id)
    with unit_of_work(db):
        _move(db, tx, CommissionStatus.PROCESSING, {
            models.CommissionTransaction.payment_provider: payment_provider,
            models.CommissionTransaction.payment_intent_id: payment_intent_id,
        })
    db.refresh(tx)
    logger.info("commission.processing", extra={"transaction_id": tx.id})
    return tx


@translate_lock_timeouts
def pay_commission(
    db: Session,
    transaction_id: int,
    actor_id: int,
    payment_method: str,
    payment_provider: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
) -> models.CommissionTransaction:
    """Owning host marks the commission paid; stamps payment_completed_at."""
    if not payment_method or not payment_method.strip():
        raise ValidationError("payment method is required")
    tx = _load(db, transaction_id)
    _require_owner(tx, actor_id)
    changes: Dict[Any, Any] = {
        models.CommissionTransaction.payment_method: payment_method.strip(),
        models.CommissionTransaction.payment_completed_at: utc_now(),
        models.CommissionTransaction.failure_reason: None,
    }
    if payment_provider:
        changes[models.CommissionTransaction.payment_provider] = payment_provider
    if payment_intent_id:
        changes[models.CommissionTransaction.payment_intent_id] = payment_intent_id
    with unit_of_work(db):
        _move(db, tx, CommissionStatus.COMPLETED, changes)
    db.refresh(tx)
    logger.info("commission.paid", extra={"transaction_id": tx.id, "host_id": actor_id})
    return tx


@translate_lock_timeouts
def fail_commission(
    db: Session,
    transaction_id: int,
    reason: str,
    actor_id: Optional[int] = None,
) -> models.CommissionTransaction:
    """Record a failed payment attempt. Only pending or processing transactions can fail."""
    if not reason or not reason.strip():
        raise ValidationError("a failure reason is required")
    tx = _load(db, transaction_id)
    _require_owner(tx, actor_id)
    with unit_of_work(db):
        _move(db, tx, CommissionStatus.FAILED, {
            models.CommissionTransaction.failure_reason: reason.strip()[:255],
        })
    db.refresh(tx)
    logger.warning("commission.failed", extra={"transaction_id": tx.id, "reason": tx.failure_reason})
    return tx


def _require_cancelled_booking(db: Session, tx: models.CommissionTransaction) -> None:
    booking = db.get(models.Booking, tx.booking_id)
    if booking is None or booking.status != "cancelled":
        raise ValidationError("commission can only be voided for a cancelled booking")


@translate_lock_timeouts
def cancel_commission(db: Session, transaction_id: int, actor_id: Optional[int] = None) -> models.CommissionTransaction:
    """Void an unpaid commission after its booking was cancelled."""
    tx = _load(db, transaction_id)
    _require_owner(tx, actor_id)
    with unit_of_work(db):
        _require_cancelled_booking(db, tx)
        _move(db, tx, CommissionStatus.CANCELLED)
    db.refresh(tx)
    logger.info("commission.cancelled", extra={"transaction_id": tx.id})
    return tx


@translate_lock_timeouts
def refund_commission(db: Session, transaction_id: int, actor_id: Optional[int] = None) -> models.CommissionTransaction:
    """Reverse a paid commission after its booking was cancelled."""
    tx = _load(db, transaction_id)
    _require_owner(tx, actor_id)
    with unit_of_work(db):
        _require_cancelled_booking(db, tx)
        _move(db, tx, CommissionStatus.REFUNDED, {models.CommissionTransaction.refunded_at: utc_now()})
    db.refresh(tx)
    logger.info("commission.refunded", extra={"transaction_id": tx.id})
    return tx


@translate_lock_timeouts
def list_host_commissions(
    db: Session,
    host_id: int,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[models.CommissionTransaction], int]:
    q = db.query(models.CommissionTransaction).filter(models.CommissionTransaction.host_id == host_id)
    if status:
        q = q.filter(models.CommissionTransaction.status == status)
    total = q.count()
    items = (
        q.order_by(models.CommissionTransaction.created_at.desc(), models.CommissionTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


@translate_lock_timeouts
def get_host_commission_summary(db: Session, host_id: int, commission_rate: Number) -> Dict[str, Any]:
    """Totals across a host's commission transactions, grouped by payment status."""
    rows = (
        db.query(
            models.CommissionTransaction.status,
            func.count(models.CommissionTransaction.id),
            func.coalesce(func.sum(models.CommissionTransaction.booking_total), 0),
            func.coalesce(func.sum(models.CommissionTransaction.commission_amount), 0),
            func.coalesce(func.sum(models.CommissionTransaction.net_amount), 0),
        )
        .filter(models.CommissionTransaction.host_id == host_id)
        .group_by(models.CommissionTransaction.status)
        .all()
    )
    zero = Decimal("0.00")
    counts: Dict[str, int] = {}
    gross = commission_total = net = collected = pending = zero
    for status, count, booking_sum, commission_sum, net_sum in rows:
        counts[status] = count
        commission_sum = to_money(commission_sum)
        if status in (CommissionStatus.CANCELLED.value, CommissionStatus.REFUNDED.value):
            continue
        gross += to_money(booking_sum)
        net += to_money(net_sum)
        commission_total += commission_sum
        if status == CommissionStatus.COMPLETED.value:
            collected += commission_sum
        elif status in (CommissionStatus.PENDING.value, CommissionStatus.PROCESSING.value):
            pending += commission_sum
    return {
        "host_id": host_id,
        "transaction_counts": counts,
        "total_gross_earnings": gross,
        "total_commission": commission_total,
        "commission_paid": collected,
        "commission_pending": pending,
        "total_net_earnings": net,
        "commission_rate": Decimal(str(commission_rate)),
    }
