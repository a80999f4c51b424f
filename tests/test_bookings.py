# Booking API test suite: creation and pricing, host response, cancellation refunds,
# stay progress, the confirm-time availability re-check, and authorization checks.
from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient

from app import models
from app.dates import utc_today
from app.db import SessionLocal
from conftest import auth_headers, days_ahead


def _error(r) -> str:
    return r.json()["detail"]["error"]


def _set_dates(booking_id: int, check_in: date, check_out: date | None = None) -> None:
    # Force calendar state directly in the DB to simulate time passing
    with SessionLocal() as db:
        b = db.get(models.Booking, booking_id)
        b.check_in_date = check_in
        if check_out is not None:
            b.check_out_date = check_out
        db.commit()


def _insert_booking(listing: dict, guest_id: int, check_in: date, check_out: date, status: str, stage: str) -> int:
    with SessionLocal() as db:
        b = models.Booking(
            listing_id=listing["id"],
            guest_id=guest_id,
            host_id=listing["host_id"],
            check_in_date=check_in,
            check_out_date=check_out,
            guest_count=1,
            nights=(check_out - check_in).days,
            status=status,
            stage=stage,
            base_total=Decimal("100.00"),
            cleaning_fee=Decimal("0.00"),
            service_fee=Decimal("3.00"),
            discount_amount=Decimal("0.00"),
            total_price=Decimal("103.00"),
            currency="USD",
            payment_status="pending",
            version=1,
        )
        db.add(b)
        db.commit()
        return b.id


# Happy path: a new booking is pending/awaiting_host with an itemized price
def test_create_booking_pending_with_pricing(api, host, guest, listing):
    guest_token, guest_user = guest
    r = api.book(guest_token, listing["id"], days_ahead(10), days_ahead(12), guest_count=2,
                 special_requests="  late arrival  ", discount_code="SUMMER")
    assert r.status_code == 201, r.text
    b = r.json()
    assert b["status"] == "pending"
    assert b["stage"] == "awaiting_host"
    assert b["guest_id"] == guest_user["id"]
    assert b["host_id"] == host[1]["id"]
    assert b["nights"] == 2
    assert Decimal(b["base_total"]) == Decimal("200.00")
    assert Decimal(b["cleaning_fee"]) == Decimal("25.00")
    assert Decimal(b["service_fee"]) == Decimal("6.00")
    assert Decimal(b["discount_amount"]) == Decimal("0")
    assert Decimal(b["total_price"]) == Decimal("231.00")
    assert b["payment_status"] == "pending"
    assert b["special_requests"] == "late arrival"
    assert b["discount_code"] == "SUMMER"
    assert b["version"] == 1


def test_create_booking_rejects_bad_dates(api, guest, listing):
    token = guest[0]
    # check-out before check-in
    r = api.book(token, listing["id"], days_ahead(5), days_ahead(3))
    assert r.status_code == 400 and _error(r) == "validation_error"
    # zero-night stay
    r = api.book(token, listing["id"], days_ahead(5), days_ahead(5))
    assert r.status_code == 400
    # check-in today is not in the future
    r = api.book(token, listing["id"], utc_today(), days_ahead(2))
    assert r.status_code == 400
    assert "future" in r.json()["detail"]["message"]
    # past dates
    r = api.book(token, listing["id"], days_ahead(-5), days_ahead(-2))
    assert r.status_code == 400


def test_create_booking_guest_count_and_listing_checks(api, host, guest, listing):
    token = guest[0]
    r = api.book(token, listing["id"], days_ahead(5), days_ahead(7), guest_count=5)
    assert r.status_code == 400
    assert "guest count" in r.json()["detail"]["message"]

    r = api.book(token, 9999, days_ahead(5), days_ahead(7))
    assert r.status_code == 404 and _error(r) == "not_found"

    hidden = api.create_listing(host[0], title="Draft", is_published=False)
    r = api.book(token, hidden["id"], days_ahead(5), days_ahead(7))
    assert r.status_code == 400


def test_stay_longer_than_limit_rejected(api, guest, listing):
    r = api.book(guest[0], listing["id"], days_ahead(1), days_ahead(1 + 366))
    assert r.status_code == 400
    assert "nights" in r.json()["detail"]["message"]


# Pending bookings hold the calendar; half-open ranges allow back-to-back stays
def test_overlap_conflict_and_adjacent_ranges(api, guest, listing):
    token = guest[0]
    assert api.book(token, listing["id"], days_ahead(10), days_ahead(13)).status_code == 201

    r = api.book(token, listing["id"], days_ahead(12), days_ahead(14))
    assert r.status_code == 409 and _error(r) == "conflict"

    # Fully containing range
    r = api.book(token, listing["id"], days_ahead(9), days_ahead(20))
    assert r.status_code == 409

    # Check-in on the previous check-out day is fine, as is check-out on the next check-in day
    assert api.book(token, listing["id"], days_ahead(13), days_ahead(15)).status_code == 201
    assert api.book(token, listing["id"], days_ahead(8), days_ahead(10)).status_code == 201


def test_cancelled_booking_frees_dates(api, guest, listing):
    token = guest[0]
    b = api.book(token, listing["id"], days_ahead(10), days_ahead(12)).json()
    assert api.action(token, b["id"], "cancel").status_code == 200
    assert api.book(token, listing["id"], days_ahead(10), days_ahead(12)).status_code == 201


def test_host_confirms_and_guest_cannot(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()

    r = api.action(guest[0], b["id"], "confirm")
    assert r.status_code == 403 and _error(r) == "forbidden"

    r = api.action(host[0], b["id"], "confirm", {"host_response": "Welcome!"})
    assert r.status_code == 200, r.text
    data = r.json()
    assert (data["status"], data["stage"]) == ("confirmed", "confirmed")
    assert data["host_response"] == "Welcome!"
    assert data["host_responded_at"] is not None
    assert data["version"] == 2

    # Second confirm is a wrong-stage request
    r = api.action(host[0], b["id"], "confirm")
    assert r.status_code == 400
    assert r.json()["detail"]["message"] == "booking already confirmed"


def test_reject_then_terminal(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    r = api.action(host[0], b["id"], "reject", {"host_response": "Not available"})
    assert r.status_code == 200
    assert (r.json()["status"], r.json()["stage"]) == ("cancelled", "awaiting_host")

    r = api.action(host[0], b["id"], "confirm")
    assert r.status_code == 409
    r = api.action(guest[0], b["id"], "cancel")
    assert r.status_code == 409


def test_outsider_cannot_touch_booking(api, guest, listing):
    other_token, _ = api.signup("stranger@example.com", "both")
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()

    r = api.client.get(f"/api/v1/bookings/{b['id']}", headers=auth_headers(other_token))
    assert r.status_code == 403
    r = api.action(other_token, b["id"], "cancel")
    assert r.status_code == 403
    r = api.client.get("/api/v1/bookings/424242", headers=auth_headers(other_token))
    assert r.status_code == 404


def test_requires_authentication(client: TestClient, listing):
    r = client.post(
        "/api/v1/bookings",
        json={"listing_id": listing["id"], "check_in_date": "2099-01-01", "check_out_date": "2099-01-03"},
    )
    assert r.status_code == 401


# Cancellation refunds follow the listing policy and days until check-in
def test_guest_cancel_moderate_full_refund(api, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    r = api.action(guest[0], b["id"], "cancel", {"reason": "change of plans"})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["refund_percentage"] == 100
    assert Decimal(data["refund_amount"]) == Decimal("231.00")
    assert data["days_until_check_in"] == 10
    booking = data["booking"]
    assert (booking["status"], booking["stage"]) == ("cancelled", "awaiting_host")
    assert booking["cancelled_by"] == "guest"
    assert booking["cancellation_reason"] == "change of plans"
    assert Decimal(booking["refund_amount"]) == Decimal("231.00")


def test_host_cancel_confirmed_moderate_half_refund(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(3), days_ahead(5)).json()
    api.action(host[0], b["id"], "confirm")
    r = api.action(host[0], b["id"], "cancel")
    assert r.status_code == 200
    data = r.json()
    assert data["refund_percentage"] == 50
    assert Decimal(data["refund_amount"]) == Decimal("115.50")
    assert data["booking"]["cancelled_by"] == "host"
    assert (data["booking"]["status"], data["booking"]["stage"]) == ("cancelled", "confirmed")


def test_super_strict_no_refund_inside_window(api, host, guest):
    listing = api.create_listing(host[0], title="Cabin", policy="super_strict")
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    r = api.action(guest[0], b["id"], "cancel")
    assert r.status_code == 200
    assert r.json()["refund_percentage"] == 0
    assert Decimal(r.json()["refund_amount"]) == Decimal("0")


# Confirmation re-checks availability: a sibling confirmed meanwhile wins
def test_confirm_rechecks_availability(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    _insert_booking(listing, guest[1]["id"], days_ahead(11), days_ahead(14), "confirmed", "confirmed")

    r = api.action(host[0], b["id"], "confirm")
    assert r.status_code == 409
    assert r.json()["detail"]["message"] == "listing unavailable for selected dates"

    r = api.client.get(f"/api/v1/bookings/{b['id']}", headers=auth_headers(guest[0]))
    assert (r.json()["status"], r.json()["stage"]) == ("pending", "awaiting_host")


def test_check_in_and_check_out_flow(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(3), days_ahead(5)).json()

    # Not confirmed yet
    r = api.action(guest[0], b["id"], "check-in")
    assert r.status_code == 400

    api.action(host[0], b["id"], "confirm")

    # Too early
    r = api.action(guest[0], b["id"], "check-in")
    assert r.status_code == 400
    assert "before the check-in date" in r.json()["detail"]["message"]

    # Checking out a stay that never checked in
    r = api.action(guest[0], b["id"], "check-out")
    assert r.status_code == 400

    _set_dates(b["id"], utc_today())
    r = api.action(guest[0], b["id"], "check-in")
    assert r.status_code == 200, r.text
    assert (r.json()["status"], r.json()["stage"]) == ("confirmed", "checked_in")
    assert r.json()["checked_in_at"] is not None

    r = api.action(host[0], b["id"], "check-out")
    assert r.status_code == 200
    assert (r.json()["status"], r.json()["stage"]) == ("completed", "checked_out")

    # Completed stays are terminal
    r = api.action(guest[0], b["id"], "cancel")
    assert r.status_code == 409


def test_cancel_after_check_in_refunds_nothing(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(3), days_ahead(6)).json()
    api.action(host[0], b["id"], "confirm")
    _set_dates(b["id"], days_ahead(-1))
    assert api.action(guest[0], b["id"], "check-in").status_code == 200

    r = api.action(guest[0], b["id"], "cancel")
    assert r.status_code == 200
    data = r.json()
    assert data["refund_percentage"] == 0
    assert data["days_until_check_in"] == -1
    assert (data["booking"]["status"], data["booking"]["stage"]) == ("cancelled", "checked_in")


def test_guest_and_host_listings(api, host, guest, listing):
    token = guest[0]
    first = api.book(token, listing["id"], days_ahead(10), days_ahead(12)).json()
    api.book(token, listing["id"], days_ahead(20), days_ahead(22))
    api.action(host[0], first["id"], "confirm")

    r = api.client.get("/api/v1/bookings/me", headers=auth_headers(token))
    assert r.status_code == 200
    assert r.json()["total"] == 2

    r = api.client.get("/api/v1/bookings/me?status=confirmed", headers=auth_headers(token))
    assert [b["id"] for b in r.json()["items"]] == [first["id"]]

    r = api.client.get("/api/v1/bookings/host", headers=auth_headers(host[0]))
    assert r.json()["total"] == 2

    # Guests are not hosts
    r = api.client.get("/api/v1/bookings/host", headers=auth_headers(token))
    assert r.status_code == 403

    r = api.client.get("/api/v1/bookings/upcoming", headers=auth_headers(host[0]))
    assert [b["id"] for b in r.json()] == [first["id"]]


def test_listing_stats(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(3), days_ahead(5)).json()
    api.action(host[0], b["id"], "confirm")
    _set_dates(b["id"], utc_today())
    api.action(guest[0], b["id"], "check-in")
    api.action(guest[0], b["id"], "check-out")
    api.book(guest[0], listing["id"], days_ahead(30), days_ahead(33))

    r = api.client.get(f"/api/v1/listings/{listing['id']}/stats", headers=auth_headers(host[0]))
    assert r.status_code == 200, r.text
    stats = r.json()
    assert stats["total_bookings"] == 2
    assert stats["confirmed_bookings"] == 1
    assert stats["booked_nights"] == 2
    assert Decimal(stats["total_revenue"]) == Decimal("231.00")

    other_host, _ = api.signup("other-host@example.com", "host")
    r = api.client.get(f"/api/v1/listings/{listing['id']}/stats", headers=auth_headers(other_host))
    assert r.status_code == 403


def _report_payment(api, token: str, booking_id: int, payment_status: str, **extra):
    return api.client.post(
        f"/api/v1/bookings/{booking_id}/payment",
        headers=auth_headers(token),
        json={"payment_status": payment_status, **extra},
    )


def test_guest_cannot_record_payment(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    r = _report_payment(api, guest[0], b["id"], "completed")
    assert r.status_code == 403

    other_host, _ = api.signup("other-host@example.com", "host")
    r = _report_payment(api, other_host, b["id"], "completed")
    assert r.status_code == 403

    r = api.client.get(f"/api/v1/bookings/{b['id']}", headers=auth_headers(guest[0]))
    assert r.json()["payment_status"] == "pending"


def test_record_payment_follows_booking_state(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()

    # Nothing was paid and the booking is live
    r = _report_payment(api, host[0], b["id"], "refunded")
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "validation_error"

    r = _report_payment(api, host[0], b["id"], "completed", payment_intent_id="pi_123")
    assert r.status_code == 200, r.text
    assert r.json()["payment_status"] == "completed"

    r = _report_payment(api, host[0], b["id"], "failed")
    assert r.status_code == 409

    r = _report_payment(api, host[0], b["id"], "settled")
    assert r.status_code == 422

    assert api.action(guest[0], b["id"], "cancel").status_code == 200
    r = _report_payment(api, host[0], b["id"], "completed")
    assert r.status_code == 400

    r = _report_payment(api, host[0], b["id"], "refunded")
    assert r.status_code == 200
    assert r.json()["payment_status"] == "refunded"
    assert r.json()["status"] == "cancelled"

    r = _report_payment(api, host[0], b["id"], "refunded")
    assert r.status_code == 409


def test_refund_needs_completed_payment(api, host, guest, listing):
    b = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    assert api.action(guest[0], b["id"], "cancel").status_code == 200
    r = _report_payment(api, host[0], b["id"], "refunded")
    assert r.status_code == 409


def test_listing_bookings_for_owner_only(api, host, guest, listing):
    first = api.book(guest[0], listing["id"], days_ahead(10), days_ahead(12)).json()
    second = api.book(guest[0], listing["id"], days_ahead(20), days_ahead(22)).json()
    path = f"/api/v1/bookings/listing/{listing['id']}"

    r = api.client.get(path, headers=auth_headers(host[0]))
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["total"] == 2
    assert [b["id"] for b in data["items"]] == [second["id"], first["id"]]

    r = api.client.get(path, headers=auth_headers(host[0]), params={"limit": 1, "offset": 1})
    assert r.json()["total"] == 2
    assert [b["id"] for b in r.json()["items"]] == [first["id"]]

    other_host, _ = api.signup("other-host@example.com", "host")
    assert api.client.get(path, headers=auth_headers(other_host)).status_code == 403
    assert api.client.get(path, headers=auth_headers(guest[0])).status_code == 403
    r = api.client.get("/api/v1/bookings/listing/9999", headers=auth_headers(host[0]))
    assert r.status_code == 404


def test_pricing_preview(api, listing):
    r = api.client.post(
        "/api/v1/pricing/preview",
        json={
            "listing_id": listing["id"],
            "check_in_date": days_ahead(5).isoformat(),
            "check_out_date": days_ahead(8).isoformat(),
            "discount_amount": "50.00",
        },
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["nights"] == 3
    assert Decimal(data["pricing"]["base_price"]) == Decimal("300.00")
    assert Decimal(data["pricing"]["service_fee"]) == Decimal("9.00")
    assert Decimal(data["pricing"]["total_price"]) == Decimal("284.00")
