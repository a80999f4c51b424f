# Pytest configuration for backend API tests.
# Forces a local SQLite DB, disables Redis, and wires JWT secrets for deterministic runs.
import os
from datetime import date, timedelta
from typing import Iterator, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, predictable JWT secret
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NESTLY_JWT_SECRET", "test-secret")

import sys
# Ensure the repo root is on sys.path so 'app' resolves when running pytest from anywhere
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.main import app  # noqa: E402
from app.db import Base, engine  # noqa: E402
from app.dates import utc_today  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test.

    Simple but effective for this small suite; avoids transactional complexity.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """
    FastAPI TestClient bound to the application for HTTP-level tests.
    """
    with TestClient(app) as c:
        yield c


def days_ahead(n: int) -> date:
    return utc_today() + timedelta(days=n)


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class Api:
    """Thin helpers over the HTTP surface so tests read as scenarios."""

    def __init__(self, client: TestClient) -> None:
        self.client = client

    def signup(self, email: str, user_type: str = "guest", password: str = "changeme123") -> Tuple[str, dict]:
        r = self.client.post("/auth/signup", json={"email": email, "password": password, "user_type": user_type})
        assert r.status_code == 201, r.text
        data = r.json()
        return data["access_token"], data["user"]

    def create_listing(
        self,
        token: str,
        title: str = "Sea View Loft",
        price: str = "100.00",
        cleaning_fee: str = "25.00",
        max_guests: int = 4,
        policy: str = "moderate",
        is_published: bool = True,
    ) -> dict:
        r = self.client.post(
            "/api/v1/listings",
            headers=auth_headers(token),
            json={
                "title": title,
                "base_price_per_night": price,
                "cleaning_fee": cleaning_fee,
                "max_guests": max_guests,
                "cancellation_policy": policy,
                "is_published": is_published,
            },
        )
        assert r.status_code == 201, r.text
        return r.json()

    def book(
        self,
        token: str,
        listing_id: int,
        check_in: date,
        check_out: date,
        guest_count: int = 1,
        **extra,
    ):
        payload = {
            "listing_id": listing_id,
            "check_in_date": check_in.isoformat(),
            "check_out_date": check_out.isoformat(),
            "guest_count": guest_count,
        }
        payload.update(extra)
        return self.client.post("/api/v1/bookings", headers=auth_headers(token), json=payload)

    def action(self, token: str, booking_id: int, name: str, body: Optional[dict] = None):
        return self.client.post(
            f"/api/v1/bookings/{booking_id}/{name}",
            headers=auth_headers(token),
            json=body,
        )


@pytest.fixture()
def api(client: TestClient) -> Api:
    return Api(client)


@pytest.fixture()
def host(api: Api) -> Tuple[str, dict]:
    return api.signup("host@example.com", "host")


@pytest.fixture()
def guest(api: Api) -> Tuple[str, dict]:
    return api.signup("guest@example.com", "guest")


@pytest.fixture()
def listing(api: Api, host) -> dict:
    return api.create_listing(host[0])
