# Redis connection handling: opt-in flag, fail-open connect, health reporting.
import redis

from app import redis_client


class _Unreachable:
    calls = 0

    @classmethod
    def from_url(cls, url, **kwargs):
        cls.calls += 1
        return cls()

    def ping(self):
        raise redis.ConnectionError("connection refused")


def test_disabled_redis_yields_no_client(monkeypatch):
    monkeypatch.setenv("REDIS_ENABLED", "false")
    monkeypatch.setattr(redis_client, "_connection", redis_client._Connection())
    assert redis_client.get_redis() is None
    assert redis_client.redis_state() == "disabled"


def test_unreachable_redis_fails_open_once(monkeypatch):
    monkeypatch.setenv("REDIS_ENABLED", "true")
    monkeypatch.setattr(redis_client, "_connection", redis_client._Connection())
    monkeypatch.setattr(redis_client.redis, "Redis", _Unreachable)
    _Unreachable.calls = 0

    assert redis_client.redis_state() == "idle"
    assert redis_client.get_redis() is None
    assert redis_client.get_redis() is None
    assert _Unreachable.calls == 1
    assert redis_client.redis_state() == "unavailable"


def test_healthz_reports_redis_state(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "redis": "disabled"}
