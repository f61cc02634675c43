import pytest
from fastapi import HTTPException

from app import rate_limiter
from app.rate_limiter import (
    check_memory_rate_limit,
    check_rate_limit,
    cleanup_expired_cache,
    enforce_rate_limit,
)


def test_fixed_window_counts_down():
    assert check_rate_limit("test:counter", 3, 60)[:2] == (True, 2)
    assert check_rate_limit("test:counter", 3, 60)[:2] == (True, 1)
    assert check_rate_limit("test:counter", 3, 60)[:2] == (True, 0)
    allowed, remaining, _ = check_rate_limit("test:counter", 3, 60)
    assert allowed is False
    assert remaining == 0


def test_keys_are_independent():
    check_rate_limit("test:a", 1, 60)
    assert check_rate_limit("test:a", 1, 60)[0] is False
    assert check_rate_limit("test:b", 1, 60)[0] is True


def test_window_resets(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(rate_limiter.time, "time", lambda: now[0])

    assert check_memory_rate_limit("test:reset", 1, 60)[0] is True
    assert check_memory_rate_limit("test:reset", 1, 60)[0] is False

    now[0] += 61
    assert check_memory_rate_limit("test:reset", 1, 60)[0] is True


def test_cleanup_removes_expired_windows(monkeypatch):
    monkeypatch.setattr(rate_limiter, "last_cleanup_time", 0.0)
    rate_limiter.memory_cache["test:stale"] = {"count": 1, "reset_time": 10.0}
    rate_limiter.memory_cache["test:fresh"] = {"count": 1, "reset_time": 10_000.0}

    cleanup_expired_cache(now=1000.0)

    assert "test:stale" not in rate_limiter.memory_cache
    assert "test:fresh" in rate_limiter.memory_cache


def test_enforce_raises_429_with_retry_after():
    enforce_rate_limit("test:enforce", 1, 60)
    with pytest.raises(HTTPException) as exc_info:
        enforce_rate_limit("test:enforce", 1, 60)

    assert exc_info.value.status_code == 429
    assert exc_info.value.detail == "Too many requests. Please try again later."
    assert 1 <= int(exc_info.value.headers["Retry-After"]) <= 60


def test_public_sign_endpoint_is_rate_limited(client):
    token = "0" * 64
    for _ in range(3):
        response = client.post(
            f"/contracts/sign/{token}",
            json={"signer_name": "Anna", "signature_image": "A" * 120},
        )
        assert response.status_code == 404

    response = client.post(
        f"/contracts/sign/{token}",
        json={"signer_name": "Anna", "signature_image": "A" * 120},
    )
    assert response.status_code == 429
    assert response.json() == {"error": "Too many requests. Please try again later."}
    assert "retry-after" in response.headers
