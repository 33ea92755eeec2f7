"""Error Hierarchy — HTTP status mapping and response shapes."""

import pytest

from trustgate.core.errors import (
    AuthError, AuthFailure, BadChannelIdError, ConflictError, DatabaseError,
    ErrorCategory, ForbiddenError, NoPreKeysAvailableError, RateLimitedError,
    ReplayDetectedError, ResourceNotFoundError,
)


@pytest.mark.parametrize("exc,status", [
    (AuthError(AuthFailure.EXPIRED), 401),
    (BadChannelIdError(), 400),
    (ForbiddenError(), 403),
    (ResourceNotFoundError("PrekeyBundle", "x"), 404),
    (NoPreKeysAvailableError("owner"), 410),
    (ConflictError("lost race"), 409),
    (ReplayDetectedError("chat"), 409),
    (RateLimitedError(1500), 429),
    (DatabaseError("down", "execute"), 503),
])
def test_http_status(exc, status):
    assert exc.http_status == status


@pytest.mark.parametrize("reason", list(AuthFailure))
def test_auth_error_body_never_reveals_reason(reason):
    body = AuthError(reason).to_response()
    assert reason.value not in str(body)
    assert body["error"]["code"] == "UNAUTHORIZED"


def test_validation_error_names_field():
    body = BadChannelIdError().to_response()
    assert body["error"]["details"] == [
        {"field": "chatId", "message": "chatId must be a canonical UUID string"},
    ]


def test_rate_limited_carries_retry_after():
    exc = RateLimitedError(1500)
    assert exc.to_response()["error"]["context"]["retry_after_ms"] == 1500
    assert exc.to_ws_event()["data"]["retryable"] is True


def test_conflict_is_retryable_forbidden_is_not():
    assert ConflictError("x").to_ws_event()["data"]["retryable"] is True
    assert ForbiddenError().to_ws_event()["data"]["retryable"] is False
    assert ConflictError("x").category == ErrorCategory.CONFLICT
