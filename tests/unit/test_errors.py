"""
Unit tests for upstream error classification and the error envelope.
"""

import pytest

from claude_gateway.errors import (
    APIError,
    AuthenticationError,
    BillingError,
    InvalidRequestError,
    NotFoundError,
    RateLimitError,
    classify_upstream_error,
)


@pytest.mark.parametrize("status, body, expected", [
    (401, "bad key", AuthenticationError),
    (402, "pay up", BillingError),
    (404, "nothing here", NotFoundError),
    (429, "slow down", RateLimitError),
    (500, '{"code": "RateLimitExceeded"}', RateLimitError),
    (403, '{"error": {"code": "insufficient_quota"}}', BillingError),
    (403, "Invalid API key provided", AuthenticationError),
    (400, "The model gpt-9 does not exist", NotFoundError),
    (400, "bad request", APIError),
    (500, "internal error", APIError),
    (None, "Too Many Requests", RateLimitError),
    (None, "stream broke", APIError),
])
def test_classify_upstream_error(status, body, expected):
    error = classify_upstream_error(status, body)
    assert type(error) is expected
    assert body in error.message


def test_status_codes_and_types():
    assert (InvalidRequestError("x").status_code, InvalidRequestError.error_type) == (400, "invalid_request_error")
    assert (AuthenticationError("x").status_code, AuthenticationError.error_type) == (401, "authentication_error")
    assert (BillingError("x").status_code, BillingError.error_type) == (402, "billing_error")
    assert (NotFoundError("x").status_code, NotFoundError.error_type) == (404, "not_found_error")
    assert (RateLimitError("x").status_code, RateLimitError.error_type) == (429, "rate_limit_error")
    assert (APIError("x").status_code, APIError.error_type) == (502, "api_error")


def test_status_code_override():
    assert APIError("x", status_code=503).status_code == 503


def test_message_includes_status():
    error = classify_upstream_error(500, "oops")
    assert error.message == "Upstream API request failed: 500 - oops"


def test_error_envelope():
    envelope = RateLimitError("slow down").to_claude_error().model_dump()
    assert envelope["type"] == "error"
    assert envelope["error"] == {"type": "rate_limit_error", "message": "slow down"}
