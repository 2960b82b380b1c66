"""Error types surfaced to clients in the Anthropic error envelope."""

from typing import Optional

from .models.claude import ClaudeError, ClaudeErrorResponse


class GatewayError(Exception):
    """Base class for every error the gateway reports to a client."""

    error_type = "api_error"
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_claude_error(self) -> ClaudeErrorResponse:
        return ClaudeErrorResponse(
            error=ClaudeError(type=self.error_type, message=self.message)
        )


class InvalidRequestError(GatewayError):
    error_type = "invalid_request_error"
    status_code = 400


class AuthenticationError(GatewayError):
    error_type = "authentication_error"
    status_code = 401


class BillingError(GatewayError):
    error_type = "billing_error"
    status_code = 402


class NotFoundError(GatewayError):
    error_type = "not_found_error"
    status_code = 404


class RateLimitError(GatewayError):
    error_type = "rate_limit_error"
    status_code = 429


class APIError(GatewayError):
    error_type = "api_error"
    status_code = 502


_RATE_LIMIT_MARKERS = ("ratelimitexceeded", "rate limit", "rate_limit", "too many requests")
_AUTH_MARKERS = ("401", "unauthorized", "invalid api key", "invalid_api_key", "authentication")
_BILLING_MARKERS = ("insufficient_quota", "quota", "billing")
_NOT_FOUND_MARKERS = ("model not found", "model_not_found", "does not exist")


def classify_upstream_error(status_code: Optional[int], body: str = "") -> GatewayError:
    """Map an upstream failure to the matching Anthropic error kind.

    The status code wins when it is decisive; otherwise the body text is
    matched against known upstream error codes and phrases.
    """
    if status_code is not None:
        message = f"Upstream API request failed: {status_code} - {body}"
    else:
        message = f"Upstream API request failed: {body}"
    lowered = body.lower()

    if status_code == 401:
        return AuthenticationError(message)
    if status_code == 402:
        return BillingError(message)
    if status_code == 404:
        return NotFoundError(message)
    if status_code == 429:
        return RateLimitError(message)

    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return RateLimitError(message)
    if any(marker in lowered for marker in _BILLING_MARKERS):
        return BillingError(message)
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthenticationError(message)
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return NotFoundError(message)
    return APIError(message)
