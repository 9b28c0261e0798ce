"""
Custom exceptions for the Duo HMAC client library.
"""


class DuoClientError(Exception):
    """Base exception for Duo client errors."""
    pass


class ConfigurationError(DuoClientError):
    """Raised when client configuration is invalid."""
    pass


class InvalidRequestError(DuoClientError, ValueError):
    """Raised when a request cannot be expressed with the chosen signature version."""
    pass


class SigningError(DuoClientError):
    """Raised when the HMAC signature cannot be computed."""
    pass


class TransportError(DuoClientError):
    """Raised when no HTTP response was received at all."""
    pass


class CertificateBundleError(DuoClientError):
    """Raised when the bundled root certificates cannot be loaded."""
    pass


class DuoHttpError(DuoClientError):
    """Base class for errors tied to a received HTTP response."""

    def __init__(self, http_status, message):
        super().__init__(message)
        self.http_status = http_status


class RateLimitExhausted(DuoHttpError):
    """Raised when the server kept answering 429 past the backoff cap."""

    def __init__(self, http_status=429, attempts=None):
        message = f"Rate limited with HTTP Status {http_status}"
        if attempts is not None:
            message += f" after {attempts} attempts"
        super().__init__(http_status, message)
        self.attempts = attempts


class ApiError(DuoHttpError):
    """Raised when the response envelope reports stat FAIL."""

    def __init__(self, code, http_status, api_message, api_message_detail):
        super().__init__(
            http_status,
            f"Duo API Error {code}: '{api_message}' ('{api_message_detail}')"
        )
        self.code = code
        self.api_message = api_message
        self.api_message_detail = api_message_detail


class BadResponseError(DuoHttpError):
    """Raised when the response body is not a well-formed envelope."""

    def __init__(self, http_status, inner=None):
        inner_message = "(null)" if inner is None else f"'{inner}'"
        super().__init__(
            http_status,
            f"Got error {inner_message} with HTTP Status {http_status}"
        )
        self.inner = inner
