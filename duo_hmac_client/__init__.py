"""
Duo HMAC Client Library

A Python client library that signs requests for the Duo APIs, pins TLS
connections to Duo's root certificates and backs off on rate limiting.

Example usage:
    from duo_hmac_client import DuoClient

    client = DuoClient("ikey", "skey", "api-xxxxxxxx.duosecurity.com")
    users = client.get("/admin/v1/users")
"""

from .canonical import canonicalize
from .certs import (
    CertificateValidator,
    ChainElement,
    ChainStatus,
    PolicyErrors,
    RootCertificateSet,
    validate,
)
from .client import ApiResult, DuoClient, format_user_agent
from .exceptions import (
    DuoClientError,
    ConfigurationError,
    InvalidRequestError,
    SigningError,
    TransportError,
    CertificateBundleError,
    DuoHttpError,
    RateLimitExhausted,
    ApiError,
    BadResponseError
)
from .response import PagingInfo, parse_envelope
from .signing import (
    CanonicalRequest,
    Credentials,
    SignatureVersion,
    authorization_header,
    format_date,
    sign,
)
from .transport import BackoffPolicy, PinnedHTTPAdapter, RetryingTransport

__version__ = "1.0.0"
__author__ = "Duo HMAC Client Contributors"
__all__ = [
    "DuoClient",
    "ApiResult",
    "format_user_agent",
    "canonicalize",
    "sign",
    "authorization_header",
    "format_date",
    "CanonicalRequest",
    "Credentials",
    "SignatureVersion",
    "CertificateValidator",
    "ChainElement",
    "ChainStatus",
    "PolicyErrors",
    "RootCertificateSet",
    "validate",
    "BackoffPolicy",
    "PinnedHTTPAdapter",
    "RetryingTransport",
    "PagingInfo",
    "parse_envelope",
    "DuoClientError",
    "ConfigurationError",
    "InvalidRequestError",
    "SigningError",
    "TransportError",
    "CertificateBundleError",
    "DuoHttpError",
    "RateLimitExhausted",
    "ApiError",
    "BadResponseError"
]
