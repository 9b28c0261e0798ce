"""
Duo request signatures.

Three base-string layouts are supported. V2 signs form parameters, V4 signs a
JSON body and V5 signs both plus any ``X-Duo-*`` extension headers. The base
string is HMAC-SHA512 signed with the secret key and the Authorization token is
``base64(ikey:hex_digest)``.
"""

import abc
import base64
import datetime
import enum
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .canonical import canonicalize
from .constants import DUO_HEADER_PREFIX, HEADER_DATE, HEADER_DUO_DATE
from .exceptions import InvalidRequestError, SigningError

logger = logging.getLogger(__name__)

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

Headers = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


class SignatureVersion(enum.IntEnum):
    """Signature scheme. V5 is the current default."""

    V2 = 2
    V4 = 4
    V5 = 5


@dataclass(frozen=True)
class Credentials:
    """Integration key, secret key and API host of one client."""

    integration_key: str
    secret_key: str = field(repr=False)
    host: str


def format_date(date: datetime.datetime) -> str:
    """
    Format a date the way the Duo verifier expects it.

    Only the whole-hour part of the UTC offset is emitted, so a +05:30 zone is
    sent as ``+0500``. The verifier computes the same value. Naive datetimes are
    taken as local time.
    """
    if date.tzinfo is None:
        date = date.astimezone()
    offset = date.utcoffset() or datetime.timedelta(0)
    hours = int(offset.total_seconds() / 3600)
    sign = "-" if hours < 0 else "+"
    zone = (sign + str(abs(hours)).zfill(2)).ljust(5, "0")
    return "%s, %02d %s %04d %02d:%02d:%02d %s" % (
        _WEEKDAYS[date.weekday()], date.day, _MONTHS[date.month - 1],
        date.year, date.hour, date.minute, date.second, zone)


def serialize_body(body: Any) -> str:
    """Serialize a JSON body. Strings are taken as already serialized."""
    if body is None:
        return ""
    if isinstance(body, bytes):
        return body.decode("utf-8")
    if isinstance(body, str):
        return body
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def sha512_hex(data: str) -> str:
    return hashlib.sha512(data.encode("utf-8")).hexdigest()


def hmac_sha512_hex(secret_key: str, data: str) -> str:
    try:
        return hmac.new(secret_key.encode("utf-8"), data.encode("utf-8"),
                        hashlib.sha512).hexdigest()
    except (TypeError, ValueError) as e:
        raise SigningError(f"HMAC computation failed: {e}") from e


def canonicalize_headers(headers: Optional[Headers]) -> str:
    """
    Build the v5 extension-header string.

    Only ``x-duo-*`` headers count, the date header excluded. Names are
    lower-cased, the first occurrence of a name wins and caller order is kept.
    """
    if not headers:
        return ""
    items = headers.items() if hasattr(headers, "items") else headers
    seen = set()
    parts = []
    for name, value in items:
        if not name or not value or "\x00" in name or "\x00" in value:
            continue
        lowered = name.lower()
        if not lowered.startswith(DUO_HEADER_PREFIX) or lowered == HEADER_DUO_DATE.lower():
            continue
        if lowered in seen:
            continue
        seen.add(lowered)
        parts.append(f"{lowered}\x00{value}")
    return "\x00".join(parts)


@dataclass(frozen=True)
class CanonicalRequest:
    """Per-call input of the base string. Never cached across calls."""

    method: str
    path: str
    canonical_query_string: str
    body_hash: str
    extra_header_hash: str
    date_string: str

    @classmethod
    def build(cls, method: str, path: str, date_string: str,
              params: Optional[Mapping[str, Any]] = None,
              body: Any = None,
              headers: Optional[Headers] = None) -> "CanonicalRequest":
        return cls(
            method=method.upper(),
            path=path,
            canonical_query_string=canonicalize(params),
            body_hash=sha512_hex(serialize_body(body)),
            extra_header_hash=sha512_hex(canonicalize_headers(headers)),
            date_string=date_string,
        )


class SignatureStrategy(abc.ABC):
    """One base-string layout."""

    version: SignatureVersion
    accepts_params = True
    accepts_body = True

    def date_headers(self, date_string: str) -> Dict[str, str]:
        return {HEADER_DUO_DATE: date_string}

    def check(self, params: Optional[Mapping[str, Any]], body: Any) -> None:
        if params and not self.accepts_params:
            raise InvalidRequestError(
                f"signature v{int(self.version)} cannot sign form parameters")
        if body is not None and not self.accepts_body:
            raise InvalidRequestError(
                f"signature v{int(self.version)} cannot sign a JSON body")

    def _head(self, host: str, request: CanonicalRequest) -> str:
        return "\n".join([request.date_string, request.method, host.lower(), request.path])

    @abc.abstractmethod
    def base_string(self, host: str, request: CanonicalRequest) -> str:
        """Return the exact text to HMAC-sign."""


class SignatureV2(SignatureStrategy):
    version = SignatureVersion.V2
    accepts_body = False

    def date_headers(self, date_string: str) -> Dict[str, str]:
        return {HEADER_DATE: date_string, HEADER_DUO_DATE: date_string}

    def base_string(self, host: str, request: CanonicalRequest) -> str:
        return "\n".join([self._head(host, request), request.canonical_query_string])


class SignatureV4(SignatureStrategy):
    version = SignatureVersion.V4
    accepts_params = False

    def base_string(self, host: str, request: CanonicalRequest) -> str:
        return "\n".join([self._head(host, request), "", request.body_hash])


class SignatureV5(SignatureStrategy):
    version = SignatureVersion.V5

    def base_string(self, host: str, request: CanonicalRequest) -> str:
        return "\n".join([
            self._head(host, request),
            request.canonical_query_string,
            request.body_hash,
            request.extra_header_hash,
        ])


_STRATEGIES = {
    SignatureVersion.V2: SignatureV2(),
    SignatureVersion.V4: SignatureV4(),
    SignatureVersion.V5: SignatureV5(),
}


def strategy_for(version) -> SignatureStrategy:
    try:
        return _STRATEGIES[SignatureVersion(version)]
    except (KeyError, ValueError):
        raise InvalidRequestError(f"unsupported signature version: {version!r}") from None


def sign(credentials: Credentials, method: str, path: str, date: str,
         version=SignatureVersion.V5,
         params: Optional[Mapping[str, Any]] = None,
         body: Any = None,
         headers: Optional[Headers] = None) -> str:
    """
    Sign a request.

    Args:
        credentials: Client credentials
        method: HTTP method, any case
        path: Absolute request path, used as given
        date: The exact date string that is also sent in the date header
        version: Signature version
        params: Form or query parameters
        body: JSON body (object or pre-serialized string)
        headers: Request headers; only x-duo-* ones are signed (v5)

    Returns:
        base64("ikey:hex_hmac") token

    Raises:
        InvalidRequestError: If the version cannot sign this request
        SigningError: If the HMAC cannot be computed
    """
    strategy = strategy_for(version)
    strategy.check(params, body)
    request = CanonicalRequest.build(method, path, date, params, body, headers)
    canon = strategy.base_string(credentials.host, request)
    logger.debug("Signing %s %s with signature v%d", request.method, path, int(strategy.version))
    digest = hmac_sha512_hex(credentials.secret_key, canon)
    auth = f"{credentials.integration_key}:{digest}"
    return base64.b64encode(auth.encode("utf-8")).decode("ascii")


def authorization_header(credentials: Credentials, method: str, path: str, date: str,
                         version=SignatureVersion.V5, params=None, body=None,
                         headers=None) -> str:
    """Return the full ``Basic ...`` Authorization header value."""
    return "Basic " + sign(credentials, method, path, date, version, params, body, headers)
