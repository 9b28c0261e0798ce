"""
Duo API client.

Signs every call with the Duo HMAC scheme, pins TLS to known root
certificates and backs off when the API answers 429.
"""

import datetime
import logging
import os
import platform
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import requests

from .canonical import canonicalize
from .certs import CertificateValidator, RootCertificateSet
from .constants import (
    BODY_METHODS,
    CONTENT_TYPE_FORM,
    CONTENT_TYPE_JSON,
    DEFAULT_AGENT,
    DEFAULT_CONFIG,
    DEFAULT_ENVIRONMENT,
    ENVIRONMENT_VARIABLE,
    HEADER_AUTHORIZATION,
    HEADER_CONTENT_TYPE,
    HEADER_USER_AGENT,
    RATE_LIMIT_HTTP_CODE,
)
from .exceptions import (
    ConfigurationError,
    DuoClientError,
    RateLimitExhausted,
    SigningError,
    TransportError,
)
from .response import PagingInfo, parse_envelope
from .signing import (
    Credentials,
    SignatureVersion,
    authorization_header,
    format_date,
    serialize_body,
    strategy_for,
)
from .transport import PinnedHTTPAdapter, RetryingTransport

logger = logging.getLogger(__name__)


def format_user_agent(product_name: str) -> str:
    """
    Format a User-Agent with operating system and Python version.

    Args:
        product_name: e.g. "FooClient/1.0"
    """
    return "%s (%s %s; Python %s)" % (
        product_name, platform.system(), platform.release(), platform.python_version())


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class ApiResult:
    """
    Outcome of one API call.

    ``error`` is set when no usable response came back: a signing or network
    failure (``status`` is None) or a rate limit that outlasted the backoff.
    """

    status: Optional[int]
    body: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    error: Optional[DuoClientError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "ApiResult":
        if self.error is not None:
            raise self.error
        return self


class DuoClient:
    """
    Client for making signed requests to a Duo API host.

    Certificate validation defaults to pinning the bundled Duo root
    certificates. See :meth:`use_custom_root_certificates` and
    :meth:`disable_ssl_certificate_validation`.
    """

    def __init__(self, ikey: str, skey: str, host: str,
                 signature_version=SignatureVersion.V5,
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 sleep: Optional[Callable[[int], None]] = None,
                 rng=None,
                 session: Optional[requests.Session] = None,
                 **config):
        """
        Initialize Duo client.

        Args:
            ikey: Integration key
            skey: Secret key (never transmitted)
            host: API hostname, e.g. api-xxxxxxxx.duosecurity.com
            signature_version: Default signature version for calls
            clock: Returns the current time used to date requests
            sleep: Sleeps for the given milliseconds between rate-limit retries
            rng: Jitter source with a ``randint(a, b)`` method
            session: requests session to send through
            **config: Configuration options (timeout, url_scheme, user_agent, environment)
        """
        self.credentials = Credentials(ikey, skey, host)
        self.signature_version = SignatureVersion(signature_version)
        self.clock = clock or _utc_now

        # Merge default config with user overrides
        self.config = {**DEFAULT_CONFIG, **config}
        if self.config['environment'] is None:
            self.config['environment'] = os.environ.get(ENVIRONMENT_VARIABLE, DEFAULT_ENVIRONMENT)

        # Validate configuration
        self._validate_config()

        self.user_agent = self.config['user_agent'] or format_user_agent(DEFAULT_AGENT)
        self.session = session or requests.Session()
        self.transport = RetryingTransport(self.session, sleep=sleep, rng=rng)

        self._ssl_validation_disabled = False
        self._require_certificate = False
        self._custom_roots: Optional[RootCertificateSet] = None
        self._mount_adapter()

    def _validate_config(self):
        """Validate client configuration."""
        if not self.credentials.integration_key:
            raise ConfigurationError("ikey cannot be empty")

        if not self.credentials.secret_key:
            raise ConfigurationError("skey cannot be empty")

        if not self.credentials.host:
            raise ConfigurationError("host cannot be empty")

        if self.config['url_scheme'] not in ('https', 'http'):
            raise ConfigurationError("url_scheme must be 'https' or 'http'")

        timeout = self.config['timeout']
        if timeout is not None and timeout <= 0:
            raise ConfigurationError("timeout must be positive")

    @property
    def host(self) -> str:
        return self.credentials.host

    def disable_ssl_certificate_validation(self, require_certificate: bool = False) -> "DuoClient":
        """
        Turn off certificate validation for this client.

        THIS SHOULD NEVER BE USED IN A PRODUCTION ENVIRONMENT; it is refused
        when the configured environment is ``production``.
        """
        if self._custom_roots is not None:
            raise ConfigurationError(
                "custom root certificates are configured; they cannot be combined "
                "with disabled certificate validation")
        # Raises before any state changes in production
        CertificateValidator.disabled(self.config['environment'], require_certificate)
        self._ssl_validation_disabled = True
        self._require_certificate = require_certificate
        self.session.verify = False
        self._mount_adapter()
        return self

    def use_custom_root_certificates(self, roots) -> "DuoClient":
        """Pin to the given root certificates instead of the bundled Duo roots."""
        if self._ssl_validation_disabled:
            raise ConfigurationError(
                "certificate validation is disabled; custom root certificates would be ignored")
        if not isinstance(roots, RootCertificateSet):
            roots = RootCertificateSet.from_certificates(roots)
        self._custom_roots = roots
        self._mount_adapter()
        return self

    def _certificate_validator(self) -> CertificateValidator:
        if self._ssl_validation_disabled:
            return CertificateValidator.disabled(self.config['environment'], self._require_certificate)
        if self._custom_roots is not None:
            return CertificateValidator.pinned(self._custom_roots)
        return CertificateValidator.bundled()

    def _mount_adapter(self):
        self.session.mount("https://", PinnedHTTPAdapter(self._certificate_validator()))

    def sign_request(self, method: str, path: str, params=None, json=None,
                     headers=None, date: Optional[datetime.datetime] = None,
                     signature_version=None) -> Dict[str, str]:
        """
        Build the authentication headers for a call.

        Returns:
            Authorization header plus the date header(s) of the signature version
        """
        version = self.signature_version if signature_version is None else signature_version
        strategy = strategy_for(version)
        date_string = format_date(date or self.clock())
        auth = authorization_header(self.credentials, method, path, date_string,
                                    strategy.version, params, json, headers)
        signed = {HEADER_AUTHORIZATION: auth}
        signed.update(strategy.date_headers(date_string))
        return signed

    def _prepare_request(self, method: str, path: str, params=None, json=None,
                         headers=None, date=None,
                         signature_version=None) -> requests.PreparedRequest:
        """Sign and prepare a request. The result is sent unchanged on every retry."""
        method = method.upper()
        canon_params = canonicalize(params)

        body = None
        request_headers = {HEADER_USER_AGENT: self.user_agent}
        query = ""
        if json is not None:
            body = serialize_body(json).encode("utf-8")
            request_headers[HEADER_CONTENT_TYPE] = CONTENT_TYPE_JSON
            if canon_params:
                query = "?" + canon_params
        elif method in BODY_METHODS:
            body = canon_params.encode("utf-8")
            request_headers[HEADER_CONTENT_TYPE] = CONTENT_TYPE_FORM
        elif canon_params:
            query = "?" + canon_params

        if headers:
            request_headers.update(headers)
        request_headers.update(self.sign_request(method, path, params, json, headers,
                                                 date, signature_version))

        url = f"{self.config['url_scheme']}://{self.host}{path}{query}"
        return requests.Request(method, url, headers=request_headers, data=body).prepare()

    def api_call(self, method: str, path: str, params=None, json=None, headers=None,
                 timeout=None, date=None, signature_version=None) -> ApiResult:
        """
        Make a signed request.

        Args:
            method: HTTP method
            path: Absolute API path, e.g. /admin/v1/users
            params: Parameters (query string, or form body for POST/PUT/PATCH)
            json: JSON body (signature v4/v5)
            headers: Extra headers; X-Duo-* ones are signed under v5
            timeout: Seconds, overrides the configured timeout
            date: Request date, defaults to the client clock
            signature_version: Overrides the client's default version

        Returns:
            ApiResult; ``error`` holds SigningError or TransportError when no
            response was received, RateLimitExhausted if still rate limited

        Raises:
            InvalidRequestError: If the signature version cannot sign this request
        """
        try:
            prepared = self._prepare_request(method, path, params, json, headers, date,
                                             signature_version)
            logger.debug("Sending %s %s", prepared.method, prepared.path_url)
            response = self.transport.send(
                prepared, timeout=self.config['timeout'] if timeout is None else timeout)
        except (SigningError, TransportError) as e:
            logger.warning("%s %s failed: %s", method.upper(), path, e)
            return ApiResult(None, error=e)

        error = None
        if response.status_code == RATE_LIMIT_HTTP_CODE:
            error = RateLimitExhausted(response.status_code)
        return ApiResult(response.status_code, response.text, dict(response.headers), error)

    def json_api_call(self, method: str, path: str, params=None, json=None, **kwargs) -> Any:
        """
        Make a signed request and return the ``response`` member of the envelope.

        Raises:
            SigningError, TransportError: If no response was received
            RateLimitExhausted: If the API kept answering 429
            ApiError: If the envelope reports stat FAIL
            BadResponseError: If the body is not a valid envelope
        """
        result = self.api_call(method, path, params, json, **kwargs).raise_for_error()
        return parse_envelope(result.body, result.status).response

    def json_paging_api_call(self, method: str, path: str, params: Optional[Mapping[str, Any]],
                             offset: int, limit: int, **kwargs) -> Tuple[Any, PagingInfo]:
        """
        Fetch one page of results.

        ``offset`` and ``limit`` override any values in ``params``; use
        ``metadata.next_offset`` for the next page.
        """
        # copy parameters so we don't cause any side-effects
        params = dict(params or {})
        params["offset"] = str(offset)
        params["limit"] = str(limit)

        result = self.api_call(method, path, params, **kwargs).raise_for_error()
        envelope = parse_envelope(result.body, result.status)
        return envelope.response, envelope.metadata

    def get(self, path: str, params=None, **kwargs) -> Any:
        """Make signed GET request."""
        return self.json_api_call('GET', path, params, **kwargs)

    def post(self, path: str, params=None, json=None, **kwargs) -> Any:
        """Make signed POST request."""
        return self.json_api_call('POST', path, params, json, **kwargs)

    def put(self, path: str, params=None, json=None, **kwargs) -> Any:
        """Make signed PUT request."""
        return self.json_api_call('PUT', path, params, json, **kwargs)

    def delete(self, path: str, params=None, **kwargs) -> Any:
        """Make signed DELETE request."""
        return self.json_api_call('DELETE', path, params, **kwargs)

    def close(self):
        """Close HTTP session."""
        if self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
