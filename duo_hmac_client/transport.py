"""
HTTP transport: certificate-pinned HTTPS connections and retry with
exponential backoff on rate-limit responses.
"""

import logging
import random
import ssl
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import requests
from cryptography import x509
from requests.adapters import HTTPAdapter
from urllib3 import HTTPConnectionPool, HTTPSConnectionPool, PoolManager, ProxyManager
from urllib3.connection import HTTPSConnection

from .certs import CertificateValidator, ChainElement, PolicyErrors
from .constants import (
    BACKOFF_FACTOR,
    INITIAL_BACKOFF_MS,
    MAX_BACKOFF_MS,
    MAX_JITTER_MS,
    RATE_LIMIT_HTTP_CODE,
)
from .exceptions import TransportError

logger = logging.getLogger(__name__)


def peer_certificates(sock) -> Tuple[Optional[x509.Certificate], List[ChainElement]]:
    """
    Return the server certificate and the verified chain of a TLS socket.

    The chain is the one OpenSSL built during the handshake, leaf first.
    """
    leaf_der = sock.getpeercert(binary_form=True)
    leaf = x509.load_der_x509_certificate(leaf_der) if leaf_der else None

    getter = getattr(sock, "get_verified_chain", None)
    if getter is not None:
        raw_chain = getter()
    else:
        # Python < 3.13 only exposes the chain on the SSLObject.
        sslobj = getattr(sock, "_sslobj", None)
        raw_chain = sslobj.get_verified_chain() if sslobj is not None else None

    chain = []
    for cert in raw_chain or []:
        if isinstance(cert, (bytes, bytearray)):
            chain.append(ChainElement(x509.load_der_x509_certificate(bytes(cert))))
        else:
            pem = cert.public_bytes()
            chain.append(ChainElement(x509.load_pem_x509_certificate(pem.encode("ascii"))))
    return leaf, chain


class PinnedHTTPSConnection(HTTPSConnection):
    """HTTPS connection that runs a certificate validator after the handshake."""

    validator: Optional[CertificateValidator] = None

    def connect(self):
        super().connect()
        if self.validator is None:
            return
        leaf, chain = peer_certificates(self.sock)
        if not self.validator(leaf, chain, PolicyErrors.NONE):
            self.close()
            raise ssl.SSLCertVerificationError(
                f"Certificate chain for {self.host} is not anchored at a trusted root")


class PinnedHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = PinnedHTTPSConnection
    validator: Optional[CertificateValidator] = None

    def _new_conn(self):
        conn = super()._new_conn()
        conn.validator = self.validator
        return conn


class _PinnedPoolsMixin:
    """Hands the manager's validator to every pinned HTTPS pool it creates."""

    validator = None

    def _pin_pools(self, validator):
        self.validator = validator
        self.pool_classes_by_scheme = {
            "http": HTTPConnectionPool,
            "https": PinnedHTTPSConnectionPool,
        }

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context=request_context)
        if isinstance(pool, PinnedHTTPSConnectionPool):
            pool.validator = self.validator
        return pool


class PinnedPoolManager(_PinnedPoolsMixin, PoolManager):
    """Pool manager whose HTTPS pools use :class:`PinnedHTTPSConnection`."""

    def __init__(self, validator, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._pin_pools(validator)


class PinnedProxyManager(_PinnedPoolsMixin, ProxyManager):
    """
    Proxy manager whose tunnelled HTTPS pools use :class:`PinnedHTTPSConnection`.

    The chain is checked on the TLS session with the origin host, after the
    CONNECT tunnel is up.
    """

    def __init__(self, validator, proxy_url, **kwargs):
        super().__init__(proxy_url, **kwargs)
        self._pin_pools(validator)


class PinnedHTTPAdapter(HTTPAdapter):
    """requests adapter that pins HTTPS connections with a certificate validator."""

    def __init__(self, validator: CertificateValidator, **kwargs):
        self.validator = validator
        super().__init__(**kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        if proxy in self.proxy_manager:
            return self.proxy_manager[proxy]
        if proxy.lower().startswith("socks"):
            raise requests.exceptions.ProxyError(
                f"SOCKS proxy {proxy} cannot be used with certificate pinning")
        manager = self.proxy_manager[proxy] = PinnedProxyManager(
            self.validator,
            proxy,
            proxy_headers=self.proxy_headers(proxy),
            num_pools=self._pool_connections,
            maxsize=self._pool_maxsize,
            block=self._pool_block,
            **proxy_kwargs,
        )
        return manager

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        self._pool_connections = connections
        self._pool_maxsize = maxsize
        self._pool_block = block
        self.poolmanager = PinnedPoolManager(
            self.validator,
            num_pools=connections,
            maxsize=maxsize,
            block=block,
            **pool_kwargs,
        )


@dataclass(frozen=True)
class BackoffPolicy:
    initial_ms: int = INITIAL_BACKOFF_MS
    factor: int = BACKOFF_FACTOR
    cap_ms: int = MAX_BACKOFF_MS
    max_jitter_ms: int = MAX_JITTER_MS


DEFAULT_BACKOFF = BackoffPolicy()


@dataclass
class RetryState:
    """Backoff progress of a single call."""

    backoff_ms: int
    attempts: int = 0


def _sleep_ms(ms: int) -> None:
    time.sleep(ms / 1000.0)


class RetryingTransport:
    """
    Sends signed requests and backs off on HTTP 429.

    The request is signed once before the first attempt and resent verbatim.
    Sleep and jitter sources are injectable so tests run the whole schedule
    instantly.
    """

    def __init__(self, session: requests.Session,
                 sleep: Optional[Callable[[int], None]] = None,
                 rng=None):
        self.session = session
        self.sleep = sleep or _sleep_ms
        self.rng = rng or random.Random()
        self.policy = DEFAULT_BACKOFF

    def send(self, prepared: requests.PreparedRequest, timeout=None) -> requests.Response:
        """
        Send a prepared request, retrying while rate limited.

        Returns:
            The first non-429 response, or the last 429 once the backoff cap
            has been passed

        Raises:
            TransportError: If no response was received (never retried)
        """
        state = RetryState(backoff_ms=self.policy.initial_ms)
        while True:
            state.attempts += 1
            try:
                response = self.session.send(prepared, timeout=timeout)
            except requests.RequestException as e:
                raise TransportError(f"HTTP request failed: {e}") from e

            if response.status_code != RATE_LIMIT_HTTP_CODE:
                return response
            if state.backoff_ms > self.policy.cap_ms:
                logger.error("Still rate limited after %d attempts, giving up: %s %s",
                             state.attempts, prepared.method, prepared.path_url)
                return response

            delay = state.backoff_ms + self.rng.randint(0, self.policy.max_jitter_ms)
            logger.warning("Rate limited on %s %s, retrying in %d ms",
                           prepared.method, prepared.path_url, delay)
            response.close()
            self.sleep(delay)
            state.backoff_ms *= self.policy.factor

