"""
Certificate pinning for connections to the Duo API.

Pinning only narrows trust. The standard TLS checks (system trust store,
hostname, expiry) must already have passed, then the root of the verified
chain must be one of a known set of root certificates.
"""

import enum
import functools
import logging
from dataclasses import dataclass
from importlib import resources
from typing import FrozenSet, Iterable, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.x509.oid import SignatureAlgorithmOID

from .constants import CA_CERTS_RESOURCE, CERT_DELIMITER, PRODUCTION_ENVIRONMENT
from .exceptions import CertificateBundleError, ConfigurationError

logger = logging.getLogger(__name__)

_PEM_END = "-----END CERTIFICATE-----"


class PolicyErrors(enum.IntFlag):
    """Result of the standard TLS checks."""

    NONE = 0
    REMOTE_CERTIFICATE_NOT_AVAILABLE = 1
    REMOTE_CERTIFICATE_NAME_MISMATCH = 2
    REMOTE_CERTIFICATE_CHAIN_ERRORS = 4


class ChainStatus(enum.Enum):
    OK = "ok"
    EXPIRED = "expired"
    UNTRUSTED_ROOT = "untrusted_root"
    INVALID_SIGNATURE = "invalid_signature"
    PARTIAL_CHAIN = "partial_chain"


@dataclass(frozen=True)
class ChainElement:
    certificate: x509.Certificate
    status: ChainStatus = ChainStatus.OK


def _der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


def split_bundle(text: str) -> Sequence[str]:
    """
    Split a root bundle into PEM blocks.

    The vendor format separates certificates with ``-----DUO_CERT-----``;
    plain concatenated PEM is accepted too. Blank segments are dropped.
    """
    blocks = []
    for segment in text.split(CERT_DELIMITER):
        if not segment.strip():
            continue
        for block in segment.split(_PEM_END):
            if block.strip():
                blocks.append(block.strip() + "\n" + _PEM_END + "\n")
    return blocks


class RootCertificateSet:
    """Immutable set of trusted root certificates, compared by DER bytes."""

    def __init__(self, certificates: Iterable[x509.Certificate]):
        self._certificates = tuple(certificates)
        self._fingerprints: FrozenSet[bytes] = frozenset(_der(c) for c in self._certificates)

    @classmethod
    def from_certificates(cls, certificates: Iterable[x509.Certificate]) -> "RootCertificateSet":
        return cls(certificates)

    @classmethod
    def from_pem(cls, text: str) -> "RootCertificateSet":
        try:
            return cls(x509.load_pem_x509_certificate(block.encode("ascii"))
                       for block in split_bundle(text))
        except (ValueError, UnicodeEncodeError) as e:
            raise CertificateBundleError(f"Unable to parse root certificates: {e}") from e

    @classmethod
    def bundled(cls) -> "RootCertificateSet":
        """The vendor root set shipped with the package, parsed once."""
        return _bundled_roots()

    def __contains__(self, certificate) -> bool:
        if certificate is None:
            return False
        return _der(certificate) in self._fingerprints

    def __len__(self) -> int:
        return len(self._certificates)

    def __iter__(self):
        return iter(self._certificates)


def read_bundle(resource_name: str = CA_CERTS_RESOURCE) -> str:
    try:
        return resources.files(__package__).joinpath(resource_name).read_text(encoding="ascii")
    except (OSError, ValueError) as e:
        raise CertificateBundleError(
            f"Unable to read the embedded certificate file {resource_name!r}: {e}"
        ) from e


@functools.lru_cache(maxsize=None)
def _bundled_roots() -> RootCertificateSet:
    roots = RootCertificateSet.from_pem(read_bundle())
    if not len(roots):
        raise CertificateBundleError("The embedded certificate file contains no certificates")
    return roots


def self_verifies(certificate: x509.Certificate) -> bool:
    """
    Check that a certificate is self-issued and signed by its own key.

    The signature is checked with the public key directly, so legacy SHA-1
    roots still verify.
    """
    if certificate.issuer != certificate.subject:
        return False
    try:
        public_key = certificate.public_key()
        signature = certificate.signature
        data = certificate.tbs_certificate_bytes
        if isinstance(public_key, rsa.RSAPublicKey):
            if certificate.signature_algorithm_oid == SignatureAlgorithmOID.RSASSA_PSS:
                pad = certificate.signature_algorithm_parameters
            else:
                pad = padding.PKCS1v15()
            public_key.verify(signature, data, pad, certificate.signature_hash_algorithm)
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(certificate.signature_hash_algorithm))
        elif isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
            public_key.verify(signature, data)
        else:
            return False
    except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError):
        return False
    return True


def validate(leaf_cert: Optional[x509.Certificate],
             chain: Optional[Sequence[ChainElement]],
             policy_errors: PolicyErrors,
             trusted_roots: RootCertificateSet) -> bool:
    """
    Decide whether a server certificate chain is acceptable.

    Never raises; any doubt is a reject.

    Args:
        leaf_cert: The certificate presented by the server
        chain: Verified chain, leaf first and root last
        policy_errors: Outcome of the standard TLS validation
        trusted_roots: Roots the chain must end in

    Returns:
        True if the connection may proceed
    """
    try:
        if leaf_cert is None or not chain:
            return False
        if policy_errors != PolicyErrors.NONE:
            return False
        if any(element.status is not ChainStatus.OK for element in chain):
            return False
        root = chain[-1].certificate
        return self_verifies(root) and root in trusted_roots
    except Exception:
        logger.exception("Certificate validation failed unexpectedly")
        return False


class CertificateValidator:
    """
    Server certificate callback in one of three modes: pinned to the bundled
    roots, pinned to caller roots, or disabled.
    """

    def __init__(self, trusted_roots: Optional[RootCertificateSet],
                 require_certificate: bool = False):
        self.trusted_roots = trusted_roots
        self.require_certificate = require_certificate

    @classmethod
    def bundled(cls) -> "CertificateValidator":
        """
        Pin to the roots shipped in ``ca_certs.pem``.

        The bundle currently holds a single root, DigiCert High Assurance EV Root
        CA (SHA-1 signed). A Duo host whose chain ends in any other root is
        rejected in this mode; use :meth:`pinned` with the right roots instead.
        """
        return cls(RootCertificateSet.bundled())

    @classmethod
    def pinned(cls, roots) -> "CertificateValidator":
        if not isinstance(roots, RootCertificateSet):
            roots = RootCertificateSet.from_certificates(roots)
        return cls(roots)

    @classmethod
    def disabled(cls, environment: str, require_certificate: bool = False) -> "CertificateValidator":
        """
        Accept every certificate. For debugging and tests only.

        Raises:
            ConfigurationError: In the production environment
        """
        if environment == PRODUCTION_ENVIRONMENT:
            raise ConfigurationError(
                "SSL certificate validation cannot be disabled in production")
        logger.warning("SSL certificate validation is disabled")
        return cls(None, require_certificate=require_certificate)

    @property
    def is_disabled(self) -> bool:
        return self.trusted_roots is None

    def __call__(self, leaf_cert, chain, policy_errors=PolicyErrors.NONE) -> bool:
        if self.is_disabled:
            return leaf_cert is not None or not self.require_certificate
        accepted = validate(leaf_cert, chain, policy_errors, self.trusted_roots)
        if not accepted:
            logger.warning("Rejected server certificate chain: root is not pinned or chain is invalid")
        return accepted
