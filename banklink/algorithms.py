"""
Banklink Signing Algorithms

A SigningAlgorithm turns an ordered parameter sequence into a MAC string
and re-verifies one. Algorithms are stateless apart from their
credentials and are safe to share between packets.

Reference implementations:
- HmacSha256Algorithm: shared-secret HMAC-SHA256, base64 output
- Ed25519Algorithm: Ed25519 (RFC 8032) via PyNaCl, base64 output

Bank-specific algorithms plug in by subclassing SigningAlgorithm.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple, Union

from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import Canonicalizer, query_string
from .exceptions import AlgorithmError
from .parameters import Parameter


def _key_bytes(key: Union[bytes, str, None], what: str) -> Optional[bytes]:
    """Accept raw bytes or a base64 string."""
    if key is None:
        return None
    if isinstance(key, bytes):
        return key
    try:
        return base64.b64decode(key.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise AlgorithmError(f"{what} is not valid base64: {e}") from e


def _b64d_mac(mac: str) -> Optional[bytes]:
    try:
        return base64.b64decode(mac.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError):
        return None


class SigningAlgorithm(ABC):
    """
    Capability contract for packet signing.

    - canonical_string() must be byte-identical for identical ordered input
    - sign() must be deterministic for a fixed credential and input
    - verify() returns False on mismatch and raises AlgorithmError only for
      structural faults (bad or missing credential, unsupported encoding)
    """

    name = "abstract"

    def __init__(self, canonicalizer: Canonicalizer = query_string, encoding: str = "utf-8"):
        self.canonicalizer = canonicalizer
        self.encoding = encoding

    def canonical_string(self, parameters: Iterable[Parameter]) -> str:
        return self.canonicalizer(list(parameters))

    def canonical_bytes(self, parameters: Iterable[Parameter]) -> bytes:
        text = self.canonical_string(parameters)
        try:
            return text.encode(self.encoding)
        except (UnicodeEncodeError, LookupError) as e:
            raise AlgorithmError(f"Cannot encode canonical string as {self.encoding}: {e}") from e

    @abstractmethod
    def sign(self, parameters: Iterable[Parameter]) -> str:
        """Return the MAC over canonical_string(parameters)."""
        pass

    @abstractmethod
    def verify(self, parameters: Iterable[Parameter], mac: str) -> bool:
        """Recompute over canonical_string(parameters) and compare with mac."""
        pass


class HmacSha256Algorithm(SigningAlgorithm):
    """Shared-secret HMAC-SHA256. The same secret signs and verifies."""

    name = "HMAC-SHA256"

    def __init__(
        self,
        secret: Union[bytes, str],
        canonicalizer: Canonicalizer = query_string,
        encoding: str = "utf-8"
    ):
        super().__init__(canonicalizer, encoding)
        self._secret = _key_bytes(secret, "HMAC secret")
        if not self._secret:
            raise AlgorithmError("HMAC secret must not be empty")

    def _digest(self, parameters: Iterable[Parameter]) -> bytes:
        return hmac.new(self._secret, self.canonical_bytes(parameters), hashlib.sha256).digest()

    def sign(self, parameters: Iterable[Parameter]) -> str:
        return base64.b64encode(self._digest(parameters)).decode("ascii")

    def verify(self, parameters: Iterable[Parameter], mac: str) -> bool:
        if not mac:
            return False
        expected = self._digest(parameters)
        provided = _b64d_mac(mac)
        if provided is None:
            return False
        return hmac.compare_digest(expected, provided)


class Ed25519Algorithm(SigningAlgorithm):
    """
    Ed25519 signatures via PyNaCl.

    Outbound packets need the signing key; inbound verification needs the
    counterpart's verify key. Either may be omitted when the algorithm is
    used in one direction only.
    """

    name = "Ed25519"

    def __init__(
        self,
        signing_key: Union[bytes, str, None] = None,
        verify_key: Union[bytes, str, None] = None,
        canonicalizer: Canonicalizer = query_string,
        encoding: str = "utf-8"
    ):
        super().__init__(canonicalizer, encoding)
        try:
            sk = _key_bytes(signing_key, "Signing key")
            vk = _key_bytes(verify_key, "Verify key")
            self._signing_key = SigningKey(sk) if sk is not None else None
            self._verify_key = VerifyKey(vk) if vk is not None else None
        except (CryptoError, TypeError, ValueError) as e:
            raise AlgorithmError(f"Malformed Ed25519 key: {e}") from e

    def sign(self, parameters: Iterable[Parameter]) -> str:
        if self._signing_key is None:
            raise AlgorithmError("No signing key configured")
        signature = self._signing_key.sign(self.canonical_bytes(parameters)).signature
        return base64.b64encode(signature).decode("ascii")

    def verify(self, parameters: Iterable[Parameter], mac: str) -> bool:
        if self._verify_key is None:
            raise AlgorithmError("No verify key configured")
        if not mac:
            return False
        signature = _b64d_mac(mac)
        if signature is None:
            return False
        try:
            self._verify_key.verify(self.canonical_bytes(parameters), signature)
            return True
        except (CryptoError, ValueError):
            return False


# Convenience functions

def generate_hmac_secret(length: int = 32) -> str:
    """Generate a base64-encoded random HMAC secret."""
    return base64.b64encode(secrets.token_bytes(length)).decode("ascii")


def generate_ed25519_keypair() -> Tuple[str, str]:
    """
    Generate an Ed25519 key pair.

    Returns:
        Tuple of (signing_key_b64, verify_key_b64)
    """
    signing_key = SigningKey.generate()
    return (
        base64.b64encode(bytes(signing_key)).decode("ascii"),
        base64.b64encode(bytes(signing_key.verify_key)).decode("ascii"),
    )
