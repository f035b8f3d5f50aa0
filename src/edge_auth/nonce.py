"""CSRF nonces and PKCE verifiers.

Nonce format: ``<unix-timestamp>T<random string>``. The timestamp lets the
handlers reject stale nonces without any server-side state; the HMAC cookie
(``nonceHmac``) proves the nonce was minted here.

Random strings are drawn from a fixed alphabet with rejection sampling, so
every character is equally likely. A plain ``byte % len(alphabet)`` would
favour the first ``256 % len(alphabet)`` characters.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from typing import NamedTuple

from authlib.oauth2.rfc7636 import create_s256_code_challenge

from .errors import RequiresConfirmationError


class PKCEPair(NamedTuple):
    """PKCE verifier and its S256 challenge."""

    code_verifier: str
    code_challenge: str


def timestamp_in_seconds() -> int:
    return int(time.time())


def generate_secret(allowed_characters: str, length: int) -> str:
    """Return ``length`` characters drawn uniformly from ``allowed_characters``.

    Raises:
        ValueError: If the alphabet is empty or longer than 256 characters.
    """
    size = len(allowed_characters)
    if not 0 < size <= 256:
        raise ValueError(f"allowed_characters must hold 1-256 characters, got {size}")
    # Largest multiple of the alphabet size that fits in a byte
    limit = size * (256 // size)
    chars = []
    while len(chars) < length:
        for byte in secrets.token_bytes(length - len(chars)):
            if byte < limit:
                chars.append(allowed_characters[byte % size])
    return "".join(chars)


def generate_pkce_pair(allowed_characters: str, length: int) -> PKCEPair:
    """Create a fresh code verifier and its base64url(SHA-256) challenge."""
    if not 43 <= length <= 128:
        raise ValueError(f"PKCE verifier length must be 43-128, got {length}")
    verifier = generate_secret(allowed_characters, length)
    return PKCEPair(code_verifier=verifier, code_challenge=create_s256_code_challenge(verifier))


def sign(value: str, secret: str, signature_length: int) -> str:
    """URL-safe base64 HMAC-SHA256 of ``value``, truncated to ``signature_length``."""
    digest = hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).digest()
    encoded = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return encoded[:signature_length]


def nonce_timestamp(nonce: str) -> int | None:
    prefix, sep, _ = nonce.partition("T")
    if not sep or not (prefix.isascii() and prefix.isdigit()):
        return None
    return int(prefix)


class NonceSigner:
    """Mints and checks HMAC-signed nonces.

    Example:
        ```python
        signer = NonceSigner(secret, max_age=300, length=16)
        nonce, nonce_hmac = signer.new_nonce()
        signer.validate(nonce, nonce_hmac)  # raises RequiresConfirmationError
        ```
    """

    def __init__(
        self,
        secret: str,
        *,
        max_age: int,
        length: int,
        allowed_characters: str,
    ) -> None:
        self._secret = secret
        self._max_age = max_age
        self._length = length
        self._alphabet = allowed_characters

    def generate_nonce(self) -> str:
        return f"{timestamp_in_seconds()}T{generate_secret(self._alphabet, self._length)}"

    def sign(self, nonce: str) -> str:
        return sign(nonce, self._secret, self._length)

    def new_nonce(self) -> tuple[str, str]:
        nonce = self.generate_nonce()
        return nonce, self.sign(nonce)

    def validate(self, nonce: str, nonce_hmac: str | None) -> None:
        """Check max-age first, then the signature.

        Raises:
            RequiresConfirmationError: If the nonce is malformed, too old, or
                its HMAC does not match.
        """
        issued_at = nonce_timestamp(nonce)
        if issued_at is None:
            raise RequiresConfirmationError("Nonce is malformed")
        age = timestamp_in_seconds() - issued_at
        if age > self._max_age:
            raise RequiresConfirmationError(
                f"Nonce is too old (issued {age} seconds ago, max age is {self._max_age})"
            )
        if not nonce_hmac or not hmac.compare_digest(
            self.sign(nonce).encode("ascii"), nonce_hmac.encode("utf-8", "surrogatepass")
        ):
            raise RequiresConfirmationError("Nonce signature mismatch")

    def is_valid(self, nonce: str | None, nonce_hmac: str | None) -> bool:
        if not nonce or not nonce_hmac:
            return False
        try:
            self.validate(nonce, nonce_hmac)
        except RequiresConfirmationError:
            return False
        return True

    def reuse_or_create(self, nonce: str | None, nonce_hmac: str | None) -> tuple[str, str]:
        """Keep a still-valid nonce from the cookies, else mint a new one.

        Reusing the nonce keeps parallel tabs from invalidating each other's
        sign-in attempts.
        """
        if nonce and nonce_hmac and self.is_valid(nonce, nonce_hmac):
            return nonce, nonce_hmac
        return self.new_nonce()
