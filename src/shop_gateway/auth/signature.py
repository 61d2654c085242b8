"""HMAC-SHA256 signing and constant-time verification.

Two digest encodings are in use and must match the sender exactly:

* base64 for webhook deliveries (``X-Shopify-Hmac-Sha256`` header),
  computed over the raw request body;
* hex for app proxy and OAuth callback query strings, computed over
  :func:`canonical_query`.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Iterable, Mapping
from enum import StrEnum

SIGNATURE_PARAM = "signature"


class DigestEncoding(StrEnum):
    HEX = "hex"
    BASE64 = "base64"


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign(
    secret: str | bytes,
    message: str | bytes,
    encoding: DigestEncoding = DigestEncoding.HEX,
) -> str:
    """Compute an HMAC-SHA256 digest of ``message`` keyed by ``secret``.

    Args:
        secret: Platform shared secret.
        message: Exact bytes the sender signed.
        encoding: Output encoding of the digest.

    Returns:
        Hex or base64 encoded digest.
    """
    digest = hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).digest()
    if encoding == DigestEncoding.BASE64:
        return base64.b64encode(digest).decode("ascii")
    return digest.hex()


def verify(
    secret: str | bytes | None,
    message: str | bytes,
    supplied: str | bytes | None,
    encoding: DigestEncoding = DigestEncoding.HEX,
) -> bool:
    """Recompute the digest and compare it with ``supplied`` in constant time.

    A missing secret or digest is a verification failure, not an error.
    """
    if not secret or not supplied:
        return False
    expected = sign(secret, message, encoding)
    return hmac.compare_digest(_to_bytes(expected), _to_bytes(supplied))


def canonical_query(
    params: Mapping[str, str | Iterable[str]],
    exclude: str = SIGNATURE_PARAM,
) -> str:
    """Build the signed message for a query string.

    Pairs are sorted by key and rendered as ``key=value`` with no
    separator between pairs. Repeated parameters are joined with ``,``.

    Example::

        >>> canonical_query({"b": "2", "a": "1", "signature": "x"})
        'a=1b=2'
    """
    parts = []
    for key in sorted(params):
        if key == exclude:
            continue
        value = params[key]
        if not isinstance(value, str):
            value = ",".join(value)
        parts.append(f"{key}={value}")
    return "".join(parts)


class SignatureEngine:
    """Signer bound to the platform shared secret.

    The secret is injected at construction (see ``api.deps``) rather
    than read from global configuration, so tests can supply their own.
    """

    def __init__(self, secret: str | bytes) -> None:
        if not secret:
            raise ValueError("SignatureEngine requires a non-empty secret")
        self._secret = _to_bytes(secret)

    def __repr__(self) -> str:
        return "SignatureEngine(secret=***)"

    def sign_hex(self, message: str | bytes) -> str:
        return sign(self._secret, message, DigestEncoding.HEX)

    def sign_base64(self, message: str | bytes) -> str:
        return sign(self._secret, message, DigestEncoding.BASE64)

    def verify_hex(self, message: str | bytes, supplied: str | bytes | None) -> bool:
        return verify(self._secret, message, supplied, DigestEncoding.HEX)

    def verify_base64(
        self, message: str | bytes, supplied: str | bytes | None
    ) -> bool:
        return verify(self._secret, message, supplied, DigestEncoding.BASE64)

    def verify_query(self, params: Mapping[str, str | Iterable[str]]) -> bool:
        """Verify a query string carrying its own ``signature`` parameter."""
        supplied = params.get(SIGNATURE_PARAM)
        if supplied is not None and not isinstance(supplied, str):
            # A repeated signature parameter is never valid.
            return False
        return self.verify_hex(canonical_query(params), supplied)
