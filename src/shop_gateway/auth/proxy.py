"""App proxy request verification."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from shop_gateway.auth.signature import SignatureEngine
from shop_gateway.auth.tenants import normalize_shop
from shop_gateway.errors import InvalidSignature

logger = structlog.get_logger()

QueryParams = Mapping[str, str | Iterable[str]]


class ProxyRequestVerifier:
    """Authenticate tenant-initiated requests by their signed query string.

    No session lookup is involved: a valid signature alone authorizes the
    request, scoped to the parameters it covers.
    """

    def __init__(self, engine: SignatureEngine) -> None:
        self._engine = engine

    def verify(self, params: QueryParams) -> bool:
        return self._engine.verify_query(params)

    def verified_shop(self, params: QueryParams) -> str:
        """Verify the request and return the shop from the signed parameters.

        Raises:
            InvalidSignature: if the signature is missing or wrong.
            InvalidTenant: if the signed ``shop`` parameter is malformed.
        """
        if not self.verify(params):
            logger.warning("proxy_signature_rejected", params=sorted(params))
            raise InvalidSignature("proxy signature mismatch")
        shop = params.get("shop")
        return normalize_shop(shop if isinstance(shop, str) else None)
