"""Shop domain (tenant identifier) validation."""

from __future__ import annotations

import re

from shop_gateway.errors import InvalidTenant

PLATFORM_DOMAIN_SUFFIX = "myshopify.com"

_SHOP_RE = re.compile(
    r"^[a-z0-9][a-z0-9\-]*\." + re.escape(PLATFORM_DOMAIN_SUFFIX) + r"$"
)
MAX_SHOP_LENGTH = 255


def normalize_shop(shop: str | None) -> str:
    """Validate and normalize a shop domain.

    Strips whitespace, lowercases, and checks the value is a bare
    ``<name>.myshopify.com`` host (no scheme, port or path).

    Raises:
        InvalidTenant: if the value is absent or malformed.
    """
    if shop is None:
        raise InvalidTenant("missing shop parameter")
    candidate = shop.strip().lower()
    if not candidate:
        raise InvalidTenant("missing shop parameter")
    if len(candidate) > MAX_SHOP_LENGTH or not _SHOP_RE.match(candidate):
        raise InvalidTenant(f"malformed shop domain: {candidate[:64]!r}")
    return candidate
