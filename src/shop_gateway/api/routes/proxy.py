"""App proxy endpoint.

Storefront requests forwarded by the platform carry a ``signature``
query parameter. They are authorized by that signature alone.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from shop_gateway.api.deps import get_proxy_verifier
from shop_gateway.api.schemas import ProxyResponse
from shop_gateway.auth.proxy import ProxyRequestVerifier

router = APIRouter(prefix="/proxy", tags=["proxy"])

VerifierDep = Annotated[ProxyRequestVerifier, Depends(get_proxy_verifier)]


def _query_params(request: Request) -> dict[str, str | list[str]]:
    """Collapse the query string, keeping repeated keys as lists."""
    params: dict[str, str | list[str]] = {}
    for key, value in request.query_params.multi_items():
        existing = params.get(key)
        if existing is None:
            params[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            params[key] = [existing, value]
    return params


@router.get("/{path:path}")
async def proxy(path: str, request: Request, verifier: VerifierDep) -> ProxyResponse:
    params = _query_params(request)
    shop = verifier.verified_shop(params)
    customer = params.get("logged_in_customer_id")
    return ProxyResponse(
        shop=shop,
        path=f"/{path}",
        logged_in_customer_id=customer if isinstance(customer, str) and customer else None,
    )
