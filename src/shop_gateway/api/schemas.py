"""Request/response schemas for the API layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Auth ---


class TokenResponse(BaseModel):
    """Response for ``POST /auth/token``.

    ``accessToken`` is the gateway session token, never the platform
    access credential it wraps.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    expires_at: datetime = Field(alias="expiresAt")


class ScopeStatusResponse(BaseModel):
    """Granted vs. required scopes for the current shop.

    A non-empty ``missing`` list means the merchant must re-authorize
    before the plan or feature can be used.
    """

    shop: str
    granted: list[str]
    required: list[str]
    missing: list[str]


# --- Webhooks ---


class WebhookRegistrationResponse(BaseModel):
    success: bool = True
    created: list[str] = Field(description="Topics registered by this call.")
    topics: list[str] = Field(description="All topics the app subscribes to.")


# --- App proxy ---


class ProxyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shop: str
    path: str
    logged_in_customer_id: str | None = Field(
        default=None, alias="loggedInCustomerId"
    )
