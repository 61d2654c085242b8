"""Capability (access scope) sets requested from the platform."""

from collections.abc import Iterable

# Scopes required for core functionality. Requested on every install.
BASE_SCOPES: tuple[str, ...] = (
    "read_products",
    "write_products",
    "read_orders",
    "read_discounts",
    "write_discounts",
)

PREMIUM_SCOPES: tuple[str, ...] = (
    "read_customers",
    "read_marketing_events",
    "write_marketing_events",
)

FEATURE_SCOPES: dict[str, tuple[str, ...]] = {
    "analytics": ("read_analytics",),
    "marketing": ("read_marketing_events", "write_marketing_events"),
    "customers": ("read_customers", "write_customers"),
}

PLAN_SCOPES: dict[str, tuple[str, ...]] = {
    "basic": BASE_SCOPES,
    "pro": (*BASE_SCOPES, "read_analytics", "read_customers"),
    "enterprise": (*BASE_SCOPES, *PREMIUM_SCOPES),
}


def parse_scopes(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize a comma separated scope string into an ordered, unique tuple."""
    if raw is None:
        return ()
    items = raw.split(",") if isinstance(raw, str) else raw
    seen: dict[str, None] = {}
    for item in items:
        scope = item.strip()
        if scope:
            seen.setdefault(scope, None)
    return tuple(seen)


def _implied(granted: Iterable[str]) -> set[str]:
    # write_X implies read_X on the platform side
    result = set(granted)
    for scope in list(result):
        if scope.startswith("write_"):
            result.add("read_" + scope.removeprefix("write_"))
    return result


def missing_scopes(granted: Iterable[str], required: Iterable[str]) -> list[str]:
    have = _implied(granted)
    return [s for s in required if s not in have]


def feature_scopes(feature: str) -> tuple[str, ...]:
    return FEATURE_SCOPES.get(feature, ())


def plan_scopes(plan: str) -> tuple[str, ...]:
    """Scopes a plan needs; unknown plans fall back to ``basic``."""
    return PLAN_SCOPES.get(plan.lower(), PLAN_SCOPES["basic"])
