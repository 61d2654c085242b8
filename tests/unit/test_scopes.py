"""Tests for scope parsing and plan/feature requirements."""

from shop_gateway.auth.scopes import (
    BASE_SCOPES,
    PLAN_SCOPES,
    feature_scopes,
    missing_scopes,
    parse_scopes,
    plan_scopes,
)


class TestParseScopes:
    def test_comma_separated(self) -> None:
        assert parse_scopes("read_products, write_orders") == (
            "read_products",
            "write_orders",
        )

    def test_dedupes_preserving_order(self) -> None:
        assert parse_scopes("b,a,b,,a") == ("b", "a")

    def test_none(self) -> None:
        assert parse_scopes(None) == ()

    def test_iterable(self) -> None:
        assert parse_scopes(["x", " y "]) == ("x", "y")


class TestMissingScopes:
    def test_none_missing(self) -> None:
        assert missing_scopes(BASE_SCOPES, BASE_SCOPES) == []

    def test_reports_missing_in_required_order(self) -> None:
        granted = ("read_products",)
        assert missing_scopes(granted, ("read_orders", "read_products", "a")) == [
            "read_orders",
            "a",
        ]

    def test_write_implies_read(self) -> None:
        assert missing_scopes(("write_discounts",), ("read_discounts",)) == []

    def test_read_does_not_imply_write(self) -> None:
        assert missing_scopes(("read_discounts",), ("write_discounts",)) == [
            "write_discounts"
        ]


class TestPlanAndFeatureScopes:
    def test_basic_is_base(self) -> None:
        assert plan_scopes("basic") == BASE_SCOPES

    def test_case_insensitive(self) -> None:
        assert plan_scopes("PRO") == PLAN_SCOPES["pro"]

    def test_unknown_plan_falls_back_to_basic(self) -> None:
        assert plan_scopes("platinum") == BASE_SCOPES

    def test_enterprise_superset(self) -> None:
        assert set(BASE_SCOPES) < set(plan_scopes("enterprise"))

    def test_feature(self) -> None:
        assert feature_scopes("analytics") == ("read_analytics",)

    def test_unknown_feature(self) -> None:
        assert feature_scopes("teleport") == ()
