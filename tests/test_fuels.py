"""
Tests for the fuels module.
"""

import json

import pytest

from firegrid.fuels import (
    FAMILY_COLORS,
    NEUTRAL_COLOR,
    BehaviorOutput,
    BezierCurve,
    FuelBehavior,
    FuelCatalog,
    FuelProfile,
    MoistureState,
    family_prefix,
    inverse_lerp,
    parse_fuel_code_id,
)

from conftest import SLOPE_CURVE, WIND_CURVE, catalog_items


class TestBezierCurve:
    """Tests for cubic Bezier evaluation."""

    @pytest.mark.parametrize(
        "curve",
        [
            BezierCurve(**WIND_CURVE),
            BezierCurve(**SLOPE_CURVE),
            BezierCurve(x1=0, y1=50, x2=0, y2=-20, min=5, max=30),
            BezierCurve(x1=1, y1=1, x2=1, y2=1, min=0, max=0),
        ],
    )
    def test_boundaries(self, curve):
        """evaluate(0) is min and evaluate(1) is max."""
        assert curve.evaluate(0.0) == pytest.approx(curve.min)
        assert curve.evaluate(1.0) == pytest.approx(curve.max)

    def test_parameter_clamped(self):
        curve = BezierCurve(**WIND_CURVE)
        assert curve.evaluate(-3.0) == curve.evaluate(0.0)
        assert curve.evaluate(7.5) == curve.evaluate(1.0)

    def test_midpoint(self):
        """At t=0.5 the weights are 1/8, 3/8, 3/8, 1/8."""
        curve = BezierCurve(**WIND_CURVE)
        assert curve.evaluate(0.5) == pytest.approx(4.25)

    def test_output_clamped(self):
        """Control points outside [min, max] cannot push the output out."""
        curve = BezierCurve(x1=0, y1=100, x2=0, y2=100, min=0, max=10)
        assert curve.evaluate(0.5) == 10.0
        curve = BezierCurve(x1=0, y1=-100, x2=0, y2=-100, min=0, max=10)
        assert curve.evaluate(0.5) == 0.0

    def test_evaluate_with_input(self):
        curve = BezierCurve(**WIND_CURVE)
        assert curve.evaluate_with_input(25.0, 0.0, 50.0) == pytest.approx(4.25)
        assert curve.evaluate_with_input(80.0, 0.0, 50.0) == pytest.approx(10.0)

    def test_dict_round_trip(self):
        curve = BezierCurve(**SLOPE_CURVE)
        assert BezierCurve.from_dict(curve.to_dict()) == curve

    def test_inverse_lerp_degenerate(self):
        assert inverse_lerp(5.0, 5.0, 7.0) == 0.0


class TestMoistureState:
    """Tests for moisture parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("very_low", MoistureState.VERY_LOW),
            ("VeryLow", MoistureState.VERY_LOW),
            ("HIGH", MoistureState.HIGH),
            (1, MoistureState.LOW),
            (MoistureState.HIGH, MoistureState.HIGH),
            ("soggy", MoistureState.MEDIUM),
            (17, MoistureState.MEDIUM),
        ],
    )
    def test_parse(self, value, expected):
        assert MoistureState.parse(value) is expected

    def test_json_suffix(self):
        assert MoistureState.VERY_LOW.json_suffix == "VeryLow"
        assert MoistureState.MEDIUM.json_suffix == "Medium"


class TestFuelProfile:
    """Tests for per-fuel behavior evaluation."""

    def test_rate_of_spread_uses_wind_domain(self):
        profile = FuelProfile(fuel_code_id=1)
        profile.set_curve(BehaviorOutput.ROS, MoistureState.MEDIUM, BezierCurve(**WIND_CURVE))
        assert profile.rate_of_spread(0.0) == pytest.approx(0.0)
        assert profile.rate_of_spread(25.0) == pytest.approx(4.25)
        assert profile.rate_of_spread(50.0) == pytest.approx(10.0)

    def test_slope_factor_uses_slope_domain(self):
        profile = FuelProfile(fuel_code_id=1)
        profile.set_curve(BehaviorOutput.SLOPE, MoistureState.MEDIUM, BezierCurve(**SLOPE_CURVE))
        assert profile.slope_factor(0.0) == pytest.approx(1.0)
        assert profile.slope_factor(90.0) == pytest.approx(4.0)

    def test_missing_curves(self):
        """Missing curves give 0 spread and flame, and slope factor 1."""
        profile = FuelProfile(fuel_code_id=1)
        assert profile.rate_of_spread(30.0) == 0.0
        assert profile.flame_length(30.0) == 0.0
        assert profile.slope_factor(30.0) == 1.0

    def test_moisture_selects_curve(self):
        profile = FuelProfile(fuel_code_id=1)
        profile.set_curve(BehaviorOutput.ROS, MoistureState.HIGH, BezierCurve(**WIND_CURVE))
        assert profile.rate_of_spread(50.0, MoistureState.MEDIUM) == 0.0
        assert profile.rate_of_spread(50.0, "high") == pytest.approx(10.0)

    def test_base_color_from_family(self):
        assert FuelProfile(1, title="GR2 Grass").base_color == FAMILY_COLORS["GR"]
        assert FuelProfile(1, title="").base_color == NEUTRAL_COLOR
        assert FuelProfile(1, title="", code_gis="sh5").base_color == FAMILY_COLORS["SH"]

    def test_family_prefix(self):
        assert family_prefix("  tl3 litter") == "TL"
        assert family_prefix(None, None) == "??"

    def test_family_prefix_needs_two_characters(self):
        assert family_prefix("G", "sh5") == "SH"
        assert family_prefix(" G ", "T") == "??"


class TestFuelCatalog:
    """Tests for catalog import and lookup."""

    def test_from_items(self, catalog):
        assert len(catalog) == 2
        assert catalog.ids == [102, 161]
        assert 102 in catalog
        assert catalog.lookup(102).title.startswith("GR2")

    def test_unknown_id(self, catalog):
        assert catalog.lookup(9999) is None

    def test_numeric_code_gis(self, catalog):
        """codeGIS given as a JSON number is accepted."""
        assert catalog.lookup(161).code_gis == "161"

    def test_wrapped_and_bare_lists(self):
        items = catalog_items()
        assert len(FuelCatalog.from_items({"items": items})) == 2
        assert len(FuelCatalog.from_items(items)) == 2

    def test_malformed_items_skipped(self):
        items = catalog_items() + [{"title": "bad", "rosMedium": "not a curve"}]
        catalog = FuelCatalog.from_items(items)
        assert len(catalog) == 2
        assert catalog.last_load_skipped == 1

    def test_unparsable_code_is_zero(self):
        catalog = FuelCatalog.from_items([{"title": "X", "codeGIS": "abc"}])
        assert catalog.ids == [0]

    def test_parse_fuel_code_id(self):
        assert parse_fuel_code_id(" 7299 ") == 7299
        assert parse_fuel_code_id("40000") == 0
        assert parse_fuel_code_id(None) == 0

    def test_invalid_document(self):
        with pytest.raises(ValueError):
            FuelCatalog.from_items({"not_items": []})
        with pytest.raises(ValueError):
            FuelCatalog.from_json_text("   ")

    def test_json_round_trip(self, catalog):
        text = json.dumps({"items": catalog.to_items()})
        again = FuelCatalog.from_json_text(text)
        assert again.ids == catalog.ids
        assert again.lookup(102).curve_for(BehaviorOutput.ROS, MoistureState.HIGH) == BezierCurve(
            x1=10.0, y1=1.0, x2=30.0, y2=2.0, min=0.0, max=5.0
        )

    def test_later_duplicate_wins(self):
        catalog = FuelCatalog([FuelProfile(5, title="first"), FuelProfile(5, title="second")])
        assert catalog.lookup(5).title == "second"


class TestFuelBehavior:
    """Tests for behavior queries by fuel code id."""

    def test_queries(self, catalog):
        behavior = FuelBehavior(catalog)
        assert behavior.rate_of_spread(102, 25.0) == pytest.approx(4.25)
        assert behavior.flame_length(102, 50.0) == pytest.approx(10.0)
        assert behavior.slope_factor(102, 0.0) == pytest.approx(1.0)

    def test_unknown_fuel_defaults(self, catalog):
        behavior = FuelBehavior(catalog)
        assert behavior.rate_of_spread(98, 25.0) == 0.0
        assert behavior.flame_length(98, 25.0) == 0.0
        assert behavior.slope_factor(98, 45.0) == 1.0

    def test_no_catalog_logs_warning(self, caplog):
        behavior = FuelBehavior()
        assert behavior.rate_of_spread(102, 25.0) == 0.0
        assert behavior.slope_factor(102, 25.0) == 1.0
        assert "no fuel catalog attached" in caplog.text
