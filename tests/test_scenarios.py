"""Tests for scenario comparison and parameter sweeps."""

import pytest

from projection.exceptions import ValidationError
from projection.projections import generate_projections
from projection.scenarios import compare_scenarios, run_scenarios, sweep_parameter


class TestCompareScenarios:
    """Tests for comparing named override sets."""

    def test_base_and_named_runs(self, base_params):
        """Base plus one run per scenario."""
        comparison = compare_scenarios(
            base_params,
            {"convert": {"roth_conversions": {2026: 200_000}}, "frugal": {"annual_expenses": 60_000}},
        )
        assert len(comparison.base) == 5
        assert set(comparison.scenarios) == {"convert", "frugal"}

    def test_override_applied(self, base_params):
        """Scenario runs see their overrides."""
        comparison = compare_scenarios(base_params, {"frugal": {"annual_expenses": 60_000}})
        assert comparison.scenarios["frugal"][0].expenses == 60_000
        assert comparison.base[0].expenses == 80_000

    def test_matches_direct_run(self, base_params):
        """Concurrent runs match sequential ones."""
        overrides = {"roth_conversions": {2026: 200_000}}
        comparison = compare_scenarios(base_params, {"convert": overrides})
        assert comparison.scenarios["convert"] == generate_projections(base_params.with_overrides(overrides))

    def test_unknown_override(self, base_params):
        """Unknown fields are rejected before anything runs."""
        with pytest.raises(ValidationError):
            compare_scenarios(base_params, {"typo": {"anual_expenses": 1}})


class TestRunScenarios:
    """Tests for concurrent execution."""

    def test_empty(self):
        """No scenarios, no results."""
        assert run_scenarios({}) == {}

    def test_keeps_order(self, base_params):
        """Results come back in input order."""
        runs = {name: base_params for name in ("c", "a", "b")}
        assert list(run_scenarios(runs, max_workers=2)) == ["c", "a", "b"]


class TestSweepParameter:
    """Tests for single-field sweeps."""

    def test_one_row_per_value(self, base_params):
        """Rows are indexed by the swept value."""
        frame = sweep_parameter(base_params, "annual_expenses", [60_000, 80_000, 100_000])
        assert list(frame.index) == [60_000, 80_000, 100_000]
        assert frame.index.name == "annual_expenses"
        assert "total_tax_paid" in frame.columns

    def test_higher_spending_smaller_estate(self, base_params):
        """Spending more leaves less at the end."""
        frame = sweep_parameter(base_params, "annual_expenses", [60_000, 100_000])
        assert frame.loc[60_000, "ending_portfolio"] > frame.loc[100_000, "ending_portfolio"]

    def test_unknown_field(self, base_params):
        """Sweeping a missing field raises."""
        with pytest.raises(ValidationError):
            sweep_parameter(base_params, "not_a_field", [1])
