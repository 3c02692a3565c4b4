"""Tests for the year-by-year projection engine."""

import logging

import pytest

from projection.exceptions import ValidationError
from projection.heirs import Heir
from projection.parameters import ProjectionParams
from projection.projections import (
    WithdrawalInputs,
    expenses_for_year,
    generate_projections,
    social_security_for_year,
    solve_withdrawals,
)
from projection.tax_tables import FilingStatus


class TestBalanceInvariants:
    """Tests for properties that hold every year."""

    def test_one_record_per_year(self, base_records):
        """Five years, in order."""
        assert [r.year for r in base_records] == [2026, 2027, 2028, 2029, 2030]
        assert [r.age for r in base_records] == [71, 72, 73, 74, 75]

    def test_totals_match_accounts(self, base_records):
        """Totals are the sum of the three accounts within rounding."""
        for r in base_records:
            assert r.total_boy == pytest.approx(r.at_boy + r.ira_boy + r.roth_boy, abs=2)
            assert r.total_eoy == pytest.approx(r.at_eoy + r.ira_eoy + r.roth_eoy, abs=2)

    def test_eoy_carries_to_next_boy(self, base_records):
        """Each year starts exactly where the last one ended."""
        for prev, curr in zip(base_records, base_records[1:]):
            assert curr.at_boy == prev.at_eoy
            assert curr.ira_boy == prev.ira_eoy
            assert curr.roth_boy == prev.roth_eoy
            assert curr.cost_basis_boy == prev.cost_basis_eoy

    def test_cost_basis_within_balance(self, base_records):
        """Cost basis never exceeds the after-tax balance."""
        for r in base_records:
            assert r.cost_basis_boy <= r.at_boy
            assert r.cost_basis_eoy <= r.at_eoy

    def test_cumulatives_non_decreasing(self, base_records):
        """Running totals only go up."""
        for prev, curr in zip(base_records, base_records[1:]):
            assert curr.cumulative_tax >= prev.cumulative_tax
            assert curr.cumulative_irmaa >= prev.cumulative_irmaa
            assert curr.cumulative_expenses >= prev.cumulative_expenses

    def test_total_tax_is_sum(self, base_records):
        """Total tax is the sum of its components within $1."""
        for r in base_records:
            assert r.total_tax == pytest.approx(r.federal_tax + r.ltcg_tax + r.niit + r.state_tax, abs=1)

    def test_non_negative_with_losses(self, base_params):
        """Balances and withdrawals stay at or above zero in a crash."""
        params = base_params.with_overrides({"at_return": -0.5, "ira_return": -0.5, "roth_return": -0.5})
        for r in generate_projections(params):
            for value in (r.at_eoy, r.ira_eoy, r.roth_eoy, r.at_withdrawal, r.ira_withdrawal, r.roth_withdrawal):
                assert value >= 0

    def test_present_value(self, base_records):
        """PV equals nominal in year 0 and falls below it afterward."""
        assert base_records[0].pv_total_eoy == base_records[0].total_eoy
        for r in base_records[1:]:
            assert r.pv_total_eoy < r.total_eoy

    def test_irmaa_two_year_lookback(self, base_records):
        """IRMAA uses seeded history, then MAGI from two years prior."""
        assert base_records[0].irmaa_magi == 100_000
        assert base_records[1].irmaa_magi == 100_000
        for i in range(2, len(base_records)):
            assert base_records[i].irmaa_magi == base_records[i - 2].magi


class TestRmd:
    """Tests for required minimum distributions inside the projection."""

    def test_rmd_from_73(self, base_records):
        """No RMD before 73; afterwards balance / divisor is withdrawn."""
        for r in base_records:
            if r.age < 73:
                assert r.rmd_required == 0
            else:
                assert r.rmd_required == pytest.approx(r.ira_boy / r.rmd_factor, abs=1)
                assert r.ira_withdrawal >= r.rmd_required - 1

    def test_divisors(self, base_records):
        """Divisor at 73 and 75 match the table."""
        by_age = {r.age: r.rmd_factor for r in base_records}
        assert by_age[73] == 26.5
        assert by_age[75] == 24.6


class TestBaseScenario:
    """Tests for the modest five-year base case."""

    def test_no_shortfall(self, base_records):
        """Savings cover expenses every year."""
        assert not any(r.has_shortfall for r in base_records)

    def test_roth_share(self, base_records):
        """Ending Roth share lands between 20% and 60%."""
        assert 0.2 < base_records[-1].roth_percent < 0.6

    def test_iterative_mode(self, base_params):
        """Funding each year's tax still leaves no shortfall and a 20-60% Roth share."""
        records = generate_projections(base_params.with_overrides({"iterative_tax": True}))
        assert not any(r.has_shortfall for r in records)
        assert 0.2 < records[-1].roth_percent < 0.6

    def test_single_pass_when_not_iterative(self, base_records):
        """Iteration off means exactly one pass."""
        assert all(r.iterations == 1 for r in base_records)

    def test_income_streams(self, base_params, base_records):
        """Expenses inflate and Social Security grows with COLA."""
        assert base_records[0].expenses == 80_000
        assert base_records[1].expenses == 82_400
        assert base_records[0].ss_annual == 36_000
        assert base_records[1].ss_annual == 36_720
        assert expenses_for_year(base_params, 2028) == pytest.approx(80_000 * 1.03**2)
        assert social_security_for_year(base_params, 2028) == pytest.approx(36_000 * 1.02**2)

    def test_account_mode_fixed_returns(self, base_records):
        """Account mode uses the configured rates."""
        r = base_records[0]
        assert (r.effective_at_return, r.effective_ira_return, r.effective_roth_return) == (0.04, 0.06, 0.08)
        assert r.risk_allocation is None


class TestRothConversion:
    """Tests for scheduled Roth conversions."""

    @pytest.fixture
    def conversion_records(self, base_params):
        """Base case with $200k converted in the first year."""
        return generate_projections(base_params.with_overrides({"roth_conversions": {2026: 200_000}}))

    def test_higher_tax(self, base_records, conversion_records):
        """Converting pulls tax forward."""
        assert conversion_records[-1].cumulative_tax > base_records[-1].cumulative_tax

    def test_higher_roth_share(self, base_records, conversion_records):
        """More of the estate ends up in Roth."""
        assert conversion_records[-1].roth_percent > base_records[-1].roth_percent

    def test_ira_reduced_before_growth(self, conversion_records):
        """Conversion leaves the IRA before growth is applied."""
        r = conversion_records[0]
        assert r.roth_conversion == 200_000
        expected = (r.ira_boy - r.roth_conversion - r.ira_withdrawal) * (1 + r.effective_ira_return)
        assert r.ira_eoy == pytest.approx(expected, abs=2)

    def test_conversion_clamped(self, base_params):
        """A conversion larger than the IRA converts only what exists."""
        records = generate_projections(base_params.with_overrides({"roth_conversions": {2026: 5_000_000}}))
        assert records[0].roth_conversion == 500_000
        assert records[0].ira_eoy == 0


class TestSurvivor:
    """Tests for the death of the first spouse."""

    @pytest.fixture
    def survivor_records(self, base_params):
        """Base case with a death in 2028."""
        params = base_params.with_overrides(
            {"survivor": {"death_year": 2028, "ss_percent": 0.6, "expense_percent": 0.7}}
        )
        return generate_projections(params)

    def test_flag_switches_at_death_year(self, survivor_records):
        """Survivor from the death year onward."""
        assert [r.is_survivor for r in survivor_records] == [False, False, True, True, True]

    def test_filing_status(self, survivor_records):
        """Survivor files single."""
        assert survivor_records[1].filing_status == FilingStatus.MARRIED_FILING_JOINTLY
        assert survivor_records[2].filing_status == FilingStatus.SINGLE

    def test_income_and_expenses_scaled(self, base_records, survivor_records):
        """Social Security and expenses scale by the survivor percentages."""
        for base, survivor in zip(base_records[2:], survivor_records[2:]):
            assert survivor.ss_annual == pytest.approx(base.ss_annual * 0.6, abs=1)
            assert survivor.expenses == pytest.approx(base.expenses * 0.7, abs=1)

    def test_one_medicare_enrollee(self, survivor_records):
        """Premiums drop to one person."""
        assert survivor_records[2].irmaa_tier == 0
        assert survivor_records[2].irmaa_total == 2_435

    def test_unchanged_before_death(self, base_records, survivor_records):
        """Years before the death match the base case."""
        assert survivor_records[0] == base_records[0]


class TestOverridesAndOptions:
    """Tests for harvests, overrides and calculation options."""

    def test_harvest_realizes_gains(self, base_params, base_records):
        """Harvested shares raise gains and basis but not the balance."""
        records = generate_projections(base_params.with_overrides({"at_harvest_overrides": {2026: 20_000}}))
        harvest, base = records[0], base_records[0]
        assert harvest.at_harvest == 20_000
        assert harvest.at_eoy == base.at_eoy
        assert harvest.capital_gains == pytest.approx(base.capital_gains + 11_250, abs=1)
        assert harvest.cost_basis_eoy == pytest.approx(base.cost_basis_eoy + 11_250, abs=1)

    def test_ss_exemption(self, base_params):
        """Exempt flag removes Social Security from taxable income."""
        records = generate_projections(base_params.with_overrides({"exempt_ss_from_tax": True}))
        assert all(r.taxable_ss == 0 for r in records)

    def test_expense_override(self, base_params):
        """Override replaces the inflated expense for that year only."""
        records = generate_projections(base_params.with_overrides({"expense_overrides": {2027: 50_000}}))
        assert records[1].expenses == 50_000
        assert records[2].expenses == pytest.approx(80_000 * 1.03**2, abs=1)

    def test_iterative_covers_tax(self, base_params):
        """Iterative mode funds the year's tax within the tolerance."""
        records = generate_projections(base_params.with_overrides({"iterative_tax": True}))
        r = records[0]
        assert 1 <= r.iterations <= 5
        funded_tax = r.total_withdrawal + r.ss_annual - r.expenses - r.irmaa_total
        assert abs(funded_tax - r.total_tax) < 102

    def test_blended_mode(self, base_params):
        """Blended mode assigns the riskiest assets to Roth."""
        params = base_params.with_overrides(
            {"return_mode": "blended", "low_risk_target": 300_000, "mod_risk_target": 300_000}
        )
        r = generate_projections(params)[0]
        assert r.risk_allocation is not None
        assert r.effective_roth_return > r.effective_at_return

    def test_heirs(self, base_params, two_heirs):
        """Configured heirs produce per-heir details."""
        records = generate_projections(base_params.with_overrides({"heirs": two_heirs}))
        last = records[-1]
        assert len(last.heir_details) == 2
        assert last.heir_value == pytest.approx(sum(d.net_value for d in last.heir_details), abs=2)

    def test_bad_heir_splits(self, base_params):
        """Splits that do not sum to 1.0 are rejected up front."""
        params = base_params.with_overrides({"heirs": (Heir(name="A", split=0.6),)})
        with pytest.raises(ValidationError):
            generate_projections(params)

    def test_empty_range(self, base_params):
        """End before start yields no records."""
        assert generate_projections(base_params.with_overrides({"end_year": 2025})) == []

    def test_defaults(self):
        """Default parameters project thirty years."""
        assert len(generate_projections()) == ProjectionParams().years


class TestExcessRmd:
    """Tests for RMD dollars beyond the year's cash need."""

    @pytest.fixture
    def rmd_records(self):
        """IRA-only household at 80 with no expenses and flat returns."""
        params = ProjectionParams(
            start_year=2026,
            end_year=2027,
            birth_year=1946,
            at_start=0.0,
            ira_start=1_000_000.0,
            roth_start=0.0,
            at_cost_basis=0.0,
            return_mode="account",
            at_return=0.0,
            ira_return=0.0,
            roth_return=0.0,
            ss_monthly=0.0,
            annual_expenses=0.0,
            iterative_tax=False,
        )
        return generate_projections(params)

    def test_surplus_reinvested(self, rmd_records):
        """Unneeded RMD moves to After-Tax instead of disappearing."""
        r = rmd_records[0]
        assert r.rmd_required == 49_505  # 1,000,000 / 20.2
        assert r.excess_rmd == pytest.approx(r.rmd_required - r.irmaa_total, abs=1)
        assert r.at_eoy == pytest.approx(r.excess_rmd, abs=1)

    def test_portfolio_only_loses_spending(self, rmd_records):
        """With flat returns the portfolio drops only by what was spent."""
        r = rmd_records[0]
        assert r.total_eoy == pytest.approx(r.total_boy - r.irmaa_total, abs=2)

    def test_reinvested_at_full_basis(self, rmd_records):
        """Reinvested cash carries no unrealized gain."""
        r = rmd_records[0]
        assert r.cost_basis_eoy == r.at_eoy

    def test_no_surplus_when_needed(self, base_records):
        """RMDs smaller than the need leave nothing over."""
        assert all(r.excess_rmd == 0 for r in base_records)


class TestShortfall:
    """Tests for running out of money."""

    def test_shortfall_recorded_and_logged(self, base_params, caplog):
        """Unmet need is data on the record and a warning in the log."""
        params = base_params.with_overrides({"annual_expenses": 400_000})
        with caplog.at_level(logging.WARNING, logger="projection.projections"):
            records = generate_projections(params)
        assert any(r.has_shortfall for r in records)
        assert "shortfall" in caplog.text


class TestSolveWithdrawals:
    """Tests for the withdrawal and tax solver."""

    def _inputs(self, **overrides):
        values = dict(
            at_boy=100_000.0,
            ira_available=500_000.0,
            roth_boy=200_000.0,
            cost_basis_boy=100_000.0,
            ss_annual=0.0,
            expenses=50_000.0,
            irmaa_total=0.0,
            rmd_required=0.0,
            roth_conversion=0.0,
        )
        values.update(overrides)
        return WithdrawalInputs(**values)

    def test_after_tax_first(self, mfj_context_2024):
        """After-tax money covers the need before the IRA."""
        result = solve_withdrawals(self._inputs(), mfj_context_2024, iterative=False)
        assert result.at_withdrawal == 50_000
        assert result.ira_withdrawal == 0
        assert result.capital_gains == 0

    def test_rmd_taken_even_without_need(self, mfj_context_2024):
        """The RMD comes out of the IRA regardless of need."""
        result = solve_withdrawals(
            self._inputs(expenses=0.0, rmd_required=20_000.0), mfj_context_2024, iterative=False
        )
        assert result.ira_withdrawal == 20_000
        assert result.at_withdrawal == 0
        assert result.excess_rmd == 20_000

    def test_roth_last(self, mfj_context_2024):
        """Roth is tapped only after the IRA is empty."""
        result = solve_withdrawals(
            self._inputs(at_boy=0.0, cost_basis_boy=0.0, ira_available=10_000.0), mfj_context_2024, iterative=False
        )
        assert result.ira_withdrawal == 10_000
        assert result.roth_withdrawal == 40_000

    def test_shortfall(self, mfj_context_2024):
        """Need beyond every account is reported as shortfall."""
        result = solve_withdrawals(
            self._inputs(at_boy=0.0, cost_basis_boy=0.0, ira_available=0.0, roth_boy=10_000.0),
            mfj_context_2024,
            iterative=False,
        )
        assert result.shortfall == 40_000

    def test_gain_ratio(self):
        """Gains share follows unrealized gain times the taxable percent."""
        inputs = self._inputs(cost_basis_boy=25_000.0, capital_gains_percent=0.75)
        assert inputs.gain_ratio == pytest.approx(0.5625)

    def test_iteration_cap(self, mfj_context_2024):
        """Zero tolerance runs until the cap."""
        result = solve_withdrawals(
            self._inputs(at_boy=0.0, cost_basis_boy=0.0, expenses=300_000.0),
            mfj_context_2024,
            iterative=True,
            max_iterations=3,
            tolerance=0.0,
        )
        assert result.iterations == 3
        assert not result.converged

    def test_single_pass_converged(self, mfj_context_2024):
        """Non-iterative mode returns its one pass as final."""
        result = solve_withdrawals(self._inputs(), mfj_context_2024, iterative=False, max_iterations=5)
        assert result.iterations == 1
        assert result.converged

    def test_stops_once_converged(self, mfj_context_2024):
        """Iteration ends as soon as the tax settles, before the cap."""
        result = solve_withdrawals(self._inputs(), mfj_context_2024, iterative=True, max_iterations=10)
        assert result.converged
        assert result.iterations < 10

    def test_cap_below_one_runs_once(self, mfj_context_2024):
        """A cap under one still makes a single pass."""
        result = solve_withdrawals(self._inputs(), mfj_context_2024, iterative=True, max_iterations=0)
        assert result.iterations == 1
