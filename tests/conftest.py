"""Shared pytest fixtures for retirement projection tests."""

import pytest

from projection.heirs import Heir
from projection.parameters import ProjectionParams, ReturnMode
from projection.projections import generate_projections
from projection.state_tax import get_state_tax_strategy
from projection.tax_tables import MFJ_TABLES
from projection.taxes import build_year_context


@pytest.fixture
def base_params() -> ProjectionParams:
    """Five-year projection with fixed 4/6/8% returns and no conversions."""
    return ProjectionParams(
        start_year=2026,
        end_year=2030,
        birth_year=1955,
        at_start=100_000.0,
        ira_start=500_000.0,
        roth_start=200_000.0,
        at_cost_basis=25_000.0,
        return_mode=ReturnMode.ACCOUNT,
        at_return=0.04,
        ira_return=0.06,
        roth_return=0.08,
        ss_monthly=3_000.0,
        ss_cola=0.02,
        annual_expenses=80_000.0,
        expense_inflation=0.03,
        magi_two_years_prior=100_000.0,
        magi_prior_year=100_000.0,
        iterative_tax=False,
    )


@pytest.fixture
def base_records(base_params):
    """Projection records for the base parameters."""
    return generate_projections(base_params)


@pytest.fixture
def two_heirs() -> tuple:
    """Even split between a no-tax-state heir and a high-earning California heir."""
    return (
        Heir(name="Alex", split=0.5, state="TX", agi=0.0),
        Heir(name="Sam", split=0.5, state="CA", agi=500_000.0),
    )


@pytest.fixture
def mfj_context_2024():
    """Uninflated 2024 joint-filer tax context with Illinois state tax."""
    return build_year_context(
        MFJ_TABLES,
        2024,
        bracket_inflation=0.03,
        state_strategy=get_state_tax_strategy("IL", 0.0495),
    )
