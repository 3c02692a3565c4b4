"""Parameter set for a retirement projection run."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from projection.exceptions import ValidationError
from projection.heirs import DistributionStrategy, Heir
from projection.tax_tables import FilingStatus


class ReturnMode(Enum):
    """How annual growth rates are chosen for each account."""

    ACCOUNT = "account"
    BLENDED = "blended"


@dataclass(frozen=True)
class SurvivorEvent:
    """
    Death of the first spouse.

    From `death_year` onward the survivor files single, one person is on
    Medicare, and Social Security and expenses are scaled down.

    Attributes:
        death_year: Year of death
        ss_percent: Fraction of combined Social Security the survivor keeps
        expense_percent: Fraction of household expenses that remain
    """

    death_year: int
    ss_percent: float = 0.67
    expense_percent: float = 0.70

    def is_active(self, year: int) -> bool:
        return year >= self.death_year

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SurvivorEvent":
        return cls(
            death_year=int(data["death_year"]),
            ss_percent=float(data.get("ss_percent", 0.67)),
            expense_percent=float(data.get("expense_percent", 0.70)),
        )


def amount_for_year(amounts: Mapping[int, float], year: int) -> float:
    """Look up a sparse year -> amount map; absent years are zero."""
    return float(amounts.get(year, 0.0))


def _year_map(value: Mapping[Any, Any] | None) -> Mapping[int, float]:
    """Read-only year -> amount view with int keys and float amounts."""
    if not value:
        return MappingProxyType({})
    return MappingProxyType({int(year): float(amount) for year, amount in value.items()})


@dataclass(frozen=True)
class ProjectionParams:
    """
    Immutable inputs for one projection run.

    Balances are in nominal dollars at the start of `start_year`. Rates are
    annual decimals (0.04 = 4%). Year -> amount maps are sparse; years that
    are absent default to zero (or, for expense overrides, to the inflated
    base expense).
    """

    # Timeline
    start_year: int = 2025
    end_year: int = 2054
    birth_year: int = 1960
    filing_status: FilingStatus = FilingStatus.MARRIED_FILING_JOINTLY

    # Starting balances
    at_start: float = 1_500_000.0
    ira_start: float = 3_000_000.0
    roth_start: float = 2_000_000.0
    at_cost_basis: float = 500_000.0

    # Returns
    return_mode: ReturnMode = ReturnMode.BLENDED
    at_return: float = 0.04
    ira_return: float = 0.06
    roth_return: float = 0.08
    low_risk_target: float = 2_500_000.0
    mod_risk_target: float = 2_500_000.0
    low_risk_return: float = 0.04
    mod_risk_return: float = 0.06
    high_risk_return: float = 0.08

    # Social Security
    ss_monthly: float = 4_000.0
    ss_cola: float = 0.025

    # Expenses
    annual_expenses: float = 120_000.0
    expense_inflation: float = 0.03
    expense_overrides: Mapping[int, float] = field(default_factory=dict, hash=False)

    # Taxes
    state_code: str = "IL"
    state_tax_rate: float = 0.0495
    capital_gains_percent: float = 0.75
    bracket_inflation: float = 0.03
    exempt_ss_from_tax: bool = False
    annual_property_tax: float = 0.0

    # Scheduled moves
    roth_conversions: Mapping[int, float] = field(default_factory=dict, hash=False)
    at_harvest_overrides: Mapping[int, float] = field(default_factory=dict, hash=False)

    # MAGI history for the IRMAA two-year lookback
    magi_two_years_prior: float = 0.0
    magi_prior_year: float = 0.0

    survivor: SurvivorEvent | None = None

    # Heirs
    heirs: tuple[Heir, ...] = ()
    heir_fed_rate: float = 0.32
    heir_state_rate: float = 0.0495
    heir_distribution_strategy: DistributionStrategy = DistributionStrategy.EVEN
    heir_normalization_years: int = 10
    heir_account_return: float = 0.06
    heir_bracket_creep: float = 0.05

    # Calculation options
    iterative_tax: bool = True
    max_iterations: int = 5
    tax_tolerance: float = 100.0
    discount_rate: float = 0.03

    def __post_init__(self) -> None:
        """Normalize loosely-typed inputs (strings, dicts, lists) to their types."""
        object.__setattr__(self, "filing_status", FilingStatus(self.filing_status))
        object.__setattr__(self, "return_mode", ReturnMode(self.return_mode))
        object.__setattr__(
            self,
            "heir_distribution_strategy",
            DistributionStrategy(self.heir_distribution_strategy),
        )
        for name in ("expense_overrides", "roth_conversions", "at_harvest_overrides"):
            object.__setattr__(self, name, _year_map(getattr(self, name)))
        if isinstance(self.survivor, Mapping):
            object.__setattr__(self, "survivor", SurvivorEvent.from_dict(self.survivor))
        object.__setattr__(
            self,
            "heirs",
            tuple(h if isinstance(h, Heir) else Heir.from_dict(h) for h in (self.heirs or ())),
        )

    @property
    def years(self) -> int:
        """Number of years projected (0 for an inverted range)."""
        return max(0, self.end_year - self.start_year + 1)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "ProjectionParams":
        return merge_params(self, overrides)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectionParams":
        """Create from a flat dictionary; missing fields take defaults."""
        return merge_params(cls(), data)


PARAM_FIELDS: frozenset[str] = frozenset(f.name for f in fields(ProjectionParams))


def merge_params(base: ProjectionParams, overrides: Mapping[str, Any]) -> ProjectionParams:
    """
    Apply overrides on top of a base parameter set; the override wins per field.

    Raises:
        ValidationError: If an override names a field ProjectionParams lacks
    """
    unknown = sorted(set(overrides) - PARAM_FIELDS)
    if unknown:
        raise ValidationError(unknown[0], "Unknown parameter")
    if not overrides:
        return base
    return replace(base, **dict(overrides))
