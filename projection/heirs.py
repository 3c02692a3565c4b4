"""Inheritance value for heirs under different distribution strategies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from projection.exceptions import ValidationError
from projection.tax_tables import DEFAULT_STATE_RATE, FEDERAL_BRACKETS_2024_MFJ, STATE_TAX_RATES
from projection.taxes import federal_marginal_rate
from utils.helpers import growth_factor, present_value, round_currency

if TYPE_CHECKING:
    from projection.parameters import ProjectionParams
    from projection.projections import ProjectionRecord


DEFAULT_HEIR_FED_RATE = 0.37
DEFAULT_HEIR_STATE_RATE = 0.0495

# Inherited IRAs must be emptied within 10 years (SECURE Act)
INHERITED_IRA_WINDOW_YEARS = 10

SPLIT_TOLERANCE = 1e-6


class DistributionStrategy(Enum):
    """How an heir draws down an inherited Traditional IRA."""

    EVEN = "even"
    LUMP_AT_WINDOW_END = "lump_at_window_end"


@dataclass(frozen=True)
class Heir:
    """
    A beneficiary of the estate.

    Attributes:
        name: Display name
        split: Fraction of the estate (all heirs' splits sum to 1.0)
        state: Two-letter state of residence
        agi: Heir's own AGI, used to look up marginal rates
        taxable_return: Heir's return on reinvested, taxable money
    """

    name: str
    split: float
    state: str = "IL"
    agi: float = 0.0
    taxable_return: float = 0.05

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Heir":
        """Create from dictionary; accepts `split` or legacy `split_percent` (0-100)."""
        if "split" in data:
            split = float(data["split"])
        else:
            split = float(data.get("split_percent", 0.0)) / 100
        return cls(
            name=str(data.get("name", "Heir")),
            split=split,
            state=str(data.get("state", "IL")),
            agi=float(data.get("agi", 0.0)),
            taxable_return=float(data.get("taxable_return", 0.05)),
        )


@dataclass(frozen=True)
class HeirRates:
    """An heir's marginal rates on inherited IRA income."""

    federal: float
    state: float

    @property
    def combined(self) -> float:
        return self.federal + self.state


@dataclass(frozen=True)
class HeirShare:
    """One heir's portion of the simple heir value."""

    name: str
    split: float
    rates: HeirRates
    gross_inheritance: float
    tax_on_ira: float
    net_value: float


@dataclass(frozen=True)
class HeirValueResult:
    """After-tax estate value across all heirs."""

    total: float
    details: tuple[HeirShare, ...] = ()


def state_marginal_rate(state_code: str) -> float:
    return STATE_TAX_RATES.get(state_code.upper(), DEFAULT_STATE_RATE)


def heir_tax_rates(heir: Heir) -> HeirRates:
    """Look up an heir's federal and state marginal rates from AGI and state."""
    return HeirRates(
        federal=federal_marginal_rate(heir.agi, FEDERAL_BRACKETS_2024_MFJ),
        state=state_marginal_rate(heir.state),
    )


def validate_heir_splits(heirs: Sequence[Heir]) -> None:
    """
    Raise if configured heirs' splits do not sum to 1.0.

    Raises:
        ValidationError: If heirs are present and splits are off
    """
    if not heirs:
        return
    total = sum(h.split for h in heirs)
    if abs(total - 1.0) > SPLIT_TOLERANCE:
        raise ValidationError("heirs", f"Splits must sum to 1.0, got {total:.4f}")
    for heir in heirs:
        if heir.split < 0:
            raise ValidationError("heirs", f"Split for {heir.name} cannot be negative")


def heir_value(
    at_balance: float,
    ira_balance: float,
    roth_balance: float,
    heir_combined_rate: float,
) -> float:
    """
    After-tax value of the estate to heirs.

    After-tax assets get a step-up in basis and Roth passes tax-free; the
    Traditional IRA is taxed at the heir's combined marginal rate.
    """
    return round_currency(at_balance + roth_balance + ira_balance * (1 - heir_combined_rate))


def multi_heir_value(
    at_balance: float,
    ira_balance: float,
    roth_balance: float,
    heirs: Sequence[Heir],
) -> HeirValueResult:
    """
    Heir value split among heirs, each taxed at their own rates.

    Falls back to default rates when no heirs are configured.
    """
    if not heirs:
        total = heir_value(
            at_balance,
            ira_balance,
            roth_balance,
            DEFAULT_HEIR_FED_RATE + DEFAULT_HEIR_STATE_RATE,
        )
        return HeirValueResult(total=total)

    validate_heir_splits(heirs)

    total = 0.0
    details = []
    for heir in heirs:
        rates = heir_tax_rates(heir)
        heir_at = at_balance * heir.split
        heir_ira = ira_balance * heir.split
        heir_roth = roth_balance * heir.split
        net = heir_at + heir_roth + heir_ira * (1 - rates.combined)

        total += net
        details.append(
            HeirShare(
                name=heir.name,
                split=heir.split,
                rates=rates,
                gross_inheritance=round_currency(heir_at + heir_ira + heir_roth),
                tax_on_ira=round_currency(heir_ira * rates.combined),
                net_value=round_currency(net),
            )
        )

    return HeirValueResult(total=round_currency(total), details=tuple(details))


@dataclass(frozen=True)
class HeirStreamValues:
    """Present value at the horizon of each inherited account for one heir."""

    name: str
    at: float
    roth: float
    ira: float

    @property
    def total(self) -> float:
        return self.at + self.roth + self.ira


@dataclass(frozen=True)
class HeirDistributionResult:
    """Normalized heir value under a distribution strategy."""

    strategy: DistributionStrategy
    horizon: int
    streams: tuple[HeirStreamValues, ...]

    @property
    def total(self) -> float:
        return sum(s.total for s in self.streams)


def _at_stream(amount: float, reinvest_return: float, horizon: int) -> float:
    # Step-up basis: received at full value, then reinvested
    return amount * growth_factor(reinvest_return, horizon)


def _roth_stream(
    amount: float,
    account_return: float,
    reinvest_return: float,
    horizon: int,
    window: int,
) -> float:
    years_inside = min(horizon, window)
    value = amount * growth_factor(account_return, years_inside)
    return value * growth_factor(reinvest_return, horizon - years_inside)


def _ira_even_stream(
    amount: float,
    tax_rate: float,
    account_return: float,
    reinvest_return: float,
    horizon: int,
    window: int,
) -> float:
    balance = amount
    value = 0.0
    for year in range(1, min(horizon, window) + 1):
        balance *= 1 + account_return
        payout = balance / (window - year + 1)
        balance -= payout
        value += payout * (1 - tax_rate) * growth_factor(reinvest_return, horizon - year)

    # Horizon shorter than the window: liquidate what is left at the horizon
    if balance > 0 and horizon < window:
        value += balance * (1 - tax_rate)
    return value


def _ira_lump_stream(
    amount: float,
    tax_rate: float,
    account_return: float,
    reinvest_return: float,
    horizon: int,
    window: int,
) -> float:
    years_inside = min(horizon, window)
    balance = amount * growth_factor(account_return, years_inside)
    after_tax = balance * (1 - tax_rate)
    return after_tax * growth_factor(reinvest_return, horizon - years_inside)


def normalized_heir_value(
    at_balance: float,
    ira_balance: float,
    roth_balance: float,
    heirs: Sequence[Heir],
    strategy: DistributionStrategy = DistributionStrategy.EVEN,
    horizon: int = INHERITED_IRA_WINDOW_YEARS,
    discount_rate: float = 0.03,
    account_return: float = 0.06,
    bracket_creep: float = 0.05,
    window: int = INHERITED_IRA_WINDOW_YEARS,
) -> HeirDistributionResult:
    """
    Compare inherited accounts on a common horizon.

    Each heir's share of every account is projected to `horizon` years out
    and discounted back at `discount_rate`:

    - After-Tax: received immediately (step-up basis), reinvested at the
      heir's taxable return.
    - Roth: compounds tax-free inside the account for up to `window` years,
      then at the heir's taxable return.
    - IRA, EVEN: each year pays out balance / years-remaining, taxed at the
      heir's combined rate, remainder reinvested at the taxable return.
    - IRA, LUMP_AT_WINDOW_END: compounds tax-deferred for `window` years, then
      is fully distributed at the heir's rate plus `bracket_creep`.

    Args:
        at_balance: After-tax estate balance
        ira_balance: Traditional IRA estate balance
        roth_balance: Roth estate balance
        heirs: Configured heirs (default rates are used when empty)
        strategy: IRA distribution strategy
        horizon: Years to project forward
        discount_rate: Rate used to discount back to the inheritance date
        account_return: Growth inside inherited IRA/Roth accounts
        bracket_creep: Rate penalty added when the IRA is taken in one year
        window: Years the inherited IRA may stay open

    Returns:
        HeirDistributionResult with per-heir stream values

    Raises:
        ValidationError: If `horizon` is negative or `window` is under one year
    """
    if horizon < 0:
        raise ValidationError("horizon", "Cannot be negative")
    if window < 1:
        raise ValidationError("window", "Must be at least one year")

    if heirs:
        validate_heir_splits(heirs)
        shares = [(heir, heir_tax_rates(heir)) for heir in heirs]
    else:
        default_heir = Heir(name="Heirs", split=1.0, taxable_return=account_return)
        shares = [(default_heir, HeirRates(DEFAULT_HEIR_FED_RATE, DEFAULT_HEIR_STATE_RATE))]

    streams = []
    for heir, rates in shares:
        at_value = _at_stream(at_balance * heir.split, heir.taxable_return, horizon)
        roth_value = _roth_stream(
            roth_balance * heir.split, account_return, heir.taxable_return, horizon, window
        )
        if strategy == DistributionStrategy.LUMP_AT_WINDOW_END:
            ira_value = _ira_lump_stream(
                ira_balance * heir.split,
                min(1.0, rates.combined + bracket_creep),
                account_return,
                heir.taxable_return,
                horizon,
                window,
            )
        else:
            ira_value = _ira_even_stream(
                ira_balance * heir.split,
                rates.combined,
                account_return,
                heir.taxable_return,
                horizon,
                window,
            )

        streams.append(
            HeirStreamValues(
                name=heir.name,
                at=round_currency(present_value(at_value, horizon, discount_rate)),
                roth=round_currency(present_value(roth_value, horizon, discount_rate)),
                ira=round_currency(present_value(ira_value, horizon, discount_rate)),
            )
        )

    return HeirDistributionResult(strategy=strategy, horizon=horizon, streams=tuple(streams))


def _final_estate_value(
    last: "ProjectionRecord",
    params: "ProjectionParams",
    strategy: DistributionStrategy,
) -> HeirDistributionResult:
    return normalized_heir_value(
        at_balance=last.at_eoy,
        ira_balance=last.ira_eoy,
        roth_balance=last.roth_eoy,
        heirs=params.heirs,
        strategy=strategy,
        horizon=params.heir_normalization_years,
        discount_rate=params.discount_rate,
        account_return=params.heir_account_return,
        bracket_creep=params.heir_bracket_creep,
    )


def estate_heir_value(
    records: Sequence["ProjectionRecord"],
    params: "ProjectionParams",
) -> HeirDistributionResult:
    """
    Normalized heir value of the final estate under the configured strategy.

    Raises:
        ValueError: If `records` is empty
    """
    if not records:
        raise ValueError("Cannot value the estate of an empty projection")
    return _final_estate_value(records[-1], params, params.heir_distribution_strategy)


def heir_analysis(
    records: Sequence["ProjectionRecord"],
    params: "ProjectionParams",
) -> dict[DistributionStrategy, HeirDistributionResult]:
    """
    Normalized heir value of the final projected estate under each strategy.

    Raises:
        ValueError: If `records` is empty
    """
    if not records:
        raise ValueError("Cannot analyze heirs of an empty projection")

    last = records[-1]
    return {strategy: _final_estate_value(last, params, strategy) for strategy in DistributionStrategy}
