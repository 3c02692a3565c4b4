"""Tax calculation logic for retirement projections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from projection.state_tax import StateTaxInputs, StateTaxResult, StateTaxStrategy
from projection.tax_tables import (
    IRMAA_TABLE_YEAR,
    NIIT_RATE,
    RMD_START_AGE,
    RMD_UNIFORM_LIFETIME_TABLE,
    TAX_TABLE_YEAR,
    FilingTables,
    IrmaaTier,
    TaxBracket,
    get_rmd_divisor,
    inflate_brackets,
    inflate_irmaa,
    years_from_anchor,
)
from utils.helpers import growth_factor, round_currency


@dataclass(frozen=True)
class IrmaaResult:
    """Annual Medicare premiums for the household."""

    part_b: float
    part_d: float
    total: float
    tier: int


@dataclass(frozen=True)
class RmdResult:
    """Required minimum distribution and the divisor that produced it."""

    required: float
    factor: float


def _upper_bound(brackets: Sequence[TaxBracket], index: int) -> float:
    if index < len(brackets) - 1:
        return brackets[index + 1].threshold
    return float("inf")


def federal_tax(taxable_income: float, brackets: Sequence[TaxBracket]) -> float:
    """
    Calculate federal income tax using marginal tax brackets.

    Args:
        taxable_income: Income after deductions
        brackets: Ascending brackets, first threshold 0

    Returns:
        Tax rounded to whole dollars
    """
    if taxable_income <= 0:
        return 0.0

    tax = 0.0
    for i, bracket in enumerate(brackets):
        if taxable_income <= bracket.threshold:
            break
        bracket_income = min(taxable_income, _upper_bound(brackets, i)) - bracket.threshold
        tax += bracket_income * bracket.rate

    return round_currency(tax)


def capital_gains_tax(
    gains: float,
    taxable_ordinary_income: float,
    brackets: Sequence[TaxBracket],
) -> float:
    """
    Calculate long-term capital gains tax.

    Capital gains are stacked on top of ordinary income to determine
    which brackets they fall into.

    Args:
        gains: Long-term capital gains amount
        taxable_ordinary_income: Ordinary taxable income (determines starting bracket)
        brackets: LTCG brackets

    Returns:
        Capital gains tax rounded to whole dollars
    """
    if gains <= 0:
        return 0.0

    tax = 0.0
    gains_remaining = gains
    income_so_far = max(0.0, taxable_ordinary_income)

    for i, bracket in enumerate(brackets):
        if gains_remaining <= 0:
            break

        upper_bound = _upper_bound(brackets, i)
        # Bracket already filled by ordinary income
        if income_so_far >= upper_bound:
            continue

        start = max(income_so_far, bracket.threshold)
        gains_in_bracket = min(gains_remaining, upper_bound - start)
        tax += gains_in_bracket * bracket.rate

        gains_remaining -= gains_in_bracket
        income_so_far = start + gains_in_bracket

    return round_currency(tax)


def niit(
    investment_income: float,
    magi: float,
    threshold: float,
    rate: float = NIIT_RATE,
) -> float:
    """
    Calculate Net Investment Income Tax.

    NIIT applies to the lesser of investment income or the excess of
    MAGI over the filing threshold.
    """
    if investment_income <= 0:
        return 0.0

    excess_magi = max(0.0, magi - threshold)
    if excess_magi <= 0:
        return 0.0

    return round_currency(min(investment_income, excess_magi) * rate)


def taxable_social_security(
    ss_benefit: float,
    other_income: float,
    tier1: float,
    tier2: float,
) -> float:
    """
    Calculate the taxable portion of Social Security benefits.

    Uses the combined income method: other income plus half of benefits.
    Between the tiers up to 50% of the excess is taxable (capped at 50% of
    benefits); above tier 2, 85% of the excess is added, capped at 85% of
    benefits.
    """
    combined_income = other_income + 0.5 * ss_benefit

    if combined_income <= tier1:
        return 0.0
    if combined_income <= tier2:
        return min(0.5 * ss_benefit, 0.5 * (combined_income - tier1))

    tier1_portion = 0.5 * (tier2 - tier1)
    tier2_portion = 0.85 * (combined_income - tier2)
    return min(0.85 * ss_benefit, tier1_portion + tier2_portion)


def irmaa(magi: float, tiers: Sequence[IrmaaTier], people: int = 2) -> IrmaaResult:
    """
    Calculate annual IRMAA-adjusted Medicare premiums.

    Selects the highest tier whose threshold MAGI strictly exceeds, falling
    back to the base tier. The caller supplies MAGI from two years prior.

    Args:
        magi: Lookback MAGI
        tiers: Inflated IRMAA tiers
        people: Number of people on Medicare

    Returns:
        IrmaaResult with annual Part B, Part D and total
    """
    tier_index = 0
    for i in range(len(tiers) - 1, -1, -1):
        if magi > tiers[i].threshold:
            tier_index = i
            break

    tier = tiers[tier_index]
    return IrmaaResult(
        part_b=round_currency(tier.part_b * 12 * people),
        part_d=round_currency(tier.part_d * 12 * people),
        total=round_currency((tier.part_b + tier.part_d) * 12 * people),
        tier=tier_index,
    )


def rmd(
    ira_balance: float,
    age: int,
    divisor_table: Mapping[int, float] = RMD_UNIFORM_LIFETIME_TABLE,
    start_age: int = RMD_START_AGE,
) -> RmdResult:
    """
    Calculate Required Minimum Distribution for a traditional IRA.

    Args:
        ira_balance: Balance at the start of the year
        age: Account holder's age in the projection year
        divisor_table: Age -> distribution period
        start_age: Age at which RMDs begin

    Returns:
        RmdResult with the rounded required amount and divisor used
    """
    if age < start_age:
        return RmdResult(required=0.0, factor=0.0)

    factor = get_rmd_divisor(age, divisor_table)
    return RmdResult(required=round_currency(max(0.0, ira_balance) / factor), factor=factor)


def federal_marginal_rate(taxable_income: float, brackets: Sequence[TaxBracket]) -> float:
    """Marginal rate of the bracket `taxable_income` falls in."""
    rate = brackets[0].rate
    for bracket in brackets:
        if taxable_income > bracket.threshold:
            rate = bracket.rate
    return rate


def bracket_room(taxable_income: float, brackets: Sequence[TaxBracket]) -> float:
    """
    Dollars of additional income before the next bracket starts.

    Returns infinity in the top bracket.
    """
    income = max(0.0, taxable_income)
    for i, bracket in enumerate(brackets):
        upper_bound = _upper_bound(brackets, i)
        if bracket.threshold <= income < upper_bound:
            return upper_bound - income
    return float("inf")


def standard_deduction(tables: FilingTables, inflation_rate: float, years: int) -> float:
    """Standard deduction including the senior bonus, inflated and rounded."""
    base = tables.standard_deduction + tables.senior_bonus
    return round_currency(base * growth_factor(inflation_rate, years))


@dataclass(frozen=True)
class YearTaxContext:
    """
    Inflated tables and tax knobs for one projection year.

    Built once per year before any tax function is called.
    """

    tables: FilingTables
    federal_brackets: tuple[TaxBracket, ...]
    ltcg_brackets: tuple[TaxBracket, ...]
    irmaa_tiers: tuple[IrmaaTier, ...]
    standard_deduction: float
    state_strategy: StateTaxStrategy
    exempt_ss_from_tax: bool = False
    property_tax: float = 0.0


def build_year_context(
    tables: FilingTables,
    year: int,
    bracket_inflation: float,
    state_strategy: StateTaxStrategy,
    exempt_ss_from_tax: bool = False,
    property_tax: float = 0.0,
) -> YearTaxContext:
    """Inflate every table for `year` from its own anchor year."""
    tax_years = years_from_anchor(year, TAX_TABLE_YEAR)
    irmaa_years = years_from_anchor(year, IRMAA_TABLE_YEAR)
    return YearTaxContext(
        tables=tables,
        federal_brackets=inflate_brackets(tables.federal_brackets, bracket_inflation, tax_years),
        ltcg_brackets=inflate_brackets(tables.ltcg_brackets, bracket_inflation, tax_years),
        irmaa_tiers=inflate_irmaa(tables.irmaa_tiers, bracket_inflation, irmaa_years),
        standard_deduction=standard_deduction(tables, bracket_inflation, tax_years),
        state_strategy=state_strategy,
        exempt_ss_from_tax=exempt_ss_from_tax,
        property_tax=property_tax,
    )


@dataclass(frozen=True)
class YearTaxes:
    """Every tax component for one year and the bases that produced them."""

    taxable_ss: float
    gross_ordinary_income: float
    taxable_ordinary: float
    capital_gains: float
    federal_tax: float
    ltcg_tax: float
    niit: float
    state: StateTaxResult
    magi: float
    standard_deduction: float

    @property
    def state_tax(self) -> float:
        return self.state.tax

    @property
    def total_tax(self) -> float:
        return self.federal_tax + self.ltcg_tax + self.niit + self.state_tax

    @property
    def effective_rate(self) -> float:
        income = self.gross_ordinary_income + self.capital_gains
        if income <= 0:
            return 0.0
        return self.total_tax / income


def calculate_year_taxes(
    context: YearTaxContext,
    ss_benefit: float,
    ira_withdrawal: float,
    roth_conversion: float,
    capital_gains: float,
    other_ordinary_income: float = 0.0,
) -> YearTaxes:
    """
    Calculate all taxes for a year's income.

    Tax treatment:
    - IRA withdrawals and Roth conversions: ordinary income
    - After-tax account gains: long-term capital gains, stacked on ordinary
    - Roth withdrawals: tax-free
    - Social Security: partially taxable via combined income

    Args:
        context: Inflated tables for the year
        ss_benefit: Annual Social Security received
        ira_withdrawal: Traditional IRA distributions
        roth_conversion: Amount converted from IRA to Roth
        capital_gains: Realized long-term gains
        other_ordinary_income: Any other ordinary income

    Returns:
        YearTaxes with every component
    """
    tables = context.tables
    other_income_for_ss = ira_withdrawal + roth_conversion + other_ordinary_income + capital_gains

    if context.exempt_ss_from_tax:
        taxable_ss = 0.0
    else:
        taxable_ss = taxable_social_security(
            ss_benefit,
            other_income_for_ss,
            tables.ss_thresholds.tier1,
            tables.ss_thresholds.tier2,
        )

    gross_ordinary = taxable_ss + ira_withdrawal + roth_conversion + other_ordinary_income
    taxable_ordinary = max(0.0, gross_ordinary - context.standard_deduction)

    federal = federal_tax(taxable_ordinary, context.federal_brackets)
    ltcg = capital_gains_tax(capital_gains, taxable_ordinary, context.ltcg_brackets)

    magi = gross_ordinary + capital_gains
    niit_tax = niit(capital_gains, magi, tables.niit_threshold)

    state = context.state_strategy.calculate(
        StateTaxInputs(
            investment_income=capital_gains,
            ordinary_income=gross_ordinary,
            agi=magi,
            property_tax=context.property_tax,
        ),
        tables,
    )

    return YearTaxes(
        taxable_ss=taxable_ss,
        gross_ordinary_income=gross_ordinary,
        taxable_ordinary=taxable_ordinary,
        capital_gains=capital_gains,
        federal_tax=federal,
        ltcg_tax=ltcg,
        niit=niit_tax,
        state=state,
        magi=magi,
        standard_deduction=context.standard_deduction,
    )
