"""Year-by-year projection engine with iterative tax calculation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from projection.allocation import RiskAllocation, blended_return, calculate_risk_allocation
from projection.heirs import HeirShare, heir_value, multi_heir_value, validate_heir_splits
from projection.parameters import ProjectionParams, ReturnMode, amount_for_year
from projection.state_tax import StateTaxStrategy, get_state_tax_strategy
from projection.tax_tables import SINGLE_TABLES, FilingStatus, FilingTables, tables_for
from projection.taxes import (
    IrmaaResult,
    YearTaxContext,
    YearTaxes,
    build_year_context,
    calculate_year_taxes,
    irmaa,
    rmd,
)
from utils.helpers import format_currency, growth_factor, present_value, round_currency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WithdrawalInputs:
    """Everything the withdrawal solver needs for one year."""

    at_boy: float
    ira_available: float
    roth_boy: float
    cost_basis_boy: float
    ss_annual: float
    expenses: float
    irmaa_total: float
    rmd_required: float
    roth_conversion: float
    at_harvest_request: float = 0.0
    capital_gains_percent: float = 0.75

    @property
    def gain_ratio(self) -> float:
        """Fraction of each After-Tax dollar withdrawn that is a taxable gain."""
        if self.at_boy <= 0:
            return 0.0
        unrealized = max(0.0, 1 - self.cost_basis_boy / self.at_boy)
        return unrealized * self.capital_gains_percent


@dataclass(frozen=True)
class WithdrawalResult:
    """Withdrawals, harvest and taxes the solver settled on."""

    at_withdrawal: float
    ira_withdrawal: float
    roth_withdrawal: float
    at_harvest: float
    capital_gains: float
    harvest_gains: float
    taxes: YearTaxes
    shortfall: float
    iterations: int
    converged: bool
    excess_rmd: float = 0.0

    @property
    def total_withdrawal(self) -> float:
        return self.at_withdrawal + self.ira_withdrawal + self.roth_withdrawal


def _allocate_withdrawals(need: float, inputs: WithdrawalInputs) -> tuple[float, float, float, float, float]:
    """
    Split a cash need across accounts.

    Order: the RMD from the IRA (mandatory even if cash is not needed), then
    After-Tax, then additional IRA, then Roth last. Returns the three
    withdrawals, any need left unmet, and the part of the RMD the need did
    not use.
    """
    ira_w = min(inputs.ira_available, max(inputs.rmd_required, 0.0))
    excess_rmd = max(0.0, ira_w - need)
    need -= ira_w

    at_w = 0.0
    if need > 0 and inputs.at_boy > 0:
        at_w = min(inputs.at_boy, need)
        need -= at_w

    if need > 0 and inputs.ira_available > ira_w:
        additional = min(inputs.ira_available - ira_w, need)
        ira_w += additional
        need -= additional

    roth_w = 0.0
    if need > 0 and inputs.roth_boy > 0:
        roth_w = min(inputs.roth_boy, need)
        need -= roth_w

    return at_w, ira_w, roth_w, max(0.0, need), excess_rmd


def _solve_pass(
    inputs: WithdrawalInputs,
    context: YearTaxContext,
    estimated_tax: float,
    iteration: int,
    iterative: bool,
    tolerance: float,
) -> WithdrawalResult:
    """Size withdrawals for one tax estimate and compute the resulting tax."""
    need = max(0.0, inputs.expenses + inputs.irmaa_total + estimated_tax - inputs.ss_annual)
    at_w, ira_w, roth_w, unmet, excess_rmd = _allocate_withdrawals(need, inputs)

    # Harvested shares are sold and bought back, so they only realize gains
    at_harvest = min(max(0.0, inputs.at_harvest_request), max(0.0, inputs.at_boy - at_w))
    capital_gains = (at_w + at_harvest) * inputs.gain_ratio

    taxes = calculate_year_taxes(
        context,
        ss_benefit=inputs.ss_annual,
        ira_withdrawal=ira_w,
        roth_conversion=inputs.roth_conversion,
        capital_gains=capital_gains,
    )
    return WithdrawalResult(
        at_withdrawal=at_w,
        ira_withdrawal=ira_w,
        roth_withdrawal=roth_w,
        at_harvest=at_harvest,
        capital_gains=capital_gains,
        harvest_gains=at_harvest * inputs.gain_ratio,
        taxes=taxes,
        shortfall=unmet,
        iterations=iteration,
        converged=not iterative or abs(taxes.total_tax - estimated_tax) < tolerance,
        excess_rmd=excess_rmd,
    )


def solve_withdrawals(
    inputs: WithdrawalInputs,
    context: YearTaxContext,
    iterative: bool = True,
    max_iterations: int = 5,
    tolerance: float = 100.0,
) -> WithdrawalResult:
    """
    Find withdrawals that cover expenses plus the tax those withdrawals cause.

    Tax depends on the withdrawal and the withdrawal depends on the tax, so
    this iterates: start with a zero tax estimate, size the withdrawal, compute
    the actual tax, and repeat with that tax until it moves by less than
    `tolerance` or `max_iterations` passes have run. With `iterative` off a
    single pass is made and its tax is not funded by the withdrawal.

    Args:
        inputs: Balances and cash needs for the year
        context: Inflated tax tables for the year
        iterative: Whether to iterate at all
        max_iterations: Cap on passes
        tolerance: Convergence threshold in dollars

    Returns:
        WithdrawalResult from the last pass, with the pass count
    """
    passes = max(1, max_iterations) if iterative else 1
    result = _solve_pass(inputs, context, 0.0, 1, iterative, tolerance)

    while not result.converged and result.iterations < passes:
        result = _solve_pass(
            inputs, context, result.taxes.total_tax, result.iterations + 1, iterative, tolerance
        )

    if not result.converged:
        logger.debug(f"Tax estimate did not converge within {passes} iterations")
    return result


@dataclass(frozen=True)
class ProjectionRecord:
    """
    One projected year. Dollar amounts are rounded to whole dollars.

    BOY/EOY are beginning and end of year. Growth is applied after the Roth
    conversion and withdrawals. PV fields are discounted to `start_year`.
    """

    # Identifiers
    year: int
    age: int
    years_from_start: int
    is_survivor: bool
    filing_status: FilingStatus

    # Beginning of year
    at_boy: float
    ira_boy: float
    roth_boy: float
    total_boy: float
    cost_basis_boy: float

    # Returns
    effective_at_return: float
    effective_ira_return: float
    effective_roth_return: float
    at_growth: float
    ira_growth: float
    roth_growth: float

    # Income and expenses
    ss_annual: float
    expenses: float
    roth_conversion: float

    # RMD
    rmd_factor: float
    rmd_required: float

    # Withdrawals
    at_withdrawal: float
    ira_withdrawal: float
    roth_withdrawal: float
    total_withdrawal: float
    at_harvest: float
    excess_rmd: float
    shortfall: float
    iterations: int

    # Taxes
    taxable_ss: float
    ordinary_income: float
    standard_deduction: float
    taxable_ordinary: float
    capital_gains: float
    federal_tax: float
    ltcg_tax: float
    niit: float
    state_tax: float
    total_tax: float
    magi: float

    # IRMAA (MAGI from two years prior)
    irmaa_magi: float
    irmaa_part_b: float
    irmaa_part_d: float
    irmaa_total: float
    irmaa_tier: int

    # End of year
    at_eoy: float
    ira_eoy: float
    roth_eoy: float
    total_eoy: float
    cost_basis_eoy: float
    roth_percent: float

    # Heirs
    heir_value: float

    # Cumulative
    cumulative_tax: float
    cumulative_irmaa: float
    cumulative_expenses: float
    cumulative_capital_gains: float

    # Present values
    pv_at_eoy: float
    pv_ira_eoy: float
    pv_roth_eoy: float
    pv_total_eoy: float
    pv_heir_value: float
    pv_expenses: float

    heir_details: tuple[HeirShare, ...] = ()
    risk_allocation: RiskAllocation | None = None

    @property
    def has_shortfall(self) -> bool:
        return self.shortfall > 0


@dataclass
class _RunningTotals:
    at: float
    ira: float
    roth: float
    cost_basis: float
    tax: float = 0.0
    irmaa: float = 0.0
    expenses: float = 0.0
    capital_gains: float = 0.0


def expenses_for_year(params: ProjectionParams, year: int) -> float:
    """Override for the year if present, otherwise the inflated base."""
    if year in params.expense_overrides:
        return float(params.expense_overrides[year])
    return params.annual_expenses * growth_factor(params.expense_inflation, year - params.start_year)


def social_security_for_year(params: ProjectionParams, year: int) -> float:
    return params.ss_monthly * 12 * growth_factor(params.ss_cola, year - params.start_year)


def _effective_returns(
    params: ProjectionParams,
    at_boy: float,
    ira_boy: float,
    roth_boy: float,
) -> tuple[float, float, float, RiskAllocation | None]:
    if params.return_mode != ReturnMode.BLENDED:
        return params.at_return, params.ira_return, params.roth_return, None

    allocation = calculate_risk_allocation(
        at_boy + ira_boy + roth_boy,
        at_boy,
        ira_boy,
        roth_boy,
        params.low_risk_target,
        params.mod_risk_target,
    )
    rates = (params.low_risk_return, params.mod_risk_return, params.high_risk_return)
    return (
        blended_return(allocation.at, *rates),
        blended_return(allocation.ira, *rates),
        blended_return(allocation.roth, *rates),
        allocation,
    )


def generate_projections(params: ProjectionParams | None = None) -> list[ProjectionRecord]:
    """
    Project balances, withdrawals and taxes for every year in the window.

    Each year starts from the previous year's ending balances. An end year
    before the start year yields an empty list. Insufficient funds are
    reported as a shortfall on the record rather than raised.

    Args:
        params: Parameter set (defaults used when None)

    Returns:
        One ProjectionRecord per year, in chronological order

    Raises:
        ValidationError: If configured heirs' splits do not sum to 1.0
    """
    if params is None:
        params = ProjectionParams()

    validate_heir_splits(params.heirs)
    if params.end_year < params.start_year:
        logger.info(f"Empty projection window {params.start_year}-{params.end_year}")
        return []

    logger.info(f"Projecting {params.years} years ({params.start_year}-{params.end_year})")

    # Filing status is resolved once; survivor years switch to the single bundle
    household_tables = tables_for(params.filing_status)
    state_strategy = get_state_tax_strategy(params.state_code, params.state_tax_rate)

    magi_history: dict[int, float] = {
        params.start_year - 2: params.magi_two_years_prior,
        params.start_year - 1: params.magi_prior_year,
    }
    totals = _RunningTotals(
        at=params.at_start,
        ira=params.ira_start,
        roth=params.roth_start,
        cost_basis=min(params.at_cost_basis, params.at_start),
    )

    records: list[ProjectionRecord] = []
    for year in range(params.start_year, params.end_year + 1):
        is_survivor = params.survivor is not None and params.survivor.is_active(year)
        tables = SINGLE_TABLES if is_survivor else household_tables
        record = _project_year(params, year, is_survivor, tables, state_strategy, magi_history, totals)
        records.append(record)

        if record.has_shortfall:
            logger.warning(f"{year}: shortfall of {format_currency(record.shortfall)}")
        logger.debug(
            f"{year}: total EOY {format_currency(record.total_eoy)}, tax {format_currency(record.total_tax)}, "
            f"{record.iterations} iteration(s)"
        )

    logger.info(f"Projection complete: {len(records)} records")
    return records


def _project_year(
    params: ProjectionParams,
    year: int,
    is_survivor: bool,
    tables: FilingTables,
    state_strategy: StateTaxStrategy,
    magi_history: dict[int, float],
    totals: _RunningTotals,
) -> ProjectionRecord:
    """Advance the running balances by one year and build its record."""
    years_from_start = year - params.start_year
    age = year - params.birth_year

    at_boy, ira_boy, roth_boy = totals.at, totals.ira, totals.roth
    cost_basis_boy = totals.cost_basis
    total_boy = at_boy + ira_boy + roth_boy

    at_rate, ira_rate, roth_rate, risk_allocation = _effective_returns(params, at_boy, ira_boy, roth_boy)

    ss_annual = social_security_for_year(params, year)
    expenses = expenses_for_year(params, year)
    if is_survivor:
        ss_annual *= params.survivor.ss_percent
        expenses *= params.survivor.expense_percent

    rmd_result = rmd(ira_boy, age)

    # Conversion comes out of the IRA before withdrawals and growth
    requested_conversion = max(0.0, amount_for_year(params.roth_conversions, year))
    roth_conversion = min(requested_conversion, max(0.0, ira_boy))
    ira_available = max(0.0, ira_boy - roth_conversion)

    context = build_year_context(
        tables,
        year,
        params.bracket_inflation,
        state_strategy,
        exempt_ss_from_tax=params.exempt_ss_from_tax,
        property_tax=params.annual_property_tax,
    )

    irmaa_magi = magi_history.get(year - 2, 0.0)
    premiums: IrmaaResult = irmaa(irmaa_magi, context.irmaa_tiers, tables.people_on_medicare)

    withdrawal = solve_withdrawals(
        WithdrawalInputs(
            at_boy=at_boy,
            ira_available=ira_available,
            roth_boy=roth_boy,
            cost_basis_boy=cost_basis_boy,
            ss_annual=ss_annual,
            expenses=expenses,
            irmaa_total=premiums.total,
            rmd_required=rmd_result.required,
            roth_conversion=roth_conversion,
            at_harvest_request=amount_for_year(params.at_harvest_overrides, year),
            capital_gains_percent=params.capital_gains_percent,
        ),
        context,
        iterative=params.iterative_tax,
        max_iterations=params.max_iterations,
        tolerance=params.tax_tolerance,
    )
    taxes = withdrawal.taxes
    magi_history[year] = taxes.magi

    # RMD dollars the year did not need are reinvested in After-Tax at full basis
    at_after = at_boy - withdrawal.at_withdrawal + withdrawal.excess_rmd
    ira_after = ira_available - withdrawal.ira_withdrawal
    roth_after = roth_boy - withdrawal.roth_withdrawal + roth_conversion

    at_eoy = max(0.0, at_after * (1 + at_rate))
    ira_eoy = max(0.0, ira_after * (1 + ira_rate))
    roth_eoy = max(0.0, roth_after * (1 + roth_rate))
    total_eoy = at_eoy + ira_eoy + roth_eoy

    # Basis leaves pro rata with withdrawals; harvested gains and reinvested RMD add to it
    basis_used = cost_basis_boy * (withdrawal.at_withdrawal / at_boy) if at_boy > 0 else 0.0
    basis_after = cost_basis_boy - basis_used + withdrawal.harvest_gains + withdrawal.excess_rmd
    cost_basis_eoy = min(max(0.0, basis_after), at_eoy)

    if params.heirs:
        heirs_result = multi_heir_value(at_eoy, ira_eoy, roth_eoy, params.heirs)
        estate_value, heir_details = heirs_result.total, heirs_result.details
    else:
        estate_value = heir_value(
            at_eoy, ira_eoy, roth_eoy, params.heir_fed_rate + params.heir_state_rate
        )
        heir_details = ()

    totals.tax += taxes.total_tax
    totals.irmaa += premiums.total
    totals.expenses += expenses
    totals.capital_gains += withdrawal.capital_gains

    totals.at, totals.ira, totals.roth = at_eoy, ira_eoy, roth_eoy
    totals.cost_basis = cost_basis_eoy

    def pv(value: float) -> float:
        return round_currency(present_value(value, years_from_start, params.discount_rate))

    return ProjectionRecord(
        year=year,
        age=age,
        years_from_start=years_from_start,
        is_survivor=is_survivor,
        filing_status=tables.status,
        at_boy=round_currency(at_boy),
        ira_boy=round_currency(ira_boy),
        roth_boy=round_currency(roth_boy),
        total_boy=round_currency(total_boy),
        cost_basis_boy=round_currency(cost_basis_boy),
        effective_at_return=at_rate,
        effective_ira_return=ira_rate,
        effective_roth_return=roth_rate,
        at_growth=round_currency(at_after * at_rate) if at_after > 0 else 0.0,
        ira_growth=round_currency(ira_after * ira_rate) if ira_after > 0 else 0.0,
        roth_growth=round_currency(roth_after * roth_rate) if roth_after > 0 else 0.0,
        ss_annual=round_currency(ss_annual),
        expenses=round_currency(expenses),
        roth_conversion=round_currency(roth_conversion),
        rmd_factor=rmd_result.factor,
        rmd_required=rmd_result.required,
        at_withdrawal=round_currency(withdrawal.at_withdrawal),
        ira_withdrawal=round_currency(withdrawal.ira_withdrawal),
        roth_withdrawal=round_currency(withdrawal.roth_withdrawal),
        total_withdrawal=round_currency(withdrawal.total_withdrawal),
        at_harvest=round_currency(withdrawal.at_harvest),
        excess_rmd=round_currency(withdrawal.excess_rmd),
        shortfall=round_currency(withdrawal.shortfall),
        iterations=withdrawal.iterations,
        taxable_ss=round_currency(taxes.taxable_ss),
        ordinary_income=round_currency(taxes.gross_ordinary_income),
        standard_deduction=taxes.standard_deduction,
        taxable_ordinary=round_currency(taxes.taxable_ordinary),
        capital_gains=round_currency(withdrawal.capital_gains),
        federal_tax=taxes.federal_tax,
        ltcg_tax=taxes.ltcg_tax,
        niit=taxes.niit,
        state_tax=taxes.state_tax,
        total_tax=taxes.total_tax,
        magi=round_currency(taxes.magi),
        irmaa_magi=round_currency(irmaa_magi),
        irmaa_part_b=premiums.part_b,
        irmaa_part_d=premiums.part_d,
        irmaa_total=premiums.total,
        irmaa_tier=premiums.tier,
        at_eoy=round_currency(at_eoy),
        ira_eoy=round_currency(ira_eoy),
        roth_eoy=round_currency(roth_eoy),
        total_eoy=round_currency(total_eoy),
        cost_basis_eoy=round_currency(cost_basis_eoy),
        roth_percent=roth_eoy / total_eoy if total_eoy > 0 else 0.0,
        heir_value=estate_value,
        cumulative_tax=round_currency(totals.tax),
        cumulative_irmaa=round_currency(totals.irmaa),
        cumulative_expenses=round_currency(totals.expenses),
        cumulative_capital_gains=round_currency(totals.capital_gains),
        pv_at_eoy=pv(at_eoy),
        pv_ira_eoy=pv(ira_eoy),
        pv_roth_eoy=pv(roth_eoy),
        pv_total_eoy=pv(total_eoy),
        pv_heir_value=pv(estate_value),
        pv_expenses=pv(expenses),
        heir_details=heir_details,
        risk_allocation=risk_allocation,
    )
