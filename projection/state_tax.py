"""State income tax strategies keyed by jurisdiction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from projection.tax_tables import (
    IL_PROPERTY_TAX_CREDIT_RATE,
    IL_TAX_RATE,
    NO_INCOME_TAX_STATES,
    FilingTables,
)
from utils.helpers import round_currency


@dataclass(frozen=True)
class StateTaxResult:
    """Result of a state tax calculation."""

    base_tax: float
    credit: float = 0.0
    credit_limited_by_agi: bool = False
    credit_limited_by_tax: bool = False

    @property
    def tax(self) -> float:
        """Tax owed after non-refundable credits."""
        return max(0.0, self.base_tax - self.credit)


@dataclass(frozen=True)
class StateTaxInputs:
    """Income figures a state strategy may draw its taxable base from."""

    investment_income: float
    ordinary_income: float
    agi: float
    property_tax: float = 0.0


class StateTaxStrategy:
    """Base strategy: flat rate on investment income only."""

    code = "DEFAULT"

    def __init__(self, rate: float) -> None:
        self.rate = rate

    def taxable_base(self, inputs: StateTaxInputs) -> float:
        return max(0.0, inputs.investment_income)

    def calculate(self, inputs: StateTaxInputs, tables: FilingTables) -> StateTaxResult:
        return StateTaxResult(base_tax=round_currency(self.taxable_base(inputs) * self.rate))


class NoIncomeTax(StateTaxStrategy):
    """States with no personal income tax."""

    code = "NONE"

    def __init__(self, rate: float = 0.0) -> None:
        super().__init__(0.0)

    def calculate(self, inputs: StateTaxInputs, tables: FilingTables) -> StateTaxResult:
        return StateTaxResult(base_tax=0.0)


class FlatIncomeTax(StateTaxStrategy):
    """Flat rate on all income, for states that tax retirement distributions."""

    code = "FLAT"

    def taxable_base(self, inputs: StateTaxInputs) -> float:
        return max(0.0, inputs.investment_income + inputs.ordinary_income)


class IllinoisTax(StateTaxStrategy):
    """
    Illinois: flat rate on investment income with a property tax credit.

    SS, pension and IRA distributions are exempt. The 5% property tax credit
    is non-refundable and disappears entirely once AGI exceeds the limit for
    the filing status.
    """

    code = "IL"

    def __init__(self, rate: float = IL_TAX_RATE) -> None:
        super().__init__(rate)

    def calculate(self, inputs: StateTaxInputs, tables: FilingTables) -> StateTaxResult:
        base_tax = round_currency(self.taxable_base(inputs) * self.rate)
        if inputs.property_tax <= 0:
            return StateTaxResult(base_tax=base_tax)

        if inputs.agi > tables.il_credit_agi_limit:
            return StateTaxResult(base_tax=base_tax, credit_limited_by_agi=True)

        potential_credit = inputs.property_tax * IL_PROPERTY_TAX_CREDIT_RATE
        credit = min(potential_credit, base_tax)
        return StateTaxResult(
            base_tax=base_tax,
            credit=round_currency(credit),
            credit_limited_by_tax=potential_credit > base_tax,
        )


StrategyFactory = Callable[[float], StateTaxStrategy]

_STRATEGIES: dict[str, StrategyFactory] = {"IL": IllinoisTax}


def register_state_tax_strategy(state_code: str, factory: StrategyFactory) -> None:
    """Register (or replace) the strategy used for a jurisdiction."""
    _STRATEGIES[state_code.upper()] = factory


def get_state_tax_strategy(state_code: str, rate: float) -> StateTaxStrategy:
    """
    Resolve the state tax strategy for a jurisdiction.

    Args:
        state_code: Two-letter state code
        rate: Flat rate to apply (ignored by no-income-tax states)

    Returns:
        Strategy instance; unknown states fall back to the flat
        investment-income strategy
    """
    code = state_code.upper()
    factory = _STRATEGIES.get(code)
    if factory is not None:
        return factory(rate)
    if code in NO_INCOME_TAX_STATES:
        return NoIncomeTax()
    return StateTaxStrategy(rate)
