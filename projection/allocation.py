"""Risk-tier allocation and blended returns across account types."""

from __future__ import annotations

from dataclasses import dataclass

from utils.helpers import weighted_sum


@dataclass(frozen=True)
class TierSplit:
    """Dollars held at each risk tier."""

    low: float = 0.0
    mod: float = 0.0
    high: float = 0.0

    def total(self) -> float:
        return self.low + self.mod + self.high


@dataclass(frozen=True)
class RiskAllocation:
    """Portfolio-level tiers and how they land in each account."""

    portfolio: TierSplit
    at: TierSplit
    ira: TierSplit
    roth: TierSplit


def _fill_account(balance: float, remaining_low: float, remaining_mod: float) -> tuple[TierSplit, float, float]:
    low = min(balance, remaining_low)
    mod = min(balance - low, remaining_mod)
    high = balance - low - mod
    return TierSplit(low, mod, high), remaining_low - low, remaining_mod - mod


def calculate_risk_allocation(
    total_portfolio: float,
    at_balance: float,
    ira_balance: float,
    roth_balance: float,
    low_target: float,
    mod_target: float,
) -> RiskAllocation:
    """
    Allocate the portfolio across low, moderate and high risk tiers.

    The first `low_target` dollars of the portfolio are low risk, the next
    `mod_target` moderate, and the remainder high. Accounts consume tiers in
    a fixed order: After-Tax first, then IRA, then Roth, each taking low risk
    until exhausted, then moderate, then high. Roth therefore ends up holding
    the highest-growth assets.

    Args:
        total_portfolio: Sum of all account balances
        at_balance: After-tax account balance
        ira_balance: Traditional IRA balance
        roth_balance: Roth balance
        low_target: Dollars targeted at low risk
        mod_target: Dollars targeted at moderate risk

    Returns:
        RiskAllocation with portfolio and per-account tier splits
    """
    portfolio_low = min(total_portfolio, low_target)
    portfolio_mod = min(max(0.0, total_portfolio - low_target), mod_target)
    portfolio_high = max(0.0, total_portfolio - low_target - mod_target)

    remaining_low, remaining_mod = portfolio_low, portfolio_mod
    at, remaining_low, remaining_mod = _fill_account(at_balance, remaining_low, remaining_mod)
    ira, remaining_low, remaining_mod = _fill_account(ira_balance, remaining_low, remaining_mod)
    roth, _, _ = _fill_account(roth_balance, remaining_low, remaining_mod)

    return RiskAllocation(
        portfolio=TierSplit(portfolio_low, portfolio_mod, portfolio_high),
        at=at,
        ira=ira,
        roth=roth,
    )


def blended_return(
    split: TierSplit,
    low_return: float,
    mod_return: float,
    high_return: float,
) -> float:
    """Tier-weighted average return; 0 for an empty account."""
    total = split.total()
    if total == 0:
        return 0.0
    return weighted_sum(
        (low_return, mod_return, high_return),
        (split.low, split.mod, split.high),
    ) / total
