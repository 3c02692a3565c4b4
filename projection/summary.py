"""Summary statistics over a full projection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from projection.projections import ProjectionRecord


@dataclass(frozen=True)
class ProjectionSummary:
    """Totals, peaks and shortfalls across every projected year."""

    start_year: int
    end_year: int
    years_modeled: int
    starting_portfolio: float
    ending_portfolio: float
    ending_heir_value: float
    ending_pv_heir_value: float
    total_tax_paid: float
    total_irmaa_paid: float
    total_expenses: float
    total_capital_gains: float
    final_roth_percent: float
    peak_portfolio: float
    peak_year: int
    shortfall_years: tuple[int, ...]
    total_shortfall: float
    max_iterations_used: int

    @property
    def portfolio_growth(self) -> float:
        return self.ending_portfolio - self.starting_portfolio

    @property
    def has_shortfall(self) -> bool:
        return len(self.shortfall_years) > 0


def calculate_summary(records: Sequence[ProjectionRecord]) -> ProjectionSummary:
    """
    Aggregate a projection into a single summary.

    Args:
        records: Projection records in chronological order

    Returns:
        ProjectionSummary

    Raises:
        ValueError: If `records` is empty
    """
    if not records:
        raise ValueError("Cannot summarize an empty projection")

    first, last = records[0], records[-1]
    totals_eoy = np.array([r.total_eoy for r in records])
    shortfalls = np.array([r.shortfall for r in records])
    peak_index = int(np.argmax(totals_eoy))

    return ProjectionSummary(
        start_year=first.year,
        end_year=last.year,
        years_modeled=len(records),
        starting_portfolio=first.total_boy,
        ending_portfolio=last.total_eoy,
        ending_heir_value=last.heir_value,
        ending_pv_heir_value=last.pv_heir_value,
        total_tax_paid=last.cumulative_tax,
        total_irmaa_paid=last.cumulative_irmaa,
        total_expenses=last.cumulative_expenses,
        total_capital_gains=last.cumulative_capital_gains,
        final_roth_percent=last.roth_percent,
        peak_portfolio=float(totals_eoy[peak_index]),
        peak_year=records[peak_index].year,
        shortfall_years=tuple(r.year for r in records if r.has_shortfall),
        total_shortfall=float(shortfalls.sum()),
        max_iterations_used=max(r.iterations for r in records),
    )
