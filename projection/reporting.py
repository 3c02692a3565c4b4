"""Tabular export of projection records and summaries."""

from __future__ import annotations

import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Sequence

import pandas as pd

from projection.projections import ProjectionRecord
from projection.summary import ProjectionSummary

logger = logging.getLogger(__name__)

# Nested structures are not flattened into the table
_NESTED_FIELDS = {"heir_details", "risk_allocation"}

RECORD_COLUMNS: list[str] = [f.name for f in fields(ProjectionRecord) if f.name not in _NESTED_FIELDS]


def records_to_frame(records: Sequence[ProjectionRecord]) -> pd.DataFrame:
    """
    Convert projection records to a DataFrame indexed by year.

    Heir details and risk allocations are left out; the filing status is
    written as its string value.
    """
    rows = [{name: getattr(record, name) for name in RECORD_COLUMNS} for record in records]
    frame = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    if frame.empty:
        return frame.set_index("year")

    frame["filing_status"] = frame["filing_status"].map(lambda status: status.value)
    frame["has_shortfall"] = frame["shortfall"] > 0
    return frame.set_index("year")


def summary_to_frame(summary: ProjectionSummary) -> pd.DataFrame:
    """One-column DataFrame of summary metrics, including derived ones."""
    data = asdict(summary)
    data["shortfall_years"] = ", ".join(str(year) for year in summary.shortfall_years)
    data["portfolio_growth"] = summary.portfolio_growth
    return pd.DataFrame.from_dict(data, orient="index", columns=["value"])


def export_projections_csv(records: Sequence[ProjectionRecord], path: Path) -> Path:
    """Write projection records to CSV, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    records_to_frame(records).to_csv(path)
    logger.info(f"Wrote {len(records)} projection rows to {path}")
    return path
