"""Scenario comparison and parameter sweeps across independent projection runs."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pandas as pd

from projection.parameters import ProjectionParams, merge_params
from projection.projections import ProjectionRecord, generate_projections
from projection.summary import calculate_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioComparison:
    """Base projection plus one projection per named override set."""

    base: list[ProjectionRecord]
    scenarios: dict[str, list[ProjectionRecord]] = field(default_factory=dict)


def compare_scenarios(
    base_params: ProjectionParams,
    scenarios: Mapping[str, Mapping[str, Any]],
) -> ScenarioComparison:
    """
    Run the base parameters and each named set of overrides.

    Args:
        base_params: Parameters shared by every scenario
        scenarios: Scenario name -> field overrides (override wins per field)

    Returns:
        ScenarioComparison with the base run and one run per scenario

    Raises:
        ValidationError: If an override names an unknown field
    """
    resolved = {name: merge_params(base_params, overrides) for name, overrides in scenarios.items()}
    results = run_scenarios(resolved)
    return ScenarioComparison(base=generate_projections(base_params), scenarios=results)


def run_scenarios(
    scenarios: Mapping[str, ProjectionParams],
    max_workers: int | None = None,
) -> dict[str, list[ProjectionRecord]]:
    """
    Project independent parameter sets concurrently.

    Each run is pure, so no synchronization is needed between workers.
    Results keep the input order of `scenarios`.
    """
    if not scenarios:
        return {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {name: executor.submit(generate_projections, params) for name, params in scenarios.items()}
        results = {}
        for name, future in futures.items():
            results[name] = future.result()
            logger.info(f"Scenario '{name}': {len(results[name])} years projected")
    return results


def sweep_parameter(
    base_params: ProjectionParams,
    field_name: str,
    values: Iterable[Any],
    max_workers: int | None = None,
) -> pd.DataFrame:
    """
    Re-run the projection once per value of a single field.

    Args:
        base_params: Parameters held fixed
        field_name: ProjectionParams field to vary
        values: Values to try
        max_workers: Thread pool size

    Returns:
        DataFrame with one summary row per value, indexed by the value
    """
    values = list(values)
    runs = {}
    for i, value in enumerate(values):
        logger.debug(f"Sweep {field_name}={value!r}")
        runs[f"{i}:{value!r}"] = merge_params(base_params, {field_name: value})

    results = run_scenarios(runs, max_workers=max_workers)

    rows = []
    for value, records in zip(values, results.values()):
        if not records:
            continue
        summary = calculate_summary(records)
        rows.append(
            {
                field_name: value,
                "ending_portfolio": summary.ending_portfolio,
                "ending_heir_value": summary.ending_heir_value,
                "ending_pv_heir_value": summary.ending_pv_heir_value,
                "total_tax_paid": summary.total_tax_paid,
                "total_irmaa_paid": summary.total_irmaa_paid,
                "final_roth_percent": summary.final_roth_percent,
                "shortfall_years": len(summary.shortfall_years),
            }
        )

    return pd.DataFrame(rows).set_index(field_name) if rows else pd.DataFrame()
