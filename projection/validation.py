"""Input validation for projection parameters."""

from __future__ import annotations

from dataclasses import dataclass, field

from projection.heirs import SPLIT_TOLERANCE
from projection.parameters import ProjectionParams


@dataclass
class ValidationResult:
    """Result of validation containing any errors found."""

    errors: list[tuple[str, str]] = field(default_factory=list)

    def add_error(self, field_name: str, message: str) -> None:
        """Add a validation error."""
        self.errors.append((field_name, message))

    def is_valid(self) -> bool:
        """Return True if no validation errors."""
        return len(self.errors) == 0

    def error_messages(self) -> list[str]:
        """Return formatted error messages."""
        return [f"{field_name}: {message}" for field_name, message in self.errors]


def validate_timeline(params: ProjectionParams) -> ValidationResult:
    """Validate the projection window and birth year."""
    result = ValidationResult()

    if params.start_year < 2024 or params.start_year > 2100:
        result.add_error("start_year", "Must be between 2024 and 2100")
    if params.end_year < params.start_year:
        result.add_error("end_year", "Must not be before start year")
    if params.end_year > 2100:
        result.add_error("end_year", "Must be at most 2100")

    age = params.start_year - params.birth_year
    if age < 50 or age > 125:
        result.add_error("birth_year", "Age at start must be between 50 and 125")

    return result


def validate_balances(params: ProjectionParams) -> ValidationResult:
    """Validate starting balances and cost basis."""
    result = ValidationResult()

    balances = {
        "at_start": params.at_start,
        "ira_start": params.ira_start,
        "roth_start": params.roth_start,
        "at_cost_basis": params.at_cost_basis,
    }
    for name, balance in balances.items():
        if balance < 0:
            result.add_error(name, "Cannot be negative")
        if balance > 100_000_000:
            result.add_error(name, "Exceeds maximum allowed value")

    if params.at_cost_basis > params.at_start:
        result.add_error("at_cost_basis", "Cannot exceed after-tax balance")

    return result


def validate_rates(params: ProjectionParams) -> ValidationResult:
    """Validate rates and percentages that must lie in [0, 1]."""
    result = ValidationResult()

    unit_rates = {
        "ss_cola": params.ss_cola,
        "expense_inflation": params.expense_inflation,
        "state_tax_rate": params.state_tax_rate,
        "capital_gains_percent": params.capital_gains_percent,
        "bracket_inflation": params.bracket_inflation,
        "discount_rate": params.discount_rate,
        "heir_fed_rate": params.heir_fed_rate,
        "heir_state_rate": params.heir_state_rate,
    }
    if params.survivor is not None:
        unit_rates["survivor.ss_percent"] = params.survivor.ss_percent
        unit_rates["survivor.expense_percent"] = params.survivor.expense_percent

    for name, rate in unit_rates.items():
        if rate < 0 or rate > 1:
            result.add_error(name, "Rate must be between 0% and 100%")

    # Returns may be negative (market decline) but not a total loss
    for name in ("at_return", "ira_return", "roth_return", "low_risk_return", "mod_risk_return", "high_risk_return"):
        if getattr(params, name) <= -1:
            result.add_error(name, "Return must be greater than -100%")

    return result


def validate_schedules(params: ProjectionParams) -> ValidationResult:
    """Validate year -> amount maps and calculation options."""
    result = ValidationResult()

    schedules = {
        "roth_conversions": params.roth_conversions,
        "at_harvest_overrides": params.at_harvest_overrides,
        "expense_overrides": params.expense_overrides,
    }
    for name, schedule in schedules.items():
        for year, amount in schedule.items():
            if amount < 0:
                result.add_error(name, f"Amount for {year} cannot be negative")
            if year < params.start_year or year > params.end_year:
                result.add_error(name, f"Year {year} is outside the projection window")

    if params.max_iterations < 1:
        result.add_error("max_iterations", "Must be at least 1")
    if params.tax_tolerance <= 0:
        result.add_error("tax_tolerance", "Must be positive")

    return result


def validate_heirs(params: ProjectionParams) -> ValidationResult:
    """Validate heir splits and the normalization horizon."""
    result = ValidationResult()

    if params.heirs:
        total = sum(h.split for h in params.heirs)
        if abs(total - 1.0) > SPLIT_TOLERANCE:
            result.add_error("heirs", f"Splits must sum to 100%, got {total:.1%}")
        for heir in params.heirs:
            if heir.split < 0:
                result.add_error("heirs", f"Split for {heir.name} cannot be negative")

    if params.heir_normalization_years < 0:
        result.add_error("heir_normalization_years", "Cannot be negative")

    return result


def validate_params(params: ProjectionParams) -> ValidationResult:
    """Run all validations and combine results."""
    combined = ValidationResult()

    validations = [
        validate_timeline(params),
        validate_balances(params),
        validate_rates(params),
        validate_schedules(params),
        validate_heirs(params),
    ]

    for result in validations:
        combined.errors.extend(result.errors)

    return combined
