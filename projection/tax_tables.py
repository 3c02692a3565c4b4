"""Year-anchored tax tables and inflation helpers for retirement projections."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from projection.exceptions import TableError
from utils.helpers import growth_factor, round_currency


class FilingStatus(Enum):
    """Tax filing status."""

    SINGLE = "single"
    MARRIED_FILING_JOINTLY = "mfj"


@dataclass(frozen=True)
class TaxBracket:
    """A marginal rate that applies from `threshold` up to the next bracket."""

    rate: float
    threshold: float


@dataclass(frozen=True)
class IrmaaTier:
    """
    One Medicare IRMAA tier.

    Attributes:
        threshold: MAGI that must be strictly exceeded to land in this tier
        part_b: Monthly Part B premium per person
        part_d: Monthly Part D surcharge per person
    """

    threshold: float
    part_b: float
    part_d: float


@dataclass(frozen=True)
class SocialSecurityThresholds:
    """Combined-income thresholds for taxing Social Security (not indexed)."""

    tier1: float
    tier2: float


# Anchor years: each table inflates from the year it was published for.
TAX_TABLE_YEAR = 2024
IRMAA_TABLE_YEAR = 2026


# Federal income tax brackets for 2024
FEDERAL_BRACKETS_2024_MFJ: tuple[TaxBracket, ...] = (
    TaxBracket(0.10, 0),
    TaxBracket(0.12, 23_200),
    TaxBracket(0.22, 94_300),
    TaxBracket(0.24, 201_050),
    TaxBracket(0.32, 383_900),
    TaxBracket(0.35, 487_450),
    TaxBracket(0.37, 731_200),
)

FEDERAL_BRACKETS_2024_SINGLE: tuple[TaxBracket, ...] = (
    TaxBracket(0.10, 0),
    TaxBracket(0.12, 11_600),
    TaxBracket(0.22, 47_150),
    TaxBracket(0.24, 100_525),
    TaxBracket(0.32, 191_950),
    TaxBracket(0.35, 243_725),
    TaxBracket(0.37, 609_350),
)

# Long-term capital gains brackets for 2024
LTCG_BRACKETS_2024_MFJ: tuple[TaxBracket, ...] = (
    TaxBracket(0.00, 0),
    TaxBracket(0.15, 94_050),
    TaxBracket(0.20, 583_750),
)

LTCG_BRACKETS_2024_SINGLE: tuple[TaxBracket, ...] = (
    TaxBracket(0.00, 0),
    TaxBracket(0.15, 47_025),
    TaxBracket(0.20, 518_900),
)

STANDARD_DEDUCTION_2024_MFJ = 29_200
STANDARD_DEDUCTION_2024_SINGLE = 14_600
SENIOR_BONUS_2024_MFJ = 3_100  # Both spouses 65+
SENIOR_BONUS_2024_SINGLE = 1_950

# IRMAA tiers for 2026, looked up with MAGI from two years prior
IRMAA_TIERS_2026_MFJ: tuple[IrmaaTier, ...] = (
    IrmaaTier(0, 202.90, 0.00),
    IrmaaTier(218_000, 284.10, 14.50),
    IrmaaTier(274_000, 405.80, 37.40),
    IrmaaTier(342_000, 527.50, 60.30),
    IrmaaTier(410_000, 649.20, 83.20),
    IrmaaTier(750_000, 689.90, 91.00),
)

IRMAA_TIERS_2026_SINGLE: tuple[IrmaaTier, ...] = (
    IrmaaTier(0, 202.90, 0.00),
    IrmaaTier(109_000, 284.10, 14.50),
    IrmaaTier(137_000, 405.80, 37.40),
    IrmaaTier(171_000, 527.50, 60.30),
    IrmaaTier(205_000, 649.20, 83.20),
    IrmaaTier(500_000, 689.90, 91.00),
)

NIIT_RATE = 0.038
NIIT_THRESHOLD_MFJ = 250_000
NIIT_THRESHOLD_SINGLE = 200_000

SS_THRESHOLDS_MFJ = SocialSecurityThresholds(tier1=32_000, tier2=44_000)
SS_THRESHOLDS_SINGLE = SocialSecurityThresholds(tier1=25_000, tier2=34_000)


# IRS Uniform Lifetime Table for RMD calculations
# Source: IRS Publication 590-B, Table III
RMD_UNIFORM_LIFETIME_TABLE: dict[int, float] = {
    72: 27.4,
    73: 26.5,
    74: 25.5,
    75: 24.6,
    76: 23.7,
    77: 22.9,
    78: 22.0,
    79: 21.1,
    80: 20.2,
    81: 19.4,
    82: 18.5,
    83: 17.7,
    84: 16.8,
    85: 16.0,
    86: 15.2,
    87: 14.4,
    88: 13.7,
    89: 12.9,
    90: 12.2,
    91: 11.5,
    92: 10.8,
    93: 10.1,
    94: 9.5,
    95: 8.9,
    96: 8.4,
    97: 7.8,
    98: 7.3,
    99: 6.8,
    100: 6.4,
    101: 6.0,
    102: 5.6,
    103: 5.2,
    104: 4.9,
    105: 4.6,
    106: 4.3,
    107: 4.1,
    108: 3.9,
    109: 3.7,
    110: 3.5,
    111: 3.4,
    112: 3.3,
    113: 3.1,
    114: 3.0,
    115: 2.9,
    116: 2.8,
    117: 2.7,
    118: 2.5,
    119: 2.3,
    120: 2.0,
}

# RMDs begin at 73 under SECURE 2.0
RMD_START_AGE = 73


# Illinois exempts SS, pension and IRA distributions; only investment income is taxed
IL_TAX_RATE = 0.0495
IL_PROPERTY_TAX_CREDIT_RATE = 0.05
IL_CREDIT_AGI_LIMIT_MFJ = 500_000
IL_CREDIT_AGI_LIMIT_SINGLE = 250_000

# Approximate top marginal state rates, used for heirs' inherited IRA income
STATE_TAX_RATES: dict[str, float] = {
    "AK": 0.0, "FL": 0.0, "NV": 0.0, "NH": 0.0, "SD": 0.0,
    "TN": 0.0, "TX": 0.0, "WA": 0.0, "WY": 0.0,
    # Flat tax states
    "IL": 0.0495,
    "CO": 0.044,
    "IN": 0.0305,
    "KY": 0.04,
    "MA": 0.09,
    "MI": 0.0425,
    "NC": 0.0475,
    "PA": 0.0307,
    "UT": 0.0465,
    # Progressive states (top marginal rate)
    "CA": 0.133,
    "NY": 0.109,
    "NJ": 0.1075,
    "OR": 0.099,
    "MN": 0.0985,
    "VT": 0.0875,
    "WI": 0.0765,
    "HI": 0.11,
    "SC": 0.07,
    "MT": 0.0675,
    "AZ": 0.045,
    "GA": 0.055,
    "VA": 0.0575,
    "OH": 0.04,
    "MD": 0.0575,
    "DC": 0.105,
}
DEFAULT_STATE_RATE = 0.05
NO_INCOME_TAX_STATES = frozenset(code for code, rate in STATE_TAX_RATES.items() if rate == 0.0)


@dataclass(frozen=True)
class FilingTables:
    """All bracket and threshold tables for one filing status."""

    status: FilingStatus
    federal_brackets: tuple[TaxBracket, ...]
    ltcg_brackets: tuple[TaxBracket, ...]
    irmaa_tiers: tuple[IrmaaTier, ...]
    standard_deduction: float
    senior_bonus: float
    niit_threshold: float
    ss_thresholds: SocialSecurityThresholds
    il_credit_agi_limit: float

    @property
    def is_single(self) -> bool:
        return self.status == FilingStatus.SINGLE

    @property
    def people_on_medicare(self) -> int:
        return 1 if self.is_single else 2


def validate_brackets(
    brackets: Sequence[TaxBracket],
    table: str,
    require_ascending_rates: bool = True,
) -> None:
    """
    Check that a bracket table is well formed.

    Thresholds must start at 0 and strictly ascend; rates must strictly
    ascend as well.

    Raises:
        TableError: If the table is empty or out of order
    """
    if not brackets:
        raise TableError(table, "Bracket table is empty")
    if brackets[0].threshold != 0:
        raise TableError(table, "First bracket must start at 0")

    for lower, upper in zip(brackets, brackets[1:]):
        if upper.threshold <= lower.threshold:
            raise TableError(table, f"Thresholds not ascending at {upper.threshold}")
        if require_ascending_rates and upper.rate <= lower.rate:
            raise TableError(table, f"Rates not ascending at {upper.rate}")


def validate_irmaa_tiers(tiers: Sequence[IrmaaTier], table: str) -> None:
    """Check that IRMAA tier thresholds start at 0 and strictly ascend."""
    if not tiers:
        raise TableError(table, "IRMAA table is empty")
    if tiers[0].threshold != 0:
        raise TableError(table, "First tier must start at 0")
    for lower, upper in zip(tiers, tiers[1:]):
        if upper.threshold <= lower.threshold:
            raise TableError(table, f"Thresholds not ascending at {upper.threshold}")


for _name, _brackets in (
    ("FEDERAL_BRACKETS_2024_MFJ", FEDERAL_BRACKETS_2024_MFJ),
    ("FEDERAL_BRACKETS_2024_SINGLE", FEDERAL_BRACKETS_2024_SINGLE),
    ("LTCG_BRACKETS_2024_MFJ", LTCG_BRACKETS_2024_MFJ),
    ("LTCG_BRACKETS_2024_SINGLE", LTCG_BRACKETS_2024_SINGLE),
):
    validate_brackets(_brackets, _name)
validate_irmaa_tiers(IRMAA_TIERS_2026_MFJ, "IRMAA_TIERS_2026_MFJ")
validate_irmaa_tiers(IRMAA_TIERS_2026_SINGLE, "IRMAA_TIERS_2026_SINGLE")


MFJ_TABLES = FilingTables(
    status=FilingStatus.MARRIED_FILING_JOINTLY,
    federal_brackets=FEDERAL_BRACKETS_2024_MFJ,
    ltcg_brackets=LTCG_BRACKETS_2024_MFJ,
    irmaa_tiers=IRMAA_TIERS_2026_MFJ,
    standard_deduction=STANDARD_DEDUCTION_2024_MFJ,
    senior_bonus=SENIOR_BONUS_2024_MFJ,
    niit_threshold=NIIT_THRESHOLD_MFJ,
    ss_thresholds=SS_THRESHOLDS_MFJ,
    il_credit_agi_limit=IL_CREDIT_AGI_LIMIT_MFJ,
)

SINGLE_TABLES = FilingTables(
    status=FilingStatus.SINGLE,
    federal_brackets=FEDERAL_BRACKETS_2024_SINGLE,
    ltcg_brackets=LTCG_BRACKETS_2024_SINGLE,
    irmaa_tiers=IRMAA_TIERS_2026_SINGLE,
    standard_deduction=STANDARD_DEDUCTION_2024_SINGLE,
    senior_bonus=SENIOR_BONUS_2024_SINGLE,
    niit_threshold=NIIT_THRESHOLD_SINGLE,
    ss_thresholds=SS_THRESHOLDS_SINGLE,
    il_credit_agi_limit=IL_CREDIT_AGI_LIMIT_SINGLE,
)


def tables_for(filing_status: FilingStatus) -> FilingTables:
    """Get the table bundle for a filing status."""
    if filing_status == FilingStatus.SINGLE:
        return SINGLE_TABLES
    return MFJ_TABLES


def years_from_anchor(year: int, anchor_year: int) -> int:
    """Years of inflation to apply to a table; published tables are never deflated."""
    return max(0, year - anchor_year)


def inflate_brackets(
    brackets: Sequence[TaxBracket],
    inflation_rate: float,
    years: int,
) -> tuple[TaxBracket, ...]:
    """
    Inflate bracket thresholds by a compounding rate.

    Args:
        brackets: Bracket table at its anchor year
        inflation_rate: Annual inflation assumption (e.g., 0.03)
        years: Years since the table's anchor year

    Returns:
        New brackets with thresholds rounded to whole dollars
    """
    if years == 0:
        return tuple(brackets)
    factor = growth_factor(inflation_rate, years)
    return tuple(
        TaxBracket(rate=b.rate, threshold=round_currency(b.threshold * factor))
        for b in brackets
    )


def inflate_irmaa(
    tiers: Sequence[IrmaaTier],
    inflation_rate: float,
    years: int,
) -> tuple[IrmaaTier, ...]:
    """Inflate IRMAA thresholds; monthly premiums stay fixed."""
    if years == 0:
        return tuple(tiers)
    factor = growth_factor(inflation_rate, years)
    return tuple(
        IrmaaTier(
            threshold=round_currency(t.threshold * factor),
            part_b=t.part_b,
            part_d=t.part_d,
        )
        for t in tiers
    )


def get_rmd_divisor(
    age: int,
    divisor_table: Mapping[int, float] = RMD_UNIFORM_LIFETIME_TABLE,
) -> float:
    """
    Get the RMD distribution period for a given age.

    Ages past the end of the table use its last divisor.

    Raises:
        TableError: If the table has no entry for an age inside its range
    """
    first_age = min(divisor_table)
    last_age = max(divisor_table)
    if age > last_age:
        return divisor_table[last_age]
    if age < first_age:
        raise TableError("rmd_divisor_table", f"No divisor for age {age}")

    divisor = divisor_table.get(age)
    if divisor is None:
        raise TableError("rmd_divisor_table", f"Missing divisor for age {age}")
    return divisor
