"""
ACA Premium Tax Credit (Subsidy) Calculator

Pure functions: income components + household + geography + benchmark
premium -> monthly premium tax credit. No I/O.

Key concepts:
- MAGI: AGI + nontaxable social security + tax-exempt interest + foreign earned income
- FPL (Federal Poverty Level): versioned by tax year and state group
- SLCSP (Second Lowest Cost Silver Plan): the benchmark premium
- Applicable percentage: share of MAGI the household is expected to pay
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from constants import (
    FPL_TABLES,
    FPL_STATE_GROUP_CONTIGUOUS,
    FPL_STATE_GROUP_ALASKA,
    FPL_STATE_GROUP_HAWAII,
    APPLICABLE_PERCENTAGE_FLOOR_FPL,
    APPLICABLE_PERCENTAGE_SCALE,
    APPLICABLE_PERCENTAGE_CAP,
    AFFORDABILITY_THRESHOLDS,
    AFFORDABILITY_SOURCE_INTERNAL,
)
from exceptions import FplTableUnavailable
from quote_types import AffordabilitySummary

logger = logging.getLogger(__name__)


def state_group(state_code: Optional[str]) -> str:
    """Map a state code to its FPL table group."""
    code = (state_code or '').strip().upper()
    if code == 'AK':
        return FPL_STATE_GROUP_ALASKA
    if code == 'HI':
        return FPL_STATE_GROUP_HAWAII
    return FPL_STATE_GROUP_CONTIGUOUS


class FplTable:
    """
    Federal Poverty Level reference, keyed by tax year.

    Injected into the engine so a new year's guidelines are a data change.
    Shape: {tax_year: {state_group: {'sizes': {1..8: amount}, 'per_additional': amount}}}
    """

    def __init__(self, tables: Dict[int, Dict[str, Dict[str, Any]]]):
        self._tables = {int(year): groups for year, groups in tables.items()}

    @property
    def tax_years(self):
        return sorted(self._tables)

    def annual_fpl(self, tax_year: int, household_size: int, state_code: Optional[str] = None) -> float:
        """
        Annual FPL for a household.

        Args:
            tax_year: Tax year the credit is for
            household_size: People in the tax household (values below 1 count as 1)
            state_code: Two-letter state; AK and HI have their own tables

        Returns:
            Annual FPL in dollars

        Raises:
            FplTableUnavailable: no table for the tax year (years are never interpolated)
        """
        year_table = self._tables.get(int(tax_year)) if tax_year is not None else None
        if year_table is None:
            raise FplTableUnavailable(f"No FPL table for tax year {tax_year}")

        group = year_table.get(state_group(state_code)) or year_table[FPL_STATE_GROUP_CONTIGUOUS]
        sizes = group['sizes']
        size = max(1, int(household_size or 1))

        # Direct lookup through 8, then per-person increment
        if size <= 8:
            return float(sizes[size])
        return float(sizes[8] + (size - 8) * group['per_additional'])


def default_fpl_table() -> FplTable:
    """FPL table built from the shipped HHS guidelines."""
    return FplTable(FPL_TABLES)


def calculate_magi(
    adjusted_gross_income: Optional[float] = None,
    nontaxable_social_security: Optional[float] = None,
    tax_exempt_interest: Optional[float] = None,
    foreign_earned_income: Optional[float] = None,
) -> float:
    """MAGI proxy: sum of the four components, missing values count as zero."""
    return sum(float(v or 0) for v in (
        adjusted_gross_income,
        nontaxable_social_security,
        tax_exempt_interest,
        foreign_earned_income,
    ))


def fpl_percent(magi: float, fpl_annual: float) -> float:
    """Household income as a percentage of FPL (e.g. 200.0 for 200% FPL)."""
    if not fpl_annual:
        return 0.0
    return magi / fpl_annual * 100


def applicable_percentage(fpl_pct: float) -> float:
    """
    Share of income the household is expected to contribute.

    Linear interpolation within FPL brackets; 0 at or below 150% FPL and
    flat at the cap above 400% FPL.

    Args:
        fpl_pct: Household income as percentage of FPL

    Returns:
        Applicable percentage as a decimal (0.0 - 0.085)
    """
    if fpl_pct <= APPLICABLE_PERCENTAGE_FLOOR_FPL:
        return 0.0

    for lower_fpl, upper_fpl, lower_pct, upper_pct in APPLICABLE_PERCENTAGE_SCALE:
        if lower_fpl < fpl_pct <= upper_fpl:
            ratio = (fpl_pct - lower_fpl) / (upper_fpl - lower_fpl)
            return lower_pct + (upper_pct - lower_pct) * ratio

    return APPLICABLE_PERCENTAGE_CAP


@dataclass(frozen=True)
class SubsidyBreakdown:
    """Every intermediate value of one premium tax credit calculation (monthly money unless noted)."""
    magi: float                           # annual
    fpl_annual: float
    fpl_percent: float
    applicable_percentage: float          # decimal
    expected_annual_contribution: float
    expected_monthly_contribution: float
    benchmark_premium: float
    premium_tax_credit: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def calculate_premium_tax_credit(
    benchmark_premium: float,
    household_size: int,
    tax_year: int,
    state_code: Optional[str] = None,
    adjusted_gross_income: Optional[float] = None,
    nontaxable_social_security: Optional[float] = None,
    tax_exempt_interest: Optional[float] = None,
    foreign_earned_income: Optional[float] = None,
    fpl_table: Optional[FplTable] = None,
) -> SubsidyBreakdown:
    """
    Calculate the monthly premium tax credit.

    credit = max(0, benchmark - MAGI * applicable_percentage / 12)

    Raises:
        FplTableUnavailable: tax year not in the FPL table
    """
    table = fpl_table or default_fpl_table()

    magi = calculate_magi(
        adjusted_gross_income,
        nontaxable_social_security,
        tax_exempt_interest,
        foreign_earned_income,
    )
    fpl_annual = table.annual_fpl(tax_year, household_size, state_code)
    pct = fpl_percent(magi, fpl_annual)
    applicable = applicable_percentage(pct)

    expected_annual = magi * applicable
    expected_monthly = expected_annual / 12
    credit = max(0.0, float(benchmark_premium) - expected_monthly)

    return SubsidyBreakdown(
        magi=magi,
        fpl_annual=fpl_annual,
        fpl_percent=pct,
        applicable_percentage=applicable,
        expected_annual_contribution=expected_annual,
        expected_monthly_contribution=expected_monthly,
        benchmark_premium=float(benchmark_premium),
        premium_tax_credit=credit,
    )


def affordability_threshold(tax_year: Optional[int]) -> float:
    """IRS affordability threshold; unknown years use the latest configured year."""
    if tax_year in AFFORDABILITY_THRESHOLDS:
        return AFFORDABILITY_THRESHOLDS[tax_year]
    return AFFORDABILITY_THRESHOLDS[max(AFFORDABILITY_THRESHOLDS)]


def is_affordable(lowest_silver_premium: float, magi: float, tax_year: Optional[int]) -> bool:
    """Lowest cost silver premium at or below the threshold share of monthly income."""
    monthly_income = magi / 12
    return lowest_silver_premium <= monthly_income * affordability_threshold(tax_year)


def internal_affordability(
    breakdown: SubsidyBreakdown,
    benchmark_plan_id: str,
    lowest_silver_premium: float,
    tax_year: int,
) -> AffordabilitySummary:
    """Wrap a SubsidyBreakdown in the same shape the external collaborator returns."""
    return AffordabilitySummary(
        fpl_percent=round(breakdown.fpl_percent, 2),
        expected_contribution=round(breakdown.expected_monthly_contribution, 2),
        benchmark_plan_id=benchmark_plan_id,
        benchmark_premium=breakdown.benchmark_premium,
        premium_tax_credit=round(breakdown.premium_tax_credit, 2),
        affordable=is_affordable(lowest_silver_premium, breakdown.magi, tax_year),
        source=AFFORDABILITY_SOURCE_INTERNAL,
    )


def resolve_affordability(
    external: Optional[AffordabilitySummary],
    internal: Optional[AffordabilitySummary],
) -> Optional[AffordabilitySummary]:
    """
    Pick the determination whose premium tax credit applies.

    An external figure is authoritative; the internal calculation is used
    when the collaborator returned nothing or no credit figure.
    """
    if external is not None and external.premium_tax_credit is not None:
        return external
    return internal


def subsidy_example() -> Dict[str, float]:
    """Worked example used in docs: MAGI 30,000, household of 1, 2025, $400 benchmark."""
    breakdown = calculate_premium_tax_credit(
        benchmark_premium=400.0,
        household_size=1,
        tax_year=2025,
        adjusted_gross_income=30000,
    )
    return breakdown.to_dict()


if __name__ == "__main__":
    for key, value in subsidy_example().items():
        print(f"{key}: {value:,.4f}")
