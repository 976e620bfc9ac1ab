"""
Constants and reference data for the Group Quote Engine
Includes poverty guideline tables, the applicable percentage scale and
other configuration shared by the calculators
"""

# Metal level used for the premium tax credit benchmark (matched case-insensitively)
BENCHMARK_METAL_LEVEL = "silver"

# Benchmark rank: second-lowest-cost silver plan
SLCSP_RANK = 2

# ==============================================================================
# FEDERAL POVERTY GUIDELINES
# ==============================================================================
# Source: HHS Poverty Guidelines
# Per ACA rules, the guidelines published in year N-1 apply to tax year N,
# so these tables are keyed by TAX YEAR, not publication year.
# Each entry: household sizes 1-8 plus a flat increment per additional person.

FPL_STATE_GROUP_CONTIGUOUS = "contiguous"  # 48 contiguous states + DC
FPL_STATE_GROUP_ALASKA = "AK"
FPL_STATE_GROUP_HAWAII = "HI"

FPL_TABLES = {
    # 2024 guidelines -> tax year 2025
    2025: {
        FPL_STATE_GROUP_CONTIGUOUS: {
            'sizes': {1: 15060, 2: 20440, 3: 25820, 4: 31200,
                      5: 36580, 6: 41960, 7: 47340, 8: 52720},
            'per_additional': 5380,
        },
        FPL_STATE_GROUP_ALASKA: {
            'sizes': {1: 18810, 2: 25540, 3: 32270, 4: 39000,
                      5: 45730, 6: 52460, 7: 59190, 8: 65920},
            'per_additional': 6730,
        },
        FPL_STATE_GROUP_HAWAII: {
            'sizes': {1: 17310, 2: 23500, 3: 29690, 4: 35880,
                      5: 42070, 6: 48260, 7: 54450, 8: 60640},
            'per_additional': 6190,
        },
    },
    # 2025 guidelines -> tax year 2026
    2026: {
        FPL_STATE_GROUP_CONTIGUOUS: {
            'sizes': {1: 15650, 2: 21150, 3: 26650, 4: 32150,
                      5: 37650, 6: 43150, 7: 48650, 8: 54150},
            'per_additional': 5500,
        },
        FPL_STATE_GROUP_ALASKA: {
            'sizes': {1: 19550, 2: 26430, 3: 33310, 4: 40190,
                      5: 47070, 6: 53950, 7: 60830, 8: 67710},
            'per_additional': 6880,
        },
        FPL_STATE_GROUP_HAWAII: {
            'sizes': {1: 17990, 2: 24320, 3: 30650, 4: 36980,
                      5: 43310, 6: 49640, 7: 55970, 8: 62300},
            'per_additional': 6330,
        },
    },
}

# ==============================================================================
# ACA APPLICABLE PERCENTAGE SCALE
# ==============================================================================
# (lower_fpl, upper_fpl, lower_pct, upper_pct) - pct values are decimals.
# Linear interpolation on percent-of-FPL within each bracket.
# At or below 150% FPL the applicable percentage is 0; above 400% it is flat.

APPLICABLE_PERCENTAGE_FLOOR_FPL = 150
APPLICABLE_PERCENTAGE_SCALE = [
    (150, 200, 0.00, 0.02),
    (200, 250, 0.02, 0.04),
    (250, 300, 0.04, 0.06),
    (300, 400, 0.06, 0.085),
]
APPLICABLE_PERCENTAGE_CAP = 0.085

# IRS Affordability Threshold by plan year
# Source: IRS Revenue Procedures 2024-35 (2025) and 2025-25 (2026)
# Coverage is affordable if the self-only lowest cost silver premium is at or
# below this share of household income
AFFORDABILITY_THRESHOLDS = {
    2025: 0.0902,
    2026: 0.0996,
}

# ==============================================================================
# QUOTE RUN DEFAULTS
# ==============================================================================

DEFAULT_QUOTE_MAX_WORKERS = 8

# County selection sources recorded on each entry's meta
COUNTY_SOURCE_OVERRIDE = "override"
COUNTY_SOURCE_MEMBER = "member_county"
COUNTY_SOURCE_UNIQUE = "unique_from_zip"

# Affordability sources
AFFORDABILITY_SOURCE_EXTERNAL = "external"
AFFORDABILITY_SOURCE_INTERNAL = "internal"

# Client-side polling defaults (seconds)
DEFAULT_POLL_INTERVAL_S = 1.2
DEFAULT_POLL_TIMEOUT_S = 120.0

TAKING_LONGER_MESSAGE = "Quotes are taking longer than expected. Please check again shortly."

# Database table names (for reference)
DB_TABLES = {
    'zip_counties': 'zip_counties',
    'plan_counties': 'plan_counties',
    'plans': 'plans',
    'pricings': 'pricings',
    'members': 'members',
    'groups': 'groups',
    'quote_results': 'quote_results',
}

# Date format for effective dates on the wire
DATE_FORMAT = "%Y-%m-%d"

# Streamlit app configuration
APP_CONFIG = {
    'title': 'Group Quotes',
    'icon': '🩺',
    'layout': 'wide',
    'initial_sidebar_state': 'expanded',
}


if __name__ == "__main__":
    # Display constants for verification
    print("Group Quote Engine Constants")
    print("=" * 50)
    print(f"FPL tax years: {', '.join(str(y) for y in sorted(FPL_TABLES))}")
    for lower, upper, lo_pct, hi_pct in APPLICABLE_PERCENTAGE_SCALE:
        print(f"  {lower}-{upper}% FPL: {lo_pct:.2%} -> {hi_pct:.2%}")

    print("\n✓ All constants loaded successfully!")
