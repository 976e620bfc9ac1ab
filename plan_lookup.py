"""
Plan/Pricing Lookup

county + age + tobacco -> priced plans with metadata.

A plan offered in the county but without a price for the member's exact
(age, tobacco) tuple is left out quietly; partial availability is normal.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from exceptions import NoPlansInCounty, NoPricingForParameters
from quote_types import PricedPlan, parse_effective_date

logger = logging.getLogger(__name__)


def calculate_age(date_of_birth, effective_date=None) -> Optional[int]:
    """
    Age on the effective date using last-birthday subtraction.

    Args:
        date_of_birth: date, datetime or ISO date string
        effective_date: Reference date (defaults to today)

    Returns:
        Age in whole years (never negative), or None if the birth date is missing or invalid
    """
    birth = parse_effective_date(date_of_birth)
    if birth is None:
        return None

    if effective_date is None:
        reference = date.today()
    elif isinstance(effective_date, datetime):
        reference = effective_date.date()
    elif isinstance(effective_date, date):
        reference = effective_date
    else:
        reference = parse_effective_date(effective_date)
        if reference is None:
            return None

    age = reference.year - birth.year
    if (reference.month, reference.day) < (birth.month, birth.day):
        age -= 1
    return max(0, age)


def lookup_priced_plans(reference, county_id: str, age: int, tobacco: bool) -> List[PricedPlan]:
    """
    Priced plans for one county and rating tuple.

    Args:
        reference: ReferenceData source
        county_id: Rating county id
        age: Member age at the effective date
        tobacco: Tobacco rating flag

    Returns:
        List of PricedPlan ordered by plan id

    Raises:
        NoPlansInCounty: county has no plans
        NoPricingForParameters: none of the county's plans is priced for (age, tobacco)
    """
    county_id = str(county_id)
    plan_ids = sorted(set(reference.plan_ids_for_county(county_id)))
    if not plan_ids:
        raise NoPlansInCounty(f"No plans in county_id {county_id}")

    premiums = reference.premiums(plan_ids, age, tobacco)
    if not premiums:
        raise NoPricingForParameters(f"No pricing for age {age} (tobacco={tobacco})")

    priced_ids = [pid for pid in plan_ids if pid in premiums]
    if len(priced_ids) < len(plan_ids):
        logger.debug(
            f"PLAN LOOKUP: county {county_id} has {len(plan_ids) - len(priced_ids)} "
            f"plan(s) without pricing for age {age} (tobacco={tobacco})"
        )

    plans = {plan.plan_id: plan for plan in reference.plans(priced_ids)}
    return [
        PricedPlan(plan=plans[pid], premium=premiums[pid])
        for pid in priced_ids
        if pid in plans
    ]
