"""
Benchmark Calculator (SLCSP)

The premium tax credit benchmark is the second-lowest-cost on-market silver
plan for the member's county, age and tobacco status. When only one priced
silver plan exists, that plan is used and the rank is recorded as 1.
Non-silver and off-market plans are never substituted.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

from constants import SLCSP_RANK
from exceptions import NoPlansInCounty, NoSilverPlans, NoSilverPricing, NoPricedSilverPlans
from quote_types import PricedPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkResult:
    """Chosen benchmark plan plus the ranked silver candidates it came from."""
    plan_id: str
    premium: float
    rank: int  # 2 = true SLCSP, 1 = single-plan fallback
    candidates: Tuple[PricedPlan, ...]

    @property
    def lowest_premium(self) -> float:
        """Lowest cost silver premium (used for the affordability test)."""
        return self.candidates[0].premium

    def to_dict(self) -> dict:
        return {
            'plan_id': self.plan_id,
            'premium': self.premium,
            'slcsp_rank': self.rank,
            'silver_candidates': [
                {**c.plan.to_dict(), 'premium': c.premium} for c in self.candidates
            ],
        }


def rank_silver_plans(priced: List[PricedPlan]) -> List[PricedPlan]:
    """Sort ascending by premium; plan id breaks ties so the ranking is deterministic."""
    return sorted(priced, key=lambda p: (p.premium, p.plan.plan_id))


def compute_benchmark(reference, county_id: str, age: int, tobacco: bool) -> BenchmarkResult:
    """
    Compute the SLCSP benchmark for a county and rating tuple.

    Args:
        reference: ReferenceData source
        county_id: Rating county id
        age: Member age at the effective date
        tobacco: Tobacco rating flag

    Returns:
        BenchmarkResult

    Raises:
        NoPlansInCounty, NoSilverPlans, NoSilverPricing, NoPricedSilverPlans
    """
    county_id = str(county_id)
    plan_ids = sorted(set(reference.plan_ids_for_county(county_id)))
    if not plan_ids:
        raise NoPlansInCounty(f"No plans in county_id {county_id}")

    silver = [p for p in reference.plans(plan_ids) if p.on_market and p.is_silver]
    if not silver:
        raise NoSilverPlans(f"No on-market Silver plans in county_id {county_id}")

    premiums = reference.premiums([p.plan_id for p in silver], age, tobacco)
    if not premiums:
        raise NoSilverPricing(f"No pricing for Silver plans at age {age} (tobacco={tobacco})")

    ranked = rank_silver_plans([
        PricedPlan(plan=p, premium=premiums[p.plan_id])
        for p in silver
        if p.plan_id in premiums
    ])
    if not ranked:
        raise NoPricedSilverPlans(
            f"No priced Silver plans after filtering (age {age}, tobacco={tobacco})"
        )

    rank = SLCSP_RANK if len(ranked) >= SLCSP_RANK else 1
    chosen = ranked[rank - 1]
    if rank == 1:
        logger.info(f"BENCHMARK: county {county_id} has a single priced silver plan, using rank 1")

    return BenchmarkResult(
        plan_id=chosen.plan.plan_id,
        premium=chosen.premium,
        rank=rank,
        candidates=tuple(ranked),
    )
