"""
Quote Batch Orchestrator

Runs the per-member pipeline (geography -> priced plans -> benchmark ->
subsidy -> quote lines) for every member of a group and assembles one
immutable QuoteBatch with exactly one entry per member.

Per-member problems never abort a run; they become Skipped or NeedsCounty
entries. Anything else (reference database down, store failure) aborts the
run before a batch is written.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any

from benchmark import compute_benchmark, BenchmarkResult
from constants import DEFAULT_QUOTE_MAX_WORKERS
from exceptions import (
    MissingInputData,
    AmbiguousGeography,
    NoCountiesForZip,
    NoDataAvailable,
    FplTableUnavailable,
    ExternalServiceUnavailable,
    NoMembersInGroup,
)
from geography import counties_for_zip, resolve_county, CountyChoice
from plan_lookup import calculate_age, lookup_priced_plans
from quote_types import (
    Member,
    QuoteLine,
    AffordabilitySummary,
    SkippedEntry,
    NeedsCountyEntry,
    PricedEntry,
    MemberQuoteEntry,
    QuoteBatch,
    RunOverrides,
    PricedPlan,
    sort_lines,
)
from subsidy_calculator import (
    FplTable,
    default_fpl_table,
    calculate_premium_tax_credit,
    internal_affordability,
    resolve_affordability,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_quote_lines(priced: List[PricedPlan],
                      affordability: Optional[AffordabilitySummary],
                      benchmark: Optional[BenchmarkResult]) -> List[QuoteLine]:
    """
    Turn priced plans into quote lines.

    The premium tax credit reduces on-market plans only; off-market plans
    always carry their full premium.
    """
    credit = 0.0
    if affordability is not None and affordability.premium_tax_credit is not None:
        credit = affordability.premium_tax_credit

    if affordability is not None and affordability.benchmark_plan_id:
        benchmark_plan_id = affordability.benchmark_plan_id
        benchmark_premium = affordability.benchmark_premium
    elif benchmark is not None:
        benchmark_plan_id = benchmark.plan_id
        benchmark_premium = benchmark.premium
    else:
        benchmark_plan_id = None
        benchmark_premium = None

    lines = []
    for item in priced:
        if item.plan.on_market:
            adjusted = round(max(0.0, item.premium - credit), 2)
        else:
            adjusted = item.premium
        lines.append(QuoteLine(
            plan_id=item.plan.plan_id,
            premium=item.premium,
            adjusted_cost=adjusted,
            benchmark_plan_id=benchmark_plan_id,
            benchmark_premium=benchmark_premium,
            plan_details=item.plan,
        ))
    return sort_lines(lines)


class QuoteEngine:
    """
    Quote generation for employer groups.

    Args:
        reference: ReferenceData (plans, pricing, counties)
        members: MemberDirectory
        store: QuoteStore for batches
        provider: optional AffordabilityProvider; its premium tax credit wins over the internal one
        fpl_table: FplTable (defaults to the shipped guidelines)
        max_workers: parallel member pipelines per run
        clock: returns the created_at timestamp for new batches
    """

    def __init__(self, reference, members, store, provider=None,
                 fpl_table: Optional[FplTable] = None,
                 max_workers: int = DEFAULT_QUOTE_MAX_WORKERS,
                 clock=_utcnow):
        self.reference = reference
        self.members = members
        self.store = store
        self.provider = provider
        self.fpl_table = fpl_table or default_fpl_table()
        self.max_workers = max(1, int(max_workers or 1))
        self.clock = clock

    # ------------------------------------------------------------------
    # Per-member pipeline
    # ------------------------------------------------------------------

    def _resolve_geography(self, member: Member, explicit_county: Optional[str],
                           run_county: Optional[str]) -> CountyChoice:
        if explicit_county:
            return resolve_county([], explicit=explicit_county)

        if not member.zip_code:
            raise MissingInputData("Missing ZIP code")

        candidates = counties_for_zip(self.reference, member.zip_code)
        if not candidates:
            raise NoCountiesForZip(f"No counties found for ZIP {member.zip_code}")

        choice = resolve_county(candidates, explicit=run_county, stored=member.county_id)
        if choice is None:
            raise AmbiguousGeography(member.zip_code, candidates)
        return choice

    def _affordability(self, group_id: str, member: Member, county_id: str, age: int,
                       tobacco: bool, effective_date: date):
        """Returns (affordability, benchmark, note)."""
        note = None
        benchmark = None
        internal = None

        try:
            benchmark = compute_benchmark(self.reference, county_id, age, tobacco)
        except NoDataAvailable as e:
            note = e.reason

        if benchmark is not None:
            if member.has_income_data:
                tax_year = member.tax_year or effective_date.year
                try:
                    breakdown = calculate_premium_tax_credit(
                        benchmark_premium=benchmark.premium,
                        household_size=member.household_size,
                        tax_year=tax_year,
                        state_code=member.state_code,
                        adjusted_gross_income=member.adjusted_gross_income,
                        nontaxable_social_security=member.nontaxable_social_security,
                        tax_exempt_interest=member.tax_exempt_interest,
                        foreign_earned_income=member.foreign_earned_income,
                        fpl_table=self.fpl_table,
                    )
                    internal = internal_affordability(
                        breakdown, benchmark.plan_id, benchmark.lowest_premium, tax_year
                    )
                except FplTableUnavailable as e:
                    note = e.reason
            else:
                note = "No income data - subsidy not calculated"

        external = None
        if self.provider is not None:
            try:
                external = self.provider.determine(group_id, member, effective_date, county_id)
            except ExternalServiceUnavailable as e:
                logger.warning(
                    f"QUOTE RUN: affordability service unavailable for member {member.member_id}, "
                    f"using internal calculation ({e.reason})"
                )

        chosen = resolve_affordability(external, internal)
        if chosen is not None and chosen.premium_tax_credit is not None:
            # Quote lines are priced in cents
            chosen = replace(chosen, premium_tax_credit=round(chosen.premium_tax_credit, 2))
        return chosen, benchmark, (note if chosen is None else None)

    def quote_member(self, group_id: str, member: Member, effective_date: date,
                     tobacco: Optional[bool] = None, explicit_county: Optional[str] = None,
                     run_county: Optional[str] = None) -> MemberQuoteEntry:
        """
        Run the full pipeline for one member and return exactly one entry.

        Args:
            group_id: Group the member belongs to
            member: Member record
            effective_date: Coverage effective date (age reference)
            tobacco: Tobacco override; None uses the member's own flag
            explicit_county: County chosen for this member (highest priority)
            run_county: Run-level county; wins over the stored and unique-ZIP county
        """
        use_tobacco = member.tobacco if tobacco is None else bool(tobacco)
        age = None
        county_id = None
        try:
            if member.date_of_birth is None:
                raise MissingInputData("Missing date of birth")
            age = calculate_age(member.date_of_birth, effective_date)
            if age is None:
                raise MissingInputData("Age could not be computed")

            choice = self._resolve_geography(member, explicit_county, run_county)
            county_id = choice.county_id

            priced = lookup_priced_plans(self.reference, county_id, age, use_tobacco)
            affordability, benchmark, note = self._affordability(
                group_id, member, county_id, age, use_tobacco, effective_date
            )
            return PricedEntry(
                member=member,
                county_id=county_id,
                county_source=choice.source,
                age=age,
                tobacco=use_tobacco,
                affordability=affordability,
                lines=tuple(build_quote_lines(priced, affordability, benchmark)),
                affordability_note=note,
            )
        except AmbiguousGeography as e:
            return NeedsCountyEntry(member=member, candidates=tuple(e.candidates),
                                    age=age, tobacco=use_tobacco)
        except (MissingInputData, NoDataAvailable) as e:
            logger.debug(f"QUOTE RUN: member {member.member_id} skipped: {e.reason}")
            return SkippedEntry(member=member, reason=e.reason, age=age,
                                tobacco=use_tobacco, county_id=county_id)

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    def generate_batch(self, group_id: str, overrides: Optional[RunOverrides] = None) -> QuoteBatch:
        """
        Quote every member of the group and append the batch to the store.

        Raises:
            GroupNotFound, NoMembersInGroup, PersistenceFailure
        """
        overrides = overrides or RunOverrides()
        effective_date = overrides.effective_date or date.today()
        members = self.members.get_group_members(group_id)
        if not members:
            raise NoMembersInGroup(f"No members in group {group_id}")

        logger.info(
            f"QUOTE RUN: group {group_id}, {len(members)} members, "
            f"effective {effective_date.isoformat()}, workers={self.max_workers}"
        )
        run_start = time.time()

        def run_one(member: Member) -> MemberQuoteEntry:
            return self.quote_member(
                group_id,
                member,
                effective_date,
                tobacco=overrides.tobacco,
                explicit_county=overrides.member_counties.get(member.member_id),
                run_county=overrides.county_id,
            )

        if self.max_workers == 1 or len(members) == 1:
            entries = [run_one(m) for m in members]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(members))) as executor:
                # map() yields results in submission order
                entries = list(executor.map(run_one, members))

        batch = QuoteBatch(
            batch_id=uuid.uuid4().hex,
            group_id=str(group_id),
            created_at=self.clock(),
            entries=tuple(entries),
            run_context={
                'member_count': len(members),
                'effective_date': effective_date.isoformat(),
                'tobacco': overrides.tobacco,
                'county_id': overrides.county_id,
                'member_counties': dict(overrides.member_counties),
            },
        )
        self.store.append(batch)

        counts = batch.counts()
        logger.info(
            f"QUOTE RUN: batch {batch.batch_id} saved in {time.time() - run_start:.2f}s "
            f"(priced={counts['priced']}, needs_county={counts['needs_county']}, skipped={counts['skipped']})"
        )
        return batch

    def latest(self, group_id: str) -> Optional[QuoteBatch]:
        return self.store.latest(group_id)

    def history(self, group_id: str) -> List[QuoteBatch]:
        return self.store.history(group_id)

    def preview_member(self, group_id: str, member_id: str, county_id: str,
                       effective_date: Optional[date] = None,
                       tobacco: Optional[bool] = None) -> MemberQuoteEntry:
        """Quote one member in one chosen county. Never persisted."""
        if not county_id:
            raise MissingInputData("county_id is required")
        member = self.members.get_member(group_id, member_id)
        return self.quote_member(
            group_id, member, effective_date or date.today(),
            tobacco=tobacco, explicit_county=str(county_id),
        )

    def benchmark_for_member(self, group_id: str, member_id: str, county_id: str,
                             effective_date: Optional[date] = None,
                             tobacco: Optional[bool] = None,
                             state_code: Optional[str] = None) -> Dict[str, Any]:
        """
        SLCSP benchmark and internal subsidy breakdown for one member. Never persisted.

        Raises:
            MemberNotFound, MissingInputData, NoDataAvailable subclasses, FplTableUnavailable
        """
        if not county_id:
            raise MissingInputData("county_id is required")
        member = self.members.get_member(group_id, member_id)
        effective_date = effective_date or date.today()
        use_tobacco = member.tobacco if tobacco is None else bool(tobacco)

        age = calculate_age(member.date_of_birth, effective_date)
        if age is None:
            raise MissingInputData("Missing or invalid date of birth")

        benchmark = compute_benchmark(self.reference, str(county_id), age, use_tobacco)

        subsidy = None
        if member.has_income_data:
            breakdown = calculate_premium_tax_credit(
                benchmark_premium=benchmark.premium,
                household_size=member.household_size,
                tax_year=member.tax_year or effective_date.year,
                state_code=state_code or member.state_code,
                adjusted_gross_income=member.adjusted_gross_income,
                nontaxable_social_security=member.nontaxable_social_security,
                tax_exempt_interest=member.tax_exempt_interest,
                foreign_earned_income=member.foreign_earned_income,
                fpl_table=self.fpl_table,
            )
            subsidy = breakdown.to_dict()

        return {
            'member_id': member.member_id,
            'county_id': str(county_id),
            'effective_date': effective_date.isoformat(),
            'age': age,
            'tobacco': use_tobacco,
            'benchmark': benchmark.to_dict(),
            'subsidy': subsidy,
        }


def build_engine(config=None) -> QuoteEngine:
    """QuoteEngine wired to PostgreSQL and, when configured, the Ideon service."""
    from affordability_provider import provider_from_environment
    from config import AppConfig
    from database import get_database_connection
    from members import DatabaseMemberDirectory
    from quote_store import DatabaseQuoteStore
    from reference_data import load_reference_data

    config = config or AppConfig.from_environment()
    db = get_database_connection()
    return QuoteEngine(
        reference=load_reference_data(db),
        members=DatabaseMemberDirectory(db),
        store=DatabaseQuoteStore(db),
        provider=provider_from_environment(),
        max_workers=config.quote_max_workers,
    )
