"""
Quote Types
Dataclasses for members, plans, quote lines and quote batches
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Dict, List, Any, Tuple, Union

from constants import DATE_FORMAT, BENCHMARK_METAL_LEVEL
from geography import normalize_zip


def _parse_date(value) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a date. Returns None if unparseable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], DATE_FORMAT).date()
    except ValueError:
        return None


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _to_float(value) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Member:
    """
    Employee record as read from member management.
    Read-only to the quote engine.
    """
    member_id: str
    group_id: str
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[date] = None
    zip_code: Optional[str] = None
    tobacco: bool = False
    county_id: Optional[str] = None  # Stored rating county (FIPS), if already chosen
    state_code: Optional[str] = None
    household_size: int = 1

    # Income components (annual); None means not provided
    adjusted_gross_income: Optional[float] = None
    nontaxable_social_security: Optional[float] = None
    tax_exempt_interest: Optional[float] = None
    foreign_earned_income: Optional[float] = None
    tax_year: Optional[int] = None

    # Keys used to match external affordability results
    external_id: Optional[str] = None
    location_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.member_id

    @property
    def has_income_data(self) -> bool:
        return any(v is not None for v in (
            self.adjusted_gross_income,
            self.nontaxable_social_security,
            self.tax_exempt_interest,
            self.foreign_earned_income,
        ))

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Member":
        """Build a Member from a database row or JSON object."""
        county = record.get('county_id') or record.get('fips_code')
        tax_year = record.get('tax_year')
        return cls(
            member_id=str(record.get('member_id') or record.get('id')),
            group_id=str(record.get('group_id') or record.get('group') or ''),
            first_name=str(record.get('first_name') or ''),
            last_name=str(record.get('last_name') or ''),
            date_of_birth=_parse_date(record.get('date_of_birth')),
            zip_code=normalize_zip(record.get('zip_code')),
            tobacco=bool(record.get('tobacco') or False),
            county_id=str(county) if county else None,
            state_code=str(record['state_code']).upper() if record.get('state_code') else None,
            household_size=int(record.get('household_size') or 1),
            adjusted_gross_income=_to_float(record.get('adjusted_gross_income')),
            nontaxable_social_security=_to_float(record.get('nontaxable_social_security')),
            tax_exempt_interest=_to_float(record.get('tax_exempt_interest')),
            foreign_earned_income=_to_float(record.get('foreign_earned_income')),
            tax_year=int(tax_year) if tax_year else None,
            external_id=record.get('external_id'),
            location_id=record.get('location_id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Trimmed member block used in quote responses."""
        return {
            'id': self.member_id,
            'group_id': self.group_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'date_of_birth': self.date_of_birth.isoformat() if self.date_of_birth else None,
            'zip_code': self.zip_code,
            'tobacco': self.tobacco,
            'county_id': self.county_id,
        }


@dataclass(frozen=True)
class PlanInfo:
    """Plan metadata snapshot (immutable reference data)."""
    plan_id: str
    carrier_name: Optional[str] = None
    display_name: Optional[str] = None
    plan_type: Optional[str] = None
    level: Optional[str] = None
    on_market: bool = False
    network_name: Optional[str] = None
    summary_of_benefits_url: Optional[str] = None

    @property
    def is_silver(self) -> bool:
        return (self.level or '').strip().lower() == BENCHMARK_METAL_LEVEL

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PlanInfo":
        return cls(
            plan_id=str(record['plan_id']),
            carrier_name=record.get('carrier_name'),
            display_name=record.get('display_name') or record.get('name'),
            plan_type=record.get('plan_type'),
            level=record.get('level') or record.get('metal_level'),
            on_market=bool(record.get('on_market') or False),
            network_name=record.get('network_name'),
            summary_of_benefits_url=record.get('summary_of_benefits_url'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'plan_id': self.plan_id,
            'carrier_name': self.carrier_name,
            'display_name': self.display_name,
            'plan_type': self.plan_type,
            'level': self.level,
            'on_market': self.on_market,
            'network_name': self.network_name,
            'summary_of_benefits_url': self.summary_of_benefits_url,
        }


@dataclass(frozen=True)
class PricedPlan:
    """A plan together with its premium for one (age, tobacco) tuple."""
    plan: PlanInfo
    premium: float


@dataclass(frozen=True)
class QuoteLine:
    """One priced plan in a member's quote. Never mutated after creation."""
    plan_id: str
    premium: float
    adjusted_cost: float
    benchmark_plan_id: Optional[str]
    benchmark_premium: Optional[float]
    plan_details: PlanInfo

    def to_dict(self) -> Dict[str, Any]:
        return {
            'plan_id': self.plan_id,
            'premium': self.premium,
            'adjusted_cost': self.adjusted_cost,
            'benchmark_plan_id': self.benchmark_plan_id,
            'benchmark_premium': self.benchmark_premium,
            'plan_details': self.plan_details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteLine":
        return cls(
            plan_id=str(data['plan_id']),
            premium=float(data['premium']),
            adjusted_cost=float(data['adjusted_cost']),
            benchmark_plan_id=data.get('benchmark_plan_id'),
            benchmark_premium=_to_float(data.get('benchmark_premium')),
            plan_details=PlanInfo.from_record(data.get('plan_details') or {'plan_id': data['plan_id']}),
        )


@dataclass(frozen=True)
class AffordabilitySummary:
    """
    Affordability determination for one member.

    Either returned by the external affordability collaborator or computed
    internally by the subsidy calculator; both have the same shape.
    Money values are monthly.
    """
    fpl_percent: Optional[float]
    expected_contribution: Optional[float]
    benchmark_plan_id: Optional[str]
    benchmark_premium: Optional[float]
    premium_tax_credit: Optional[float]
    affordable: Optional[bool]
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fpl_percent': self.fpl_percent,
            'expected_contribution': self.expected_contribution,
            'benchmark_plan_id': self.benchmark_plan_id,
            'benchmark_premium': self.benchmark_premium,
            'premium_tax_credit': self.premium_tax_credit,
            'affordable': self.affordable,
            'source': self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AffordabilitySummary":
        return cls(
            fpl_percent=_to_float(data.get('fpl_percent')),
            expected_contribution=_to_float(data.get('expected_contribution')),
            benchmark_plan_id=data.get('benchmark_plan_id'),
            benchmark_premium=_to_float(data.get('benchmark_premium')),
            premium_tax_credit=_to_float(data.get('premium_tax_credit')),
            affordable=data.get('affordable'),
            source=data.get('source') or 'external',
        )


# =============================================================================
# MEMBER QUOTE ENTRY - closed union of three outcomes
# =============================================================================

STATUS_SKIPPED = 'skipped'
STATUS_NEEDS_COUNTY = 'needs_county'
STATUS_PRICED = 'priced'


@dataclass(frozen=True)
class SkippedEntry:
    """Terminal for this run: input or reference data missing."""
    member: Member
    reason: str
    age: Optional[int] = None
    tobacco: Optional[bool] = None
    county_id: Optional[str] = None

    status = STATUS_SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        meta = {
            'status': self.status,
            'skipped': True,
            'reason': self.reason,
            'zip_code': self.member.zip_code,
            'age': self.age,
            'tobacco': self.tobacco,
        }
        if self.county_id:
            meta['county_id'] = self.county_id
        return {'member': self.member.to_dict(), 'affordability': None, 'meta': meta, 'quotes': []}


@dataclass(frozen=True)
class NeedsCountyEntry:
    """ZIP spans several rating counties; recoverable through a preview."""
    member: Member
    candidates: Tuple[str, ...]
    age: Optional[int] = None
    tobacco: Optional[bool] = None

    status = STATUS_NEEDS_COUNTY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'member': self.member.to_dict(),
            'affordability': None,
            'meta': {
                'status': self.status,
                'skipped': True,
                'reason': "ZIP maps to multiple counties - a county must be chosen",
                'zip_code': self.member.zip_code,
                'county_ids': list(self.candidates),
                'age': self.age,
                'tobacco': self.tobacco,
            },
            'quotes': [],
        }


@dataclass(frozen=True)
class PricedEntry:
    """Member quoted in one county; lines sorted by adjusted cost."""
    member: Member
    county_id: str
    county_source: str
    age: int
    tobacco: bool
    affordability: Optional[AffordabilitySummary]
    lines: Tuple[QuoteLine, ...]
    affordability_note: Optional[str] = None

    status = STATUS_PRICED

    def to_dict(self) -> Dict[str, Any]:
        meta = {
            'status': self.status,
            'skipped': False,
            'zip_code': self.member.zip_code,
            'county_id': self.county_id,
            'county_source': self.county_source,
            'age': self.age,
            'tobacco': self.tobacco,
        }
        if self.affordability_note:
            meta['affordability_note'] = self.affordability_note
        return {
            'member': self.member.to_dict(),
            'affordability': self.affordability.to_dict() if self.affordability else None,
            'meta': meta,
            'quotes': [line.to_dict() for line in self.lines],
        }


MemberQuoteEntry = Union[SkippedEntry, NeedsCountyEntry, PricedEntry]


def entry_from_dict(data: Dict[str, Any]) -> MemberQuoteEntry:
    """Rebuild an entry from its serialized form (used when loading stored batches)."""
    member = Member.from_record(data.get('member') or {})
    meta = data.get('meta') or {}
    status = meta.get('status')

    if status == STATUS_PRICED:
        affordability = data.get('affordability')
        return PricedEntry(
            member=member,
            county_id=str(meta['county_id']),
            county_source=meta.get('county_source') or '',
            age=int(meta['age']),
            tobacco=bool(meta.get('tobacco')),
            affordability=AffordabilitySummary.from_dict(affordability) if affordability else None,
            lines=tuple(QuoteLine.from_dict(q) for q in data.get('quotes') or []),
            affordability_note=meta.get('affordability_note'),
        )
    if status == STATUS_NEEDS_COUNTY:
        return NeedsCountyEntry(
            member=member,
            candidates=tuple(str(c) for c in meta.get('county_ids') or []),
            age=meta.get('age'),
            tobacco=meta.get('tobacco'),
        )
    if status == STATUS_SKIPPED:
        return SkippedEntry(
            member=member,
            reason=meta.get('reason') or '',
            age=meta.get('age'),
            tobacco=meta.get('tobacco'),
            county_id=meta.get('county_id'),
        )
    raise ValueError(f"Unknown quote entry status: {status!r}")


@dataclass(frozen=True)
class QuoteBatch:
    """
    One immutable quote run for a group.
    Batches are append-only; the latest batch is the one with the greatest created_at.
    """
    batch_id: str
    group_id: str
    created_at: datetime
    entries: Tuple[MemberQuoteEntry, ...]
    run_context: Dict[str, Any] = field(default_factory=dict)

    def counts(self) -> Dict[str, int]:
        counts = {STATUS_SKIPPED: 0, STATUS_NEEDS_COUNTY: 0, STATUS_PRICED: 0}
        for entry in self.entries:
            counts[entry.status] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.batch_id,
            'group_id': self.group_id,
            'created_at': self.created_at.isoformat(),
            'quotes': [entry.to_dict() for entry in self.entries],
            'run_context': dict(self.run_context),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteBatch":
        return cls(
            batch_id=str(data['id']),
            group_id=str(data['group_id']),
            created_at=_parse_datetime(data['created_at']),
            entries=tuple(entry_from_dict(e) for e in data.get('quotes') or []),
            run_context=dict(data.get('run_context') or {}),
        )


@dataclass
class RunOverrides:
    """Caller-supplied parameters for one quote run."""
    effective_date: Optional[date] = None
    tobacco: Optional[bool] = None  # None = use each member's own flag
    county_id: Optional[str] = None  # Wins over stored and unique-ZIP counties
    member_counties: Dict[str, str] = field(default_factory=dict)  # member_id -> chosen county

    def signature(self) -> str:
        """Effective date + tobacco default; identifies an equivalent run."""
        effective = self.effective_date.isoformat() if self.effective_date else ''
        tobacco = '' if self.tobacco is None else ('1' if self.tobacco else '0')
        return f"{effective}|{tobacco}"


def parse_effective_date(value) -> Optional[date]:
    """Public wrapper used by the API and client layers."""
    return _parse_date(value)


def sort_lines(lines: List[QuoteLine]) -> List[QuoteLine]:
    """Ascending by adjusted cost, plan id as a stable tiebreak."""
    return sorted(lines, key=lambda line: (line.adjusted_cost, line.plan_id))
