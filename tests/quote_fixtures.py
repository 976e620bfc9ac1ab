"""
Shared test data: a small reference dataset and one employer group.

ZIPs
    29654  -> 45007                   (single county, full plan menu)
    02134  -> 25025                   (single county, priced only for age 30)
    60000  -> 17031, 17043, 17097     (ambiguous)
    99999  -> nothing

Counties
    45007  silver on-market S1 320 / S2 305 / S3 310, bronze B1 250,
           gold off-market G1 450, silver off-market S4 200, silver SX unpriced
    17031  silver S5 275 (only silver), bronze B2 200
    17043  bronze B3 210 (no silver)
    17097  no plans
"""

from datetime import date, datetime, timedelta, timezone

from members import InMemoryMemberDirectory
from quote_engine import QuoteEngine
from quote_store import MemoryQuoteStore
from quote_types import Member
from reference_data import FrameReferenceData

EFFECTIVE_DATE = date(2025, 1, 1)
GROUP_ID = "g1"

PLANS = [
    {'plan_id': 'S1', 'carrier_name': 'Acme', 'display_name': 'Acme Silver 1', 'plan_type': 'HMO', 'level': 'Silver', 'on_market': True},
    {'plan_id': 'S2', 'carrier_name': 'Acme', 'display_name': 'Acme Silver 2', 'plan_type': 'PPO', 'level': 'silver', 'on_market': True},
    {'plan_id': 'S3', 'carrier_name': 'Beta', 'display_name': 'Beta Silver', 'plan_type': 'EPO', 'level': 'SILVER', 'on_market': True},
    {'plan_id': 'B1', 'carrier_name': 'Beta', 'display_name': 'Beta Bronze', 'plan_type': 'HMO', 'level': 'bronze', 'on_market': True},
    {'plan_id': 'G1', 'carrier_name': 'Gamma', 'display_name': 'Gamma Gold', 'plan_type': 'PPO', 'level': 'gold', 'on_market': False},
    {'plan_id': 'S4', 'carrier_name': 'Gamma', 'display_name': 'Gamma Silver Direct', 'plan_type': 'PPO', 'level': 'silver', 'on_market': False},
    {'plan_id': 'SX', 'carrier_name': 'Delta', 'display_name': 'Delta Silver', 'plan_type': 'HMO', 'level': 'silver', 'on_market': True},
    {'plan_id': 'S5', 'carrier_name': 'Acme', 'display_name': 'Acme Silver IL', 'plan_type': 'HMO', 'level': 'silver', 'on_market': True},
    {'plan_id': 'B2', 'carrier_name': 'Acme', 'display_name': 'Acme Bronze IL', 'plan_type': 'HMO', 'level': 'bronze', 'on_market': True},
    {'plan_id': 'B3', 'carrier_name': 'Beta', 'display_name': 'Beta Bronze IL', 'plan_type': 'HMO', 'level': 'bronze', 'on_market': True},
    {'plan_id': 'M1', 'carrier_name': 'Acme', 'display_name': 'Acme Silver MA', 'plan_type': 'HMO', 'level': 'silver', 'on_market': True},
]

ZIP_COUNTIES = [
    {'zip_code': '29654', 'county_id': '45007'},
    {'zip_code': 2134, 'county_id': '25025'},
    {'zip_code': '60000', 'county_id': '17031'},
    {'zip_code': '60000', 'county_id': '17043'},
    {'zip_code': '60000', 'county_id': '17097'},
    {'zip_code': '60000', 'county_id': '17031'},
]

PLAN_COUNTIES = [
    {'plan_id': pid, 'county_id': '45007'} for pid in ('S1', 'S2', 'S3', 'B1', 'G1', 'S4', 'SX')
] + [
    {'plan_id': 'S5', 'county_id': '17031'},
    {'plan_id': 'B2', 'county_id': '17031'},
    {'plan_id': 'B3', 'county_id': '17043'},
    {'plan_id': 'M1', 'county_id': '25025'},
]


def _price(plan_id, premium, age=40, tobacco=False):
    return {'plan_id': plan_id, 'age': age, 'tobacco': tobacco, 'premium': premium}


PRICINGS = [
    _price('S1', 320.0), _price('S2', 305.0), _price('S3', 310.0), _price('B1', 250.0),
    _price('G1', 450.0), _price('S4', 200.0),
    _price('S1', 480.0, tobacco=True), _price('S2', 457.5, tobacco=True),
    _price('S3', 465.0, tobacco=True), _price('G1', 675.0, tobacco=True),
    _price('S5', 275.0), _price('B2', 200.0),
    _price('B3', 210.0),
    _price('M1', 300.0, age=30),
]


def build_reference() -> FrameReferenceData:
    return FrameReferenceData.from_records(ZIP_COUNTIES, PLAN_COUNTIES, PLANS, PRICINGS)


def member(member_id, **fields) -> Member:
    values = {
        'member_id': member_id,
        'group_id': GROUP_ID,
        'first_name': member_id.title(),
        'last_name': 'Test',
        'date_of_birth': date(1985, 1, 1),
        'zip_code': '29654',
    }
    values.update(fields)
    return Member(**values)


def build_members():
    """Group g1 covering every entry outcome, plus an empty group g-empty."""
    return [
        member('alice', adjusted_gross_income=30000, household_size=1, tax_year=2025),
        member('bob', zip_code=None),
        member('carol', zip_code='60000', adjusted_gross_income=45000, household_size=2),
        member('dan', date_of_birth=None),
        member('eve', zip_code='99999'),
        member('frank', zip_code='60000', county_id='17031'),
    ]


class SteppingClock:
    """created_at values one second apart."""

    def __init__(self, start=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


def build_engine(provider=None, max_workers=4, store=None, members=None) -> QuoteEngine:
    directory = InMemoryMemberDirectory({
        GROUP_ID: members if members is not None else build_members(),
        'g-empty': [],
    })
    return QuoteEngine(
        reference=build_reference(),
        members=directory,
        store=store or MemoryQuoteStore(),
        provider=provider,
        max_workers=max_workers,
        clock=SteppingClock(),
    )
