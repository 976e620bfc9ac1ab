"""
Reference data access for the quote engine.

Plans, pricing, county membership and ZIP-to-county tables are produced by
a separate import pipeline and are read-only here. Two sources share one
interface:

- DatabaseReferenceData: PostgreSQL tables via PlanQueries
- FrameReferenceData: in-memory pandas DataFrames (tests, local runs)
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import pandas as pd

from database import DatabaseConnection
from geography import normalize_zip
from queries import PlanQueries
from quote_types import PlanInfo

logger = logging.getLogger(__name__)


class ReferenceData(ABC):
    """Read-only queries the quote pipeline needs."""

    @abstractmethod
    def county_ids_for_zip(self, zip_code: str) -> List[str]:
        """County ids for a canonical five-digit ZIP."""

    @abstractmethod
    def plan_ids_for_county(self, county_id: str) -> List[str]:
        """Plan ids offered in a county."""

    @abstractmethod
    def premiums(self, plan_ids: List[str], age: int, tobacco: bool) -> Dict[str, float]:
        """plan_id -> premium for the exact (age, tobacco) tuple. Unpriced plans are absent."""

    @abstractmethod
    def plans(self, plan_ids: List[str]) -> List[PlanInfo]:
        """Plan metadata for the given ids."""


def _premium_map(df: pd.DataFrame) -> Dict[str, float]:
    """Build plan_id -> premium, dropping rows without a usable premium."""
    if df is None or df.empty:
        return {}
    premiums = {}
    for row in df.itertuples(index=False):
        premium = pd.to_numeric(row.premium, errors='coerce')
        if pd.isna(premium):
            continue
        premiums[str(row.plan_id)] = float(premium)
    return premiums


def _plan_records(df: pd.DataFrame) -> List[PlanInfo]:
    if df is None or df.empty:
        return []
    df = df.astype(object).where(pd.notna(df), None)
    return [PlanInfo.from_record(record) for record in df.to_dict('records')]


class DatabaseReferenceData(ReferenceData):
    """Reference data backed by PostgreSQL."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def county_ids_for_zip(self, zip_code: str) -> List[str]:
        result = PlanQueries.get_counties_by_zip(self.db, zip_code)
        if result.empty:
            return []
        return [str(c) for c in result['county_id']]

    def plan_ids_for_county(self, county_id: str) -> List[str]:
        result = PlanQueries.get_plan_ids_by_county(self.db, county_id)
        if result.empty:
            return []
        return [str(p) for p in result['plan_id']]

    def premiums(self, plan_ids: List[str], age: int, tobacco: bool) -> Dict[str, float]:
        return _premium_map(PlanQueries.get_pricing(self.db, plan_ids, age, tobacco))

    def plans(self, plan_ids: List[str]) -> List[PlanInfo]:
        return _plan_records(PlanQueries.get_plans(self.db, plan_ids))


class FrameReferenceData(ReferenceData):
    """
    Reference data held in pandas DataFrames.

    Expected columns:
        zip_counties:  zip_code, county_id
        plan_counties: plan_id, county_id
        plans:         plan_id, carrier_name, display_name, plan_type, level, on_market, ...
        pricings:      plan_id, age, tobacco, premium
    """

    def __init__(self, zip_counties: pd.DataFrame, plan_counties: pd.DataFrame,
                 plans: pd.DataFrame, pricings: pd.DataFrame):
        self.zip_counties = zip_counties.copy()
        self.zip_counties['zip_code'] = self.zip_counties['zip_code'].map(normalize_zip)
        self.zip_counties['county_id'] = self.zip_counties['county_id'].astype(str)

        self.plan_counties = plan_counties.copy()
        self.plan_counties['plan_id'] = self.plan_counties['plan_id'].astype(str)
        self.plan_counties['county_id'] = self.plan_counties['county_id'].astype(str)

        self.plan_table = plans.copy()
        self.plan_table['plan_id'] = self.plan_table['plan_id'].astype(str)

        self.pricings = pricings.copy()
        self.pricings['plan_id'] = self.pricings['plan_id'].astype(str)
        self.pricings['age'] = self.pricings['age'].astype(int)
        self.pricings['tobacco'] = self.pricings['tobacco'].astype(bool)

    @classmethod
    def from_records(cls, zip_counties: List[dict], plan_counties: List[dict],
                     plans: List[dict], pricings: List[dict]) -> "FrameReferenceData":
        return cls(
            zip_counties=pd.DataFrame(zip_counties, columns=['zip_code', 'county_id']),
            plan_counties=pd.DataFrame(plan_counties, columns=['plan_id', 'county_id']),
            plans=pd.DataFrame(plans) if plans else pd.DataFrame(columns=['plan_id']),
            pricings=pd.DataFrame(pricings, columns=['plan_id', 'age', 'tobacco', 'premium']),
        )

    def county_ids_for_zip(self, zip_code: str) -> List[str]:
        rows = self.zip_counties[self.zip_counties['zip_code'] == normalize_zip(zip_code)]
        return rows['county_id'].tolist()

    def plan_ids_for_county(self, county_id: str) -> List[str]:
        rows = self.plan_counties[self.plan_counties['county_id'] == str(county_id)]
        return rows['plan_id'].drop_duplicates().tolist()

    def premiums(self, plan_ids: List[str], age: int, tobacco: bool) -> Dict[str, float]:
        p = self.pricings
        rows = p[p['plan_id'].isin(plan_ids) & (p['age'] == int(age)) & (p['tobacco'] == bool(tobacco))]
        return _premium_map(rows)

    def plans(self, plan_ids: List[str]) -> List[PlanInfo]:
        rows = self.plan_table[self.plan_table['plan_id'].isin(plan_ids)]
        return _plan_records(rows)


def load_reference_data(db: Optional[DatabaseConnection] = None) -> ReferenceData:
    """Reference data for the running service."""
    if db is None:
        from database import get_database_connection
        db = get_database_connection()
    return DatabaseReferenceData(db)
