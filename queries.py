"""
SQL queries for the Group Quote Engine
All queries against the group-quotes PostgreSQL database
"""

from typing import List

import pandas as pd

from database import DatabaseConnection


class PlanQueries:
    """SQL queries for geography, plan and pricing reference data"""

    @staticmethod
    def get_counties_by_zip(db: DatabaseConnection, zip_code: str) -> pd.DataFrame:
        """
        Get every rating county a ZIP code touches

        Args:
            db: Database connection
            zip_code: 5-digit ZIP code (as string with leading zeros)

        Returns:
            DataFrame with a county_id column
        """
        query = """
        SELECT DISTINCT county_id
        FROM zip_counties
        WHERE zip_code = %s
        ORDER BY county_id
        """
        return db.execute_query(query, (zip_code,))

    @staticmethod
    def get_plan_ids_by_county(db: DatabaseConnection, county_id: str) -> pd.DataFrame:
        """
        Get plan ids offered in a county

        Returns:
            DataFrame with a plan_id column
        """
        query = """
        SELECT DISTINCT plan_id
        FROM plan_counties
        WHERE county_id = %s
        ORDER BY plan_id
        """
        return db.execute_query(query, (county_id,))

    @staticmethod
    def get_pricing(db: DatabaseConnection, plan_ids: List[str], age: int,
                    tobacco: bool) -> pd.DataFrame:
        """
        Get premiums for an exact (plan, age, tobacco) tuple

        Args:
            db: Database connection
            plan_ids: Plan ids to price
            age: Member age at the effective date
            tobacco: Tobacco rating flag

        Returns:
            DataFrame with columns: plan_id, premium
        """
        if not plan_ids:
            return pd.DataFrame(columns=['plan_id', 'premium'])

        # Bulk lookup through the pooled SQLAlchemy engine
        query = """
        SELECT plan_id, premium
        FROM pricings
        WHERE plan_id IN %s
            AND age = %s
            AND tobacco = %s
        """
        return pd.read_sql(query, db.engine, params=(tuple(plan_ids), int(age), bool(tobacco)))

    @staticmethod
    def get_plans(db: DatabaseConnection, plan_ids: List[str]) -> pd.DataFrame:
        """
        Get plan metadata

        Args:
            db: Database connection
            plan_ids: Plan ids to load

        Returns:
            DataFrame of plan metadata
        """
        if not plan_ids:
            return pd.DataFrame()

        placeholders = ', '.join(['%s'] * len(plan_ids))
        query = f"""
        SELECT
            plan_id,
            carrier_name,
            COALESCE(display_name, name) AS display_name,
            plan_type,
            level,
            on_market,
            network_name,
            summary_of_benefits_url
        FROM plans
        WHERE plan_id IN ({placeholders})
        ORDER BY plan_id
        """
        return db.execute_query(query, tuple(plan_ids))


class MemberQueries:
    """SQL queries for member records (owned by member management, read-only here)"""

    MEMBER_COLUMNS = """
            m.id AS member_id,
            m.group_id,
            m.first_name,
            m.last_name,
            m.date_of_birth,
            m.zip_code,
            m.tobacco,
            m.fips_code AS county_id,
            m.state_code,
            m.household_size,
            m.adjusted_gross_income,
            m.nontaxable_social_security,
            m.tax_exempt_interest,
            m.foreign_earned_income,
            m.tax_year,
            m.external_id,
            m.location_id
    """

    @staticmethod
    def group_exists(db: DatabaseConnection, group_id: str) -> bool:
        result = db.execute_query("SELECT 1 FROM groups WHERE id = %s", (group_id,))
        return not result.empty

    @staticmethod
    def get_members_by_group(db: DatabaseConnection, group_id: str) -> pd.DataFrame:
        query = f"""
        SELECT {MemberQueries.MEMBER_COLUMNS}
        FROM members m
        WHERE m.group_id = %s
        ORDER BY m.last_name, m.first_name, m.id
        """
        return db.execute_query(query, (group_id,))

    @staticmethod
    def get_member(db: DatabaseConnection, group_id: str, member_id: str) -> pd.DataFrame:
        query = f"""
        SELECT {MemberQueries.MEMBER_COLUMNS}
        FROM members m
        WHERE m.group_id = %s AND m.id = %s
        """
        return db.execute_query(query, (group_id, member_id))


class QuoteResultQueries:
    """SQL for the append-only quote_results table"""

    @staticmethod
    def insert_batch(db: DatabaseConnection, batch_id: str, group_id: str,
                     created_at, document: str) -> None:
        query = """
        INSERT INTO quote_results (id, group_id, created_at, document)
        VALUES (%s, %s, %s, %s::jsonb)
        """
        db.execute_write(query, (batch_id, group_id, created_at, document))

    @staticmethod
    def get_latest(db: DatabaseConnection, group_id: str) -> pd.DataFrame:
        query = """
        SELECT document
        FROM quote_results
        WHERE group_id = %s
        ORDER BY created_at DESC, seq DESC
        LIMIT 1
        """
        return db.execute_query(query, (group_id,))

    @staticmethod
    def get_history(db: DatabaseConnection, group_id: str) -> pd.DataFrame:
        query = """
        SELECT document
        FROM quote_results
        WHERE group_id = %s
        ORDER BY created_at DESC, seq DESC
        """
        return db.execute_query(query, (group_id,))
