"""
External affordability determination (Ideon ICHRA affordability API)

Flow per member:
1. POST /groups/{group_id}/ichra_affordability_calculations
2. Poll GET /ichra_affordability_calculations/{id} until complete/failed or timeout
3. GET /ichra_affordability_calculations/{id}/members and pick this member's row

Requests are throttled (one every IDEON_MIN_DELAY_MS, shared across worker
threads) and retried with exponential backoff on 429 and 5xx responses.
Any failure surfaces as ExternalServiceUnavailable so the engine can fall
back to the internal subsidy calculation.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List, Dict, Any

import requests

from config import IdeonConfig
from constants import AFFORDABILITY_SOURCE_EXTERNAL
from exceptions import ExternalServiceUnavailable
from quote_types import AffordabilitySummary, Member

logger = logging.getLogger(__name__)

COMPLETE_STATUSES = ('completed', 'complete')
FAILED_STATUS = 'failed'


class AffordabilityProvider(ABC):
    """Capability: an authoritative affordability determination for one member."""

    @abstractmethod
    def determine(self, group_id: str, member: Member, effective_date: date,
                  county_id: Optional[str] = None) -> AffordabilitySummary:
        """
        Returns:
            AffordabilitySummary with source 'external'

        Raises:
            ExternalServiceUnavailable: failed, timed out or no usable result
        """


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def select_member_row(rows: List[Dict[str, Any]], member: Member) -> Optional[Dict[str, Any]]:
    """
    Pick this member's row from the /members payload.

    Match order: external id (two payload shapes), then first name + last
    name + date of birth (case-insensitive names). Falls back to the first row.
    """
    if not rows:
        return None

    if member.external_id:
        ext = str(member.external_id)
        for row in rows:
            nested = row.get('member') or {}
            if str(row.get('member_external_id') or '') == ext or str(nested.get('external_id') or '') == ext:
                return row

    dob = member.date_of_birth.isoformat() if member.date_of_birth else ''
    first = member.first_name.lower()
    last = member.last_name.lower()
    for row in rows:
        nested = row.get('member') or {}
        row_dob = str(nested.get('date_of_birth') or row.get('date_of_birth') or '')[:10]
        row_first = str(nested.get('first_name') or row.get('first_name') or '').lower()
        row_last = str(nested.get('last_name') or row.get('last_name') or '').lower()
        if row_dob == dob and row_first == first and row_last == last:
            return row

    return rows[0]


def map_member_row(row: Dict[str, Any]) -> AffordabilitySummary:
    """Map an Ideon member row to an AffordabilitySummary; benchmark falls back to the second listed plan."""
    plans = row.get('plans') or []
    second = plans[1] if len(plans) > 1 else {}

    benchmark_plan_id = row.get('benchmark_plan_id') or second.get('id')
    benchmark_premium = _to_float(row.get('benchmark_premium'))
    if benchmark_premium is None:
        benchmark_premium = _to_float(second.get('premium'))

    affordable = row.get('affordable')
    return AffordabilitySummary(
        fpl_percent=_to_float(row.get('fpl_percent')),
        expected_contribution=_to_float(row.get('expected_contribution')),
        benchmark_plan_id=str(benchmark_plan_id) if benchmark_plan_id else None,
        benchmark_premium=benchmark_premium,
        premium_tax_credit=_to_float(row.get('premium_tax_credit')),
        affordable=affordable if isinstance(affordable, bool) else None,
        source=AFFORDABILITY_SOURCE_EXTERNAL,
    )


class IdeonAffordabilityProvider(AffordabilityProvider):
    """Ideon-backed AffordabilityProvider using requests."""

    def __init__(self, config: Optional[IdeonConfig] = None,
                 session: Optional[requests.Session] = None,
                 sleep=time.sleep, clock=time.monotonic):
        self.config = config or IdeonConfig.from_environment()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Vericred-Api-Key": self.config.api_key,
            "Ideon-Api-Key": self.config.api_key,
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Accept-Version": "v6",
        })
        self._sleep = sleep
        self._clock = clock
        self._throttle_lock = threading.Lock()
        self._last_request_at = None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _throttle(self):
        """Space requests at least min_delay_ms apart across all threads."""
        with self._throttle_lock:
            now = self._clock()
            if self._last_request_at is not None:
                wait = self._last_request_at + self.config.min_delay_ms / 1000 - now
                if wait > 0:
                    self._sleep(wait)
            self._last_request_at = self._clock()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        retries = self.config.max_retries
        backoff_ms = self.config.initial_backoff_ms

        while True:
            self._throttle()
            logger.info(f"IDEON: {method} {path}")
            try:
                response = self.session.request(
                    method, url, json=payload, timeout=self.config.request_timeout_s
                )
            except requests.RequestException as e:
                raise ExternalServiceUnavailable(f"Ideon request failed: {e}") from e

            status = response.status_code
            retriable = status == 429 or 500 <= status <= 599
            if retriable and retries > 0:
                logger.warning(f"IDEON: HTTP {status}. Retrying in {backoff_ms}ms...")
                self._sleep(backoff_ms / 1000)
                retries -= 1
                backoff_ms = min(backoff_ms * 2, self.config.max_backoff_ms)
                continue

            if status >= 400:
                logger.error(f"IDEON: {method} {path} failed with HTTP {status}: {response.text[:300]}")
                raise ExternalServiceUnavailable(f"Ideon returned HTTP {status}")

            try:
                return response.json()
            except ValueError as e:
                raise ExternalServiceUnavailable("Ideon returned a non-JSON response") from e

    # ------------------------------------------------------------------
    # Calculation lifecycle
    # ------------------------------------------------------------------

    def start_calculation(self, group_id: str, member: Member, effective_date: date) -> str:
        payload = {
            'ichra_affordability_calculation': {
                'effective_date': effective_date.isoformat(),
                'plan_year': effective_date.year,
                'rating_area_location': {
                    'zip_code': member.zip_code,
                    'location_id': member.location_id,
                },
            }
        }
        data = self._request('POST', f"/groups/{group_id}/ichra_affordability_calculations", payload)
        calc_id = (data.get('ichra_affordability_calculation') or {}).get('id') or data.get('id')
        if not calc_id:
            raise ExternalServiceUnavailable("Ideon did not return a calculation id")
        return str(calc_id)

    def wait_for_completion(self, calc_id: str) -> Dict[str, Any]:
        deadline = self._clock() + self.config.poll_timeout_s
        while self._clock() < deadline:
            data = self._request('GET', f"/ichra_affordability_calculations/{calc_id}")
            status = str(
                (data.get('ichra_affordability_calculation') or {}).get('status') or data.get('status') or ''
            ).lower()
            logger.debug(f"IDEON: calculation {calc_id} status {status!r}")
            if status in COMPLETE_STATUSES:
                return data
            if status == FAILED_STATUS:
                raise ExternalServiceUnavailable("Ideon affordability calculation failed")
            self._sleep(self.config.poll_interval_s)
        raise ExternalServiceUnavailable("Timed out waiting for Ideon affordability calculation")

    def fetch_member_rows(self, calc_id: str) -> List[Dict[str, Any]]:
        data = self._request('GET', f"/ichra_affordability_calculations/{calc_id}/members")
        if isinstance(data, list):
            return data
        rows = data.get('members') if isinstance(data, dict) else None
        return rows if isinstance(rows, list) else []

    def determine(self, group_id: str, member: Member, effective_date: date,
                  county_id: Optional[str] = None) -> AffordabilitySummary:
        if not self.config.api_key:
            raise ExternalServiceUnavailable("IDEON_API_KEY is not configured")

        calc_id = self.start_calculation(group_id, member, effective_date)
        self.wait_for_completion(calc_id)

        rows = self.fetch_member_rows(calc_id)
        if not rows:
            raise ExternalServiceUnavailable("No member results returned by Ideon")

        row = select_member_row(rows, member)
        summary = map_member_row(row)
        logger.info(
            f"IDEON: member {member.member_id} credit={summary.premium_tax_credit} "
            f"benchmark={summary.benchmark_plan_id}"
        )
        return summary


def provider_from_environment() -> Optional[AffordabilityProvider]:
    """Ideon provider when an API key is configured, else None (internal calculation only)."""
    config = IdeonConfig.from_environment()
    is_valid, error = config.validate()
    if not is_valid:
        logger.info(f"IDEON: disabled ({error})")
        return None
    return IdeonAffordabilityProvider(config)
