"""
HTTP client for the quote API.

Thin wrappers around the endpoints in api.py with a request timeout and
consistent error handling.
"""

import logging
from datetime import date
from typing import Optional, Dict, Any, List

import requests

from config import AppConfig

logger = logging.getLogger(__name__)


class QuoteApiError(Exception):
    """Non-2xx response or transport failure. status_code is None for transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class QuotesApiClient:

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: float = 20.0):
        self.base_url = (base_url or AppConfig.from_environment().quotes_api_url).rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: Optional[dict] = None):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"QUOTES API: {method} {path} failed: {e}")
            raise QuoteApiError(f"Request failed: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = ''
            if isinstance(data, dict):
                message = data.get('error') or data.get('detail') or ''
            raise QuoteApiError(str(message or f"HTTP {response.status_code}"), response.status_code)
        return data

    def health(self) -> Dict[str, Any]:
        return self._request('GET', "/health")

    def run_quotes(self, group_id: str, effective_date=None, tobacco: Optional[bool] = None,
                   county_id: Optional[str] = None,
                   member_counties: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        payload = {
            'effective_date': _iso(effective_date),
            'tobacco': tobacco,
            'county_id': county_id,
            'member_counties': dict(member_counties or {}),
        }
        return self._request('POST', f"/groups/{group_id}/quotes", payload)

    def latest(self, group_id: str) -> Optional[Dict[str, Any]]:
        """Latest batch, or None when the group has none yet."""
        try:
            return self._request('GET', f"/groups/{group_id}/quotes")
        except QuoteApiError as e:
            if e.status_code == 404:
                return None
            raise

    def history(self, group_id: str) -> List[Dict[str, Any]]:
        return self._request('GET', f"/groups/{group_id}/quotes/history")

    def preview(self, group_id: str, member_id: str, county_id: str, effective_date=None,
                tobacco: Optional[bool] = None) -> Dict[str, Any]:
        payload = {
            'member_id': member_id,
            'county_id': county_id,
            'effective_date': _iso(effective_date),
            'tobacco': tobacco,
        }
        return self._request('POST', f"/groups/{group_id}/quotes/preview", payload)

    def benchmark(self, group_id: str, member_id: str, county_id: str, effective_date=None,
                  tobacco: Optional[bool] = None, state_code: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            'member_id': member_id,
            'county_id': county_id,
            'effective_date': _iso(effective_date),
            'tobacco': tobacco,
            'state_code': state_code,
        }
        return self._request('POST', f"/groups/{group_id}/quotes/benchmark", payload)
