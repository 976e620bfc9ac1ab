"""
Quote session: client-side run / poll / county-resolution state machine.

States:
    IDLE                 nothing loaded, or a poll timed out
    RUNNING              a full run is in flight (second runs are suppressed)
    NEEDS_COUNTY_CHOICE  the working view has members whose ZIP spans several counties
    READY                every entry in the working view is resolved
    ERROR                the last run failed

Resolution flow for a batch with needs-county entries:
    auto_resolve()      previews every single-candidate entry
    choose_county()     previews an explicit choice for a multi-candidate entry
    finalize()          fresh full run carrying the chosen counties

Previews only change the working view; the canonical batch is whatever the
server returns for a full run.
"""

import copy
import logging
import threading
import time
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from constants import DEFAULT_POLL_INTERVAL_S, DEFAULT_POLL_TIMEOUT_S, TAKING_LONGER_MESSAGE
from quote_types import RunOverrides, STATUS_NEEDS_COUNTY
from quotes_client import QuoteApiError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    NEEDS_COUNTY_CHOICE = "needs_county_choice"
    READY = "ready"
    ERROR = "error"


def make_signature(effective_date: Optional[date], tobacco: Optional[bool]) -> str:
    return RunOverrides(effective_date=effective_date, tobacco=tobacco).signature()


def matches_run(batch: Dict[str, Any], effective_date: date, tobacco: Optional[bool],
                member_counties: Optional[Dict[str, str]] = None) -> bool:
    """
    Whether a stored batch was produced by a run with these inputs.

    member_counties=None skips the per-member county comparison.
    """
    context = batch.get('run_context') or {}
    if context.get('effective_date') != effective_date.isoformat():
        return False
    if context.get('tobacco') != tobacco:
        return False
    if member_counties is not None:
        stored = {str(k): str(v) for k, v in (context.get('member_counties') or {}).items()}
        if stored != {str(k): str(v) for k, v in member_counties.items()}:
            return False
    return True


def created_after(batch: Dict[str, Any], baseline: Optional[Dict[str, Any]]) -> bool:
    """Whether batch is a different, not-older batch than baseline."""
    if baseline is None:
        return True
    if batch.get('id') == baseline.get('id'):
        return False
    try:
        return (datetime.fromisoformat(batch['created_at'])
                >= datetime.fromisoformat(baseline['created_at']))
    except (KeyError, TypeError, ValueError):
        return False


class SignatureCache:
    """Last successful run signature per group. Only used to skip redundant runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._signatures: Dict[str, str] = {}

    def get(self, group_id: str) -> Optional[str]:
        with self._lock:
            return self._signatures.get(group_id)

    def set(self, group_id: str, signature: str):
        with self._lock:
            self._signatures[group_id] = signature

    def clear(self, group_id: Optional[str] = None):
        with self._lock:
            if group_id is None:
                self._signatures.clear()
            else:
                self._signatures.pop(group_id, None)


class QuoteSession:
    """One operator's view of a group's quotes."""

    def __init__(self, client, group_id: str, cache: Optional[SignatureCache] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL_S,
                 poll_timeout: float = DEFAULT_POLL_TIMEOUT_S,
                 clock=time.monotonic):
        self.client = client
        self.group_id = str(group_id)
        self.cache = cache if cache is not None else SignatureCache()
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._clock = clock

        self.state = SessionState.IDLE
        self.batch: Optional[Dict[str, Any]] = None     # canonical, as returned by the server
        self.working: Optional[Dict[str, Any]] = None   # batch + merged previews
        self.effective_date: Optional[date] = None
        self.tobacco: Optional[bool] = None
        self.member_counties: Dict[str, str] = {}
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.timed_out = False

        self._lock = threading.Lock()
        self._cancel = threading.Event()

    # ------------------------------------------------------------------
    # Working view
    # ------------------------------------------------------------------

    def _apply(self, batch: Dict[str, Any]):
        self.batch = batch
        self.working = copy.deepcopy(batch)
        # Choices belong to the previous working view
        self.member_counties = {}
        self.error = None
        self.notice = None
        self.timed_out = False
        self._settle()

    def _settle(self):
        if self.working is None:
            self.state = SessionState.IDLE
        elif self.pending_choices():
            self.state = SessionState.NEEDS_COUNTY_CHOICE
        else:
            self.state = SessionState.READY

    def entries(self) -> List[Dict[str, Any]]:
        return list((self.working or {}).get('quotes') or [])

    def pending_choices(self) -> List[Dict[str, Any]]:
        """Members still waiting for a county: member id, name, ZIP and candidates."""
        pending = []
        for entry in self.entries():
            meta = entry.get('meta') or {}
            if meta.get('status') != STATUS_NEEDS_COUNTY:
                continue
            member = entry.get('member') or {}
            pending.append({
                'member_id': str(member.get('id')),
                'name': f"{member.get('first_name') or ''} {member.get('last_name') or ''}".strip(),
                'zip_code': meta.get('zip_code') or member.get('zip_code'),
                'county_ids': list(meta.get('county_ids') or []),
            })
        return pending

    def is_resolved(self) -> bool:
        return self.working is not None and not self.pending_choices()

    # ------------------------------------------------------------------
    # Loading, running and polling
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Show the latest stored batch, if any."""
        try:
            latest = self.client.latest(self.group_id)
        except QuoteApiError as e:
            self.error = e.message
            self.state = SessionState.ERROR
            return False
        if latest is None:
            self.state = SessionState.IDLE
            return False
        self._apply(latest)
        return True

    def cancel(self):
        """Stop any in-flight poll; its results are discarded."""
        self._cancel.set()
        with self._lock:
            if self.state == SessionState.RUNNING:
                self.state = SessionState.IDLE

    def run(self, effective_date: Optional[date] = None, tobacco: Optional[bool] = None,
            force: bool = False, member_counties: Optional[Dict[str, str]] = None) -> bool:
        """
        Run quotes for the whole group.

        Returns:
            True when a batch was applied. False when suppressed (already running),
            failed, cancelled or still pending after the poll timeout.
        """
        with self._lock:
            if self.state == SessionState.RUNNING:
                logger.info(f"QUOTE SESSION: run for group {self.group_id} already in flight, ignoring")
                return False
            previous_state = self.state
            self.state = SessionState.RUNNING

        self.effective_date = effective_date or self.effective_date or date.today()
        self.tobacco = tobacco
        signature = make_signature(self.effective_date, self.tobacco)

        # Unchanged inputs and a stored batch: just fetch it
        latest = None
        if not force and not member_counties and self.cache.get(self.group_id) == signature:
            latest = self._fetch_latest()
            if latest is not None and matches_run(latest, self.effective_date, self.tobacco):
                self._apply(latest)
                return True

        # A new run supersedes any poll still in flight
        self._cancel.set()
        cancel_event = threading.Event()
        self._cancel = cancel_event

        # Anything stored before this run is stale if the run request fails
        baseline = self.batch or latest or self._fetch_latest()
        try:
            batch = self.client.run_quotes(
                self.group_id,
                effective_date=self.effective_date,
                tobacco=self.tobacco,
                member_counties=member_counties,
            )
        except QuoteApiError as e:
            if not e.is_transport_error:
                self.error = e.message
                self.state = SessionState.ERROR
                return False
            # The server may still be building the batch
            logger.warning(f"QUOTE SESSION: run request for group {self.group_id} did not complete, polling")
            expected = {
                'effective_date': self.effective_date,
                'tobacco': self.tobacco,
                'member_counties': dict(member_counties or {}),
            }
            return self._poll_after_run(signature, baseline, expected, cancel_event, previous_state)

        if cancel_event.is_set():
            return False
        self._apply(batch)
        self.cache.set(self.group_id, signature)
        return True

    def _fetch_latest(self) -> Optional[Dict[str, Any]]:
        try:
            return self.client.latest(self.group_id)
        except QuoteApiError as e:
            logger.debug(f"QUOTE SESSION: could not fetch latest batch: {e.message}")
            return None

    def _poll_after_run(self, signature, baseline, expected, cancel_event, previous_state) -> bool:
        ready = self.poll_until_ready(since=baseline, expected=expected, cancel_event=cancel_event)
        if ready:
            self.cache.set(self.group_id, signature)
        elif not self.timed_out and self.state == SessionState.RUNNING:
            self.state = previous_state
        return ready

    def poll_until_ready(self, interval: Optional[float] = None, timeout: Optional[float] = None,
                         since: Optional[Dict[str, Any]] = None,
                         expected: Optional[Dict[str, Any]] = None,
                         cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Poll "get latest" until a batch created after `since` appears.

        Args:
            since: batch stored before the run started (None when there was none)
            expected: effective_date / tobacco / member_counties the batch must carry
                in its run context; batches from other runs are ignored

        The cancellation event is checked before every attempt and again before
        applying a result. On timeout the session goes back to IDLE with the
        "taking longer than expected" notice.
        """
        interval = self.poll_interval if interval is None else interval
        timeout = self.poll_timeout if timeout is None else timeout
        cancel_event = cancel_event or self._cancel

        start = self._clock()
        attempt = 0
        while not cancel_event.is_set():
            attempt += 1
            try:
                latest = self.client.latest(self.group_id)
            except QuoteApiError as e:
                logger.debug(f"QUOTE SESSION: poll attempt {attempt} failed: {e.message}")
                latest = None

            if cancel_event.is_set():
                break
            if latest is not None and latest.get('quotes') and created_after(latest, since):
                if expected is None or matches_run(latest, **expected):
                    self._apply(latest)
                    return True
                logger.debug(f"QUOTE SESSION: ignoring batch {latest.get('id')} from a different run")

            if self._clock() - start >= timeout:
                self.timed_out = True
                self.notice = TAKING_LONGER_MESSAGE
                self.state = SessionState.IDLE
                return False
            cancel_event.wait(interval)

        logger.info(f"QUOTE SESSION: poll for group {self.group_id} cancelled")
        return False

    # ------------------------------------------------------------------
    # County resolution
    # ------------------------------------------------------------------

    def choose_county(self, member_id: str, county_id: str, manual: bool = False) -> Dict[str, Any]:
        """
        Preview one member in the chosen county and merge the result into the working view.

        Args:
            member_id: Member waiting for a county
            county_id: One of the member's candidates, or any county when manual=True

        Raises:
            ValueError: member is not pending, or the county is not a candidate
            QuoteApiError: preview request failed
        """
        member_id = str(member_id)
        county_id = str(county_id).strip()
        pending = {p['member_id']: p for p in self.pending_choices()}
        if member_id not in pending:
            raise ValueError(f"Member {member_id} is not waiting for a county choice")
        if not manual and county_id not in pending[member_id]['county_ids']:
            raise ValueError(f"County {county_id} is not a candidate for member {member_id}")

        try:
            preview = self.client.preview(
                self.group_id, member_id, county_id,
                effective_date=self.effective_date, tobacco=self.tobacco,
            )
        except QuoteApiError as e:
            self.error = e.message
            raise

        for index, entry in enumerate(self.working['quotes']):
            if str((entry.get('member') or {}).get('id')) == member_id:
                self.working['quotes'][index] = preview
                break
        self.member_counties[member_id] = county_id
        self.error = None
        self._settle()
        return preview

    def auto_resolve(self) -> int:
        """Preview every pending member whose ZIP has exactly one candidate. Returns how many."""
        resolved = 0
        for pending in self.pending_choices():
            if len(pending['county_ids']) == 1:
                self.choose_county(pending['member_id'], pending['county_ids'][0])
                resolved += 1
        return resolved

    def finalize(self) -> bool:
        """Capture resolved counties in a new canonical batch."""
        if not self.is_resolved():
            raise ValueError("Every member must have a county before quotes can be finalized")
        if not self.member_counties:
            return True
        return self.run(
            effective_date=self.effective_date,
            tobacco=self.tobacco,
            force=True,
            member_counties=dict(self.member_counties),
        )
