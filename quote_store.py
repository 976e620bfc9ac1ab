"""
Append-only storage for quote batches.

A batch is written once, in a single insert, after every member has been
processed. Batches are never updated; the latest batch for a group is the one
with the greatest created_at (insertion order breaks ties).
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import psycopg2

from database import DatabaseConnection
from exceptions import PersistenceFailure
from queries import QuoteResultQueries
from quote_types import QuoteBatch

logger = logging.getLogger(__name__)


class QuoteStore(ABC):

    @abstractmethod
    def append(self, batch: QuoteBatch) -> None:
        """Persist a batch atomically. Raises PersistenceFailure."""

    @abstractmethod
    def latest(self, group_id: str) -> Optional[QuoteBatch]:
        """Most recent batch for the group, or None."""

    @abstractmethod
    def history(self, group_id: str) -> List[QuoteBatch]:
        """All batches for the group, newest first."""


class MemoryQuoteStore(QuoteStore):
    """Process-local store; used in tests and single-process deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, List[tuple]] = {}
        self._seq = 0

    def append(self, batch: QuoteBatch) -> None:
        with self._lock:
            self._seq += 1
            self._rows.setdefault(batch.group_id, []).append((batch.created_at, self._seq, batch))

    def history(self, group_id: str) -> List[QuoteBatch]:
        with self._lock:
            rows = list(self._rows.get(str(group_id), []))
        rows.sort(key=lambda row: (row[0], row[1]), reverse=True)
        return [batch for _, _, batch in rows]

    def latest(self, group_id: str) -> Optional[QuoteBatch]:
        batches = self.history(group_id)
        return batches[0] if batches else None


def _decode(document) -> QuoteBatch:
    # jsonb comes back as a dict from psycopg2; text columns as str
    if isinstance(document, (str, bytes)):
        document = json.loads(document)
    return QuoteBatch.from_dict(document)


class DatabaseQuoteStore(QuoteStore):
    """quote_results table in PostgreSQL (see scripts/create_quote_tables.py)."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def append(self, batch: QuoteBatch) -> None:
        document = json.dumps(batch.to_dict())
        try:
            QuoteResultQueries.insert_batch(
                self.db, batch.batch_id, batch.group_id, batch.created_at, document
            )
        except psycopg2.Error as e:
            raise PersistenceFailure(f"Could not save quote batch {batch.batch_id}: {type(e).__name__}") from e
        logger.info(f"QUOTE STORE: saved batch {batch.batch_id} for group {batch.group_id}")

    def latest(self, group_id: str) -> Optional[QuoteBatch]:
        result = QuoteResultQueries.get_latest(self.db, group_id)
        if result.empty:
            return None
        return _decode(result.iloc[0]['document'])

    def history(self, group_id: str) -> List[QuoteBatch]:
        result = QuoteResultQueries.get_history(self.db, group_id)
        if result.empty:
            return []
        return [_decode(doc) for doc in result['document']]
