"""
Test Suite for quote batch storage
"""

import json
import unittest
from datetime import datetime, timezone
from unittest.mock import Mock

import pandas as pd
import psycopg2

from exceptions import PersistenceFailure
from quote_store import MemoryQuoteStore, DatabaseQuoteStore
from quote_types import QuoteBatch, RunOverrides
from quote_fixtures import build_engine, EFFECTIVE_DATE, GROUP_ID


def _batch(batch_id, created_at, group_id=GROUP_ID):
    return QuoteBatch(batch_id=batch_id, group_id=group_id, created_at=created_at, entries=())


class TestMemoryQuoteStore(unittest.TestCase):

    def test_newest_first(self):
        store = MemoryQuoteStore()
        store.append(_batch('a', datetime(2025, 1, 1, tzinfo=timezone.utc)))
        store.append(_batch('b', datetime(2025, 3, 1, tzinfo=timezone.utc)))
        store.append(_batch('c', datetime(2025, 2, 1, tzinfo=timezone.utc)))
        self.assertEqual([b.batch_id for b in store.history(GROUP_ID)], ['b', 'c', 'a'])
        self.assertEqual(store.latest(GROUP_ID).batch_id, 'b')

    def test_same_timestamp_uses_insertion_order(self):
        store = MemoryQuoteStore()
        moment = datetime(2025, 1, 1, tzinfo=timezone.utc)
        store.append(_batch('first', moment))
        store.append(_batch('second', moment))
        self.assertEqual(store.latest(GROUP_ID).batch_id, 'second')

    def test_groups_are_separate(self):
        store = MemoryQuoteStore()
        store.append(_batch('a', datetime(2025, 1, 1, tzinfo=timezone.utc), group_id='other'))
        self.assertIsNone(store.latest(GROUP_ID))
        self.assertEqual(store.history(GROUP_ID), [])


class TestDatabaseQuoteStore(unittest.TestCase):

    def setUp(self):
        self.batch = build_engine().generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        self.db = Mock()
        self.store = DatabaseQuoteStore(self.db)

    def test_append_writes_one_document(self):
        self.store.append(self.batch)
        self.db.execute_write.assert_called_once()
        query, params = self.db.execute_write.call_args[0]
        self.assertIn('INSERT INTO quote_results', query)
        self.assertEqual(params[0], self.batch.batch_id)
        self.assertEqual(params[1], GROUP_ID)
        self.assertEqual(json.loads(params[3])['id'], self.batch.batch_id)

    def test_write_error_becomes_persistence_failure(self):
        self.db.execute_write.side_effect = psycopg2.OperationalError("server closed the connection")
        with self.assertRaises(PersistenceFailure):
            self.store.append(self.batch)

    def test_latest_decodes_jsonb(self):
        self.db.execute_query.return_value = pd.DataFrame({'document': [self.batch.to_dict()]})
        latest = self.store.latest(GROUP_ID)
        self.assertEqual(latest.batch_id, self.batch.batch_id)
        self.assertEqual(latest.counts(), self.batch.counts())

    def test_history_decodes_text(self):
        older = _batch('older', datetime(2024, 12, 1, tzinfo=timezone.utc))
        self.db.execute_query.return_value = pd.DataFrame({
            'document': [json.dumps(self.batch.to_dict()), json.dumps(older.to_dict())]
        })
        self.assertEqual([b.batch_id for b in self.store.history(GROUP_ID)], [self.batch.batch_id, 'older'])

    def test_empty_results(self):
        self.db.execute_query.return_value = pd.DataFrame()
        self.assertIsNone(self.store.latest(GROUP_ID))
        self.assertEqual(self.store.history(GROUP_ID), [])


if __name__ == '__main__':
    unittest.main()
