"""
Test Suite for the Quote Batch Orchestrator
"""

import unittest
from datetime import date
from unittest.mock import Mock

from constants import COUNTY_SOURCE_OVERRIDE, COUNTY_SOURCE_MEMBER, COUNTY_SOURCE_UNIQUE
from exceptions import (
    ExternalServiceUnavailable,
    GroupNotFound,
    MemberNotFound,
    NoMembersInGroup,
    NoSilverPlans,
    PersistenceFailure,
    MissingInputData,
)
from quote_store import MemoryQuoteStore
from quote_types import (
    AffordabilitySummary,
    SkippedEntry,
    NeedsCountyEntry,
    PricedEntry,
    RunOverrides,
    QuoteBatch,
)
from quote_fixtures import build_engine, build_members, member, EFFECTIVE_DATE, GROUP_ID


def _by_member(batch):
    return {entry.member.member_id: entry for entry in batch.entries}


class TestBatchTotality(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()
        self.batch = self.engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        self.entries = _by_member(self.batch)

    def test_one_entry_per_member_in_member_order(self):
        self.assertEqual(len(self.batch.entries), len(build_members()))
        self.assertEqual(
            [e.member.member_id for e in self.batch.entries],
            [m.member_id for m in build_members()],
        )
        for entry in self.batch.entries:
            self.assertIsInstance(entry, (SkippedEntry, NeedsCountyEntry, PricedEntry))

    def test_missing_zip_skipped(self):
        entry = self.entries['bob']
        self.assertIsInstance(entry, SkippedEntry)
        self.assertIn('ZIP', entry.reason)

    def test_missing_dob_skipped(self):
        entry = self.entries['dan']
        self.assertIsInstance(entry, SkippedEntry)
        self.assertIn('date of birth', entry.reason)

    def test_zip_without_counties_skipped(self):
        entry = self.entries['eve']
        self.assertIsInstance(entry, SkippedEntry)
        self.assertIn('99999', entry.reason)

    def test_ambiguous_zip_needs_county(self):
        entry = self.entries['carol']
        self.assertIsInstance(entry, NeedsCountyEntry)
        self.assertEqual(entry.candidates, ('17031', '17043', '17097'))
        serialized = entry.to_dict()
        self.assertEqual(serialized['quotes'], [])
        self.assertTrue(serialized['meta']['skipped'])
        self.assertEqual(serialized['meta']['county_ids'], ['17031', '17043', '17097'])

    def test_stored_county_used_for_ambiguous_zip(self):
        entry = self.entries['frank']
        self.assertIsInstance(entry, PricedEntry)
        self.assertEqual(entry.county_id, '17031')
        self.assertEqual(entry.county_source, COUNTY_SOURCE_MEMBER)

    def test_counts_and_run_context(self):
        self.assertEqual(self.batch.counts(), {'skipped': 3, 'needs_county': 1, 'priced': 2})
        self.assertEqual(self.batch.run_context['member_count'], 6)
        self.assertEqual(self.batch.run_context['effective_date'], '2025-01-01')


class TestPricedEntry(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()
        batch = self.engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        self.alice = _by_member(batch)['alice']

    def test_unique_county_and_age(self):
        self.assertIsInstance(self.alice, PricedEntry)
        self.assertEqual(self.alice.county_id, '45007')
        self.assertEqual(self.alice.county_source, COUNTY_SOURCE_UNIQUE)
        self.assertEqual(self.alice.age, 40)
        self.assertFalse(self.alice.tobacco)

    def test_internal_affordability(self):
        affordability = self.alice.affordability
        self.assertEqual(affordability.source, 'internal')
        self.assertEqual(affordability.benchmark_plan_id, 'S3')
        self.assertEqual(affordability.benchmark_premium, 310.0)
        # 310 - 49.20 expected monthly contribution
        self.assertAlmostEqual(affordability.premium_tax_credit, 260.8, delta=0.01)

    def test_on_and_off_market_isolation(self):
        credit = self.alice.affordability.premium_tax_credit
        for line in self.alice.lines:
            with self.subTest(plan=line.plan_id):
                if line.plan_details.on_market:
                    self.assertAlmostEqual(line.adjusted_cost, max(0.0, line.premium - credit), places=2)
                    self.assertLessEqual(line.adjusted_cost, line.premium)
                else:
                    self.assertEqual(line.adjusted_cost, line.premium)

    def test_lines_sorted_by_adjusted_cost(self):
        costs = [(line.adjusted_cost, line.plan_id) for line in self.alice.lines]
        self.assertEqual(costs, sorted(costs))
        self.assertEqual(self.alice.lines[0].plan_id, 'B1')
        self.assertEqual(self.alice.lines[0].adjusted_cost, 0.0)

    def test_lines_carry_benchmark(self):
        for line in self.alice.lines:
            self.assertEqual(line.benchmark_plan_id, 'S3')
            self.assertEqual(line.benchmark_premium, 310.0)

    def test_no_income_data_keeps_full_premium(self):
        batch = self.engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        frank = _by_member(batch)['frank']
        self.assertIsNone(frank.affordability)
        self.assertIn('income', frank.affordability_note)
        for line in frank.lines:
            self.assertEqual(line.adjusted_cost, line.premium)

    def test_tobacco_override(self):
        batch = self.engine.generate_batch(
            GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE, tobacco=True)
        )
        alice = _by_member(batch)['alice']
        self.assertTrue(alice.tobacco)
        self.assertEqual(sorted(line.plan_id for line in alice.lines), ['G1', 'S1', 'S2', 'S3'])
        self.assertEqual(alice.affordability.benchmark_premium, 465.0)


class TestCountyOverrides(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()

    def test_run_county_applies_to_every_member(self):
        batch = self.engine.generate_batch(
            GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE, county_id='17043')
        )
        entries = _by_member(batch)
        for member_id in ('alice', 'carol', 'frank'):
            entry = entries[member_id]
            self.assertIsInstance(entry, PricedEntry)
            self.assertEqual(entry.county_id, '17043')
            self.assertEqual(entry.county_source, COUNTY_SOURCE_OVERRIDE)
            self.assertEqual([line.plan_id for line in entry.lines], ['B3'])

    def test_run_county_does_not_rescue_unknown_zip(self):
        batch = self.engine.generate_batch(
            GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE, county_id='17043')
        )
        self.assertIsInstance(_by_member(batch)['eve'], SkippedEntry)

    def test_member_choice_wins_over_run_county(self):
        batch = self.engine.generate_batch(
            GROUP_ID,
            RunOverrides(effective_date=EFFECTIVE_DATE, county_id='17043',
                         member_counties={'carol': '17031'}),
        )
        carol = _by_member(batch)['carol']
        self.assertEqual(carol.county_id, '17031')
        self.assertEqual(carol.affordability.benchmark_plan_id, 'S5')

    def test_member_counties_resolve_individually(self):
        batch = self.engine.generate_batch(
            GROUP_ID,
            RunOverrides(effective_date=EFFECTIVE_DATE, member_counties={'carol': '17043'}),
        )
        carol = _by_member(batch)['carol']
        self.assertIsInstance(carol, PricedEntry)
        self.assertEqual(carol.county_id, '17043')
        # bronze only: priced, but no benchmark and no credit
        self.assertIsNone(carol.affordability)
        self.assertIn('Silver', carol.affordability_note)
        self.assertEqual([line.plan_id for line in carol.lines], ['B3'])

    def test_chosen_county_without_plans_skipped(self):
        batch = self.engine.generate_batch(
            GROUP_ID,
            RunOverrides(effective_date=EFFECTIVE_DATE, member_counties={'carol': '17097'}),
        )
        carol = _by_member(batch)['carol']
        self.assertIsInstance(carol, SkippedEntry)
        self.assertEqual(carol.county_id, '17097')


class TestHistoryAndPersistence(unittest.TestCase):

    def test_latest_and_history_ordering(self):
        engine = build_engine()
        first = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        second = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=date(2025, 2, 1)))
        self.assertGreater(second.created_at, first.created_at)
        self.assertEqual(engine.latest(GROUP_ID).batch_id, second.batch_id)
        self.assertEqual([b.batch_id for b in engine.history(GROUP_ID)], [second.batch_id, first.batch_id])

    def test_no_batches(self):
        engine = build_engine()
        self.assertIsNone(engine.latest(GROUP_ID))
        self.assertEqual(engine.history(GROUP_ID), [])

    def test_persistence_failure_aborts_run(self):
        store = MemoryQuoteStore()
        store.append = Mock(side_effect=PersistenceFailure("disk full"))
        engine = build_engine(store=store)
        with self.assertRaises(PersistenceFailure):
            engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        self.assertIsNone(store.latest(GROUP_ID))

    def test_unexpected_error_aborts_before_persisting(self):
        engine = build_engine()
        engine.reference.county_ids_for_zip = Mock(side_effect=RuntimeError("reference database down"))
        with self.assertRaises(RuntimeError):
            engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        self.assertIsNone(engine.latest(GROUP_ID))

    def test_batch_serialization_round_trip(self):
        engine = build_engine()
        batch = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE))
        restored = QuoteBatch.from_dict(batch.to_dict())
        self.assertEqual(restored.to_dict(), batch.to_dict())

    def test_sequential_and_parallel_runs_match(self):
        sequential = build_engine(max_workers=1).generate_batch(
            GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)
        )
        parallel = build_engine(max_workers=8).generate_batch(
            GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)
        )
        self.assertEqual(
            [e.to_dict() for e in sequential.entries],
            [e.to_dict() for e in parallel.entries],
        )


class TestLookupErrors(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()

    def test_unknown_group(self):
        with self.assertRaises(GroupNotFound):
            self.engine.generate_batch('nope')

    def test_empty_group(self):
        with self.assertRaises(NoMembersInGroup):
            self.engine.generate_batch('g-empty')

    def test_unknown_member(self):
        with self.assertRaises(MemberNotFound):
            self.engine.preview_member(GROUP_ID, 'zed', '45007', EFFECTIVE_DATE)


class TestPreviewAndBenchmark(unittest.TestCase):

    def setUp(self):
        self.engine = build_engine()

    def test_preview_resolves_ambiguous_member(self):
        entry = self.engine.preview_member(GROUP_ID, 'carol', '17031', EFFECTIVE_DATE)
        self.assertIsInstance(entry, PricedEntry)
        self.assertEqual(entry.county_source, COUNTY_SOURCE_OVERRIDE)
        self.assertEqual(entry.affordability.benchmark_plan_id, 'S5')
        self.assertEqual(entry.affordability.benchmark_premium, 275.0)

    def test_preview_is_not_persisted(self):
        self.engine.preview_member(GROUP_ID, 'carol', '17031', EFFECTIVE_DATE)
        self.assertEqual(self.engine.history(GROUP_ID), [])

    def test_preview_requires_county(self):
        with self.assertRaises(MissingInputData):
            self.engine.preview_member(GROUP_ID, 'carol', '', EFFECTIVE_DATE)

    def test_benchmark_for_member(self):
        result = self.engine.benchmark_for_member(GROUP_ID, 'alice', '45007', EFFECTIVE_DATE)
        self.assertEqual(result['benchmark']['plan_id'], 'S3')
        self.assertEqual(result['benchmark']['slcsp_rank'], 2)
        self.assertEqual(len(result['benchmark']['silver_candidates']), 3)
        self.assertAlmostEqual(result['subsidy']['premium_tax_credit'], 260.8, delta=0.01)
        self.assertEqual(self.engine.history(GROUP_ID), [])

    def test_benchmark_without_income(self):
        result = self.engine.benchmark_for_member(GROUP_ID, 'frank', '17031', EFFECTIVE_DATE)
        self.assertEqual(result['benchmark']['slcsp_rank'], 1)
        self.assertIsNone(result['subsidy'])

    def test_benchmark_raises_for_missing_silver(self):
        with self.assertRaises(NoSilverPlans):
            self.engine.benchmark_for_member(GROUP_ID, 'carol', '17043', EFFECTIVE_DATE)

    def test_benchmark_requires_age(self):
        with self.assertRaises(MissingInputData):
            self.engine.benchmark_for_member(GROUP_ID, 'dan', '45007', EFFECTIVE_DATE)


class TestExternalProvider(unittest.TestCase):

    def test_external_credit_wins(self):
        provider = Mock()
        provider.determine.return_value = AffordabilitySummary(
            fpl_percent=210.0, expected_contribution=60.0, benchmark_plan_id='S2',
            benchmark_premium=305.0, premium_tax_credit=100.0, affordable=False, source='external',
        )
        engine = build_engine(provider=provider, members=[member('alice', adjusted_gross_income=30000)])
        alice = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)).entries[0]
        self.assertEqual(alice.affordability.source, 'external')
        by_plan = {line.plan_id: line for line in alice.lines}
        self.assertEqual(by_plan['S1'].adjusted_cost, 220.0)
        self.assertEqual(by_plan['S1'].benchmark_plan_id, 'S2')
        self.assertEqual(by_plan['G1'].adjusted_cost, 450.0)
        provider.determine.assert_called_once()

    def test_external_credit_rounded_to_cents(self):
        provider = Mock()
        provider.determine.return_value = AffordabilitySummary(
            fpl_percent=210.0, expected_contribution=60.0, benchmark_plan_id='S2',
            benchmark_premium=305.0, premium_tax_credit=100.004, affordable=False, source='external',
        )
        engine = build_engine(provider=provider, members=[member('alice', adjusted_gross_income=30000)])
        alice = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)).entries[0]

        credit = alice.affordability.premium_tax_credit
        self.assertEqual(credit, 100.0)
        for line in alice.lines:
            if line.plan_details.on_market:
                self.assertEqual(line.adjusted_cost, round(max(0.0, line.premium - credit), 2))
            else:
                self.assertEqual(line.adjusted_cost, line.premium)

    def test_falls_back_to_internal_on_failure(self):
        provider = Mock()
        provider.determine.side_effect = ExternalServiceUnavailable("timed out")
        engine = build_engine(provider=provider, members=[member('alice', adjusted_gross_income=30000)])
        with self.assertLogs('quote_engine', level='WARNING'):
            alice = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)).entries[0]
        self.assertIsInstance(alice, PricedEntry)
        self.assertEqual(alice.affordability.source, 'internal')
        self.assertAlmostEqual(alice.affordability.premium_tax_credit, 260.8, delta=0.01)

    def test_unknown_tax_year_records_note(self):
        engine = build_engine(members=[member('alice', adjusted_gross_income=30000, tax_year=2019)])
        alice = engine.generate_batch(GROUP_ID, RunOverrides(effective_date=EFFECTIVE_DATE)).entries[0]
        self.assertIsInstance(alice, PricedEntry)
        self.assertIsNone(alice.affordability)
        self.assertIn('2019', alice.affordability_note)


if __name__ == '__main__':
    unittest.main()
