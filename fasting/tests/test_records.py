from datetime import timedelta

from django.test import SimpleTestCase

from fasting.records import SessionRecord, Source
from fasting.stages import STAGES, stage_for

from .utils import closed, utc


class SessionRecordTests(SimpleTestCase):
    """Tests for the SessionRecord value type"""

    def test_open_record(self):
        record = SessionRecord(start_time=utc(2025, 3, 1, 20))
        self.assertTrue(record.is_open)
        self.assertFalse(record.is_complete)
        self.assertEqual(record.duration, timedelta(0))
        self.assertFalse(record.met_goal(1))

    def test_ids_are_unique(self):
        a = SessionRecord(start_time=utc(2025, 3, 1))
        b = SessionRecord(start_time=utc(2025, 3, 1))
        self.assertNotEqual(a.id, b.id)

    def test_met_goal_uses_own_goal_before_default(self):
        record = closed(utc(2025, 3, 1, 20), 14, goal_hours=12)
        self.assertTrue(record.met_goal(16))

        no_goal = closed(utc(2025, 3, 1, 20), 14)
        self.assertFalse(no_goal.met_goal(16))
        self.assertTrue(no_goal.met_goal(14))

    def test_exactly_reaching_goal_counts(self):
        record = closed(utc(2025, 3, 1, 20), 16)
        self.assertTrue(record.met_goal(16))

    def test_invalid_interval_never_meets_goal(self):
        record = SessionRecord(start_time=utc(2025, 3, 2), end_time=utc(2025, 3, 1), goal_hours=1)
        self.assertFalse(record.has_valid_interval)
        self.assertFalse(record.met_goal(1))

    def test_overlap_rules(self):
        a = closed(utc(2025, 3, 1, 20), 16)
        touching = closed(a.end_time, 4)
        inside = closed(utc(2025, 3, 2, 1), 2)
        running = SessionRecord(start_time=utc(2025, 3, 5))
        self.assertFalse(a.overlaps(touching))
        self.assertTrue(a.overlaps(inside))
        self.assertTrue(inside.overlaps(a))
        self.assertFalse(a.overlaps(running))
        self.assertTrue(running.overlaps(closed(utc(2025, 4, 1), 1)))

    def test_edits_return_new_records(self):
        record = SessionRecord(start_time=utc(2025, 3, 1, 20))
        stopped = record.closed_at(utc(2025, 3, 2, 12))
        self.assertTrue(record.is_open)
        self.assertEqual(stopped.id, record.id)
        self.assertEqual(stopped.duration_hours, 16)

    def test_dict_round_trip_keeps_fields(self):
        record = closed(
            utc(2025, 3, 1, 20), 18, goal_hours=18,
            preceding_eating_window=timedelta(hours=6),
            source=Source.EXTERNAL_SYNC,
        )
        data = record.to_dict()
        self.assertEqual(data['source'], 'ExternalSync')
        self.assertEqual(data['duration_hours'], 18)
        self.assertEqual(SessionRecord.from_dict(data), record)

    def test_from_dict_accepts_z_suffix_and_forced_source(self):
        record = SessionRecord.from_dict(
            {'id': 'abc', 'start_time': '2025-03-01T20:00:00Z', 'end_time': '2025-03-02T12:00:00Z'},
            source=Source.EXTERNAL_SYNC,
        )
        self.assertEqual(record.start_time, utc(2025, 3, 1, 20))
        self.assertEqual(record.source, Source.EXTERNAL_SYNC)
        self.assertEqual(record.id, 'abc')

    def test_from_dict_makes_naive_times_aware(self):
        record = SessionRecord.from_dict({'start_time': '2025-03-05T00:00:00', 'end_time': '2025-03-05T17:00:00'})
        self.assertIsNotNone(record.start_time.tzinfo)
        self.assertIsNotNone(record.end_time.tzinfo)
        self.assertEqual(record.duration_hours, 17)
        self.assertFalse(record.overlaps(closed(utc(2025, 3, 6), 16)))

    def test_from_dict_drops_non_positive_goal(self):
        for goal in (0, -4, '0'):
            record = SessionRecord.from_dict(
                {'start_time': '2025-03-05T00:00:00Z', 'end_time': '2025-03-05T10:00:00Z', 'goal_hours': goal}
            )
            self.assertIsNone(record.goal_hours)
            self.assertFalse(record.met_goal(16))

    def test_from_dict_rejects_missing_start(self):
        with self.assertRaises(KeyError):
            SessionRecord.from_dict({'end_time': '2025-03-02T12:00:00Z'})


class FastingStageTests(SimpleTestCase):

    def test_stage_boundaries(self):
        self.assertEqual(stage_for(timedelta(hours=0)).title, 'Fed State')
        self.assertEqual(stage_for(timedelta(hours=4)).title, 'Post-Absorptive State')
        self.assertEqual(stage_for(timedelta(hours=16, minutes=30)).title, 'Ketone Production Rises')
        self.assertEqual(stage_for(timedelta(hours=100)).title, 'Prolonged Fast Territory')

    def test_negative_elapsed_is_first_stage(self):
        self.assertIs(stage_for(timedelta(hours=-1)), STAGES[0])

    def test_stages_are_contiguous(self):
        for earlier, later in zip(STAGES, STAGES[1:]):
            self.assertEqual(earlier.end_hours, later.start_hours)
        self.assertEqual(STAGES[-1].hour_range, '48+')
