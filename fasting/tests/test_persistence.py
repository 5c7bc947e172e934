import threading
from datetime import timedelta
from unittest import mock

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from fasting.exceptions import StorageUnavailable
from fasting.models import FastingSession
from fasting.persistence import DatabaseGateway, InMemoryGateway, PersistenceWriter
from fasting.records import SessionRecord, Source
from fasting.streaks import StreakState
from settings.models import Setting

from .utils import closed, make_controller, utc


class DatabaseGatewayTests(TestCase):
    """Tests for storing fasting history through the ORM"""

    def setUp(self):
        self.gateway = DatabaseGateway()

    def test_save_and_load_sessions(self):
        done = closed(utc(2025, 3, 1, 20), 17, goal_hours=16, preceding_eating_window=timedelta(hours=7))
        running = SessionRecord(start_time=utc(2025, 3, 2, 20), source=Source.MANUAL)
        self.gateway.save_sessions([running, done])

        self.assertEqual(FastingSession.objects.count(), 2)
        loaded = {r.id: r for r in self.gateway.load_sessions()}
        self.assertEqual(loaded[done.id], done)
        self.assertEqual(loaded[running.id], running)

    def test_save_only_touches_given_records(self):
        a = closed(utc(2025, 3, 1, 20), 17)
        b = closed(utc(2025, 3, 2, 20), 17)
        self.gateway.save_sessions([a, b])
        self.gateway.save_sessions([a.with_times(a.start_time, a.start_time + timedelta(hours=12))])

        self.assertEqual(FastingSession.objects.count(), 2)
        self.assertEqual(FastingSession.objects.get(session_id=a.id).duration_hours, 12)

    def test_save_deletes_only_given_ids(self):
        a = closed(utc(2025, 3, 1, 20), 17)
        b = closed(utc(2025, 3, 2, 20), 17)
        self.gateway.save_sessions([a, b])
        self.gateway.save_sessions([], deleted_ids=[a.id, 'never-stored'])
        self.assertEqual(list(FastingSession.objects.values_list('session_id', flat=True)), [b.id])

    def test_saving_twice_does_not_duplicate(self):
        records = [closed(utc(2025, 3, 1, 20), 17)]
        self.gateway.save_sessions(records)
        self.gateway.save_sessions(records)
        self.assertEqual(FastingSession.objects.count(), 1)

    def test_streak_state_round_trip(self):
        self.assertEqual(self.gateway.load_streak_state(), StreakState(0, 0))
        self.gateway.save_streak_state(3, 7)
        self.assertEqual(self.gateway.load_streak_state(), StreakState(3, 7))
        self.assertEqual(Setting.get('fasting_longest_streak'), '7')

    def test_unreadable_streak_settings(self):
        Setting.set('fasting_current_streak', 'lots')
        self.assertEqual(self.gateway.load_streak_state(), StreakState())

    def test_goal_hours(self):
        self.assertIsNone(self.gateway.load_goal_hours())
        self.gateway.save_goal_hours(18.5)
        self.assertEqual(self.gateway.load_goal_hours(), 18.5)
        Setting.set('fasting_goal_hours', '-3')
        self.assertIsNone(self.gateway.load_goal_hours())

    def test_database_errors_become_storage_unavailable(self):
        with mock.patch('django.db.models.query.QuerySet.update_or_create', side_effect=DatabaseError('locked')):
            with self.assertRaises(StorageUnavailable):
                self.gateway.save_sessions([closed(utc(2025, 3, 1, 20), 17)])

    def test_controller_round_trip_through_database(self):
        controller, clock, _ = make_controller(gateway=self.gateway, now=utc(2025, 3, 10, 8))
        controller.start(at=utc(2025, 3, 9, 14))
        controller.stop()
        controller.set_goal(17)

        reloaded, _, _ = make_controller(gateway=DatabaseGateway(), now=utc(2025, 3, 10, 9))
        self.assertEqual(reloaded.history(), controller.history())
        self.assertEqual(reloaded.default_goal_hours, 17)
        self.assertEqual(reloaded.streaks(), StreakState(1, 1))

    def test_zero_streak_clears_settings(self):
        self.gateway.save_streak_state(3, 7)
        self.gateway.save_streak_state(0, 0)
        self.assertIsNone(Setting.get('fasting_current_streak'))
        self.assertIsNone(Setting.get('fasting_longest_streak'))
        self.assertEqual(self.gateway.load_streak_state(), StreakState(0, 0))

    def test_overlapping_controllers_keep_each_others_fasts(self):
        a, _, _ = make_controller(gateway=DatabaseGateway(), now=utc(2025, 3, 10, 12))
        b, _, _ = make_controller(gateway=DatabaseGateway(), now=utc(2025, 3, 10, 12))

        first = a.log_completed(utc(2025, 3, 7, 20), utc(2025, 3, 8, 13))
        second = b.log_completed(utc(2025, 3, 8, 20), utc(2025, 3, 9, 13))

        stored = set(FastingSession.objects.values_list('session_id', flat=True))
        self.assertEqual(stored, {first.id, second.id})

    def test_delete_in_one_controller_keeps_fasts_from_another(self):
        a, _, _ = make_controller(gateway=DatabaseGateway(), now=utc(2025, 3, 10, 12))
        old = a.log_completed(utc(2025, 3, 1, 20), utc(2025, 3, 2, 13))
        b, _, _ = make_controller(gateway=DatabaseGateway(), now=utc(2025, 3, 10, 12))

        new = a.log_completed(utc(2025, 3, 8, 20), utc(2025, 3, 9, 13))
        b.delete(old.id)

        self.assertEqual(list(FastingSession.objects.values_list('session_id', flat=True)), [new.id])

    def test_reset_clears_database(self):
        controller, _, _ = make_controller(gateway=self.gateway, now=utc(2025, 3, 10, 14))
        controller.log_completed(utc(2025, 3, 9, 20), utc(2025, 3, 10, 13))
        self.assertEqual(Setting.get('fasting_current_streak'), '1')

        controller.reset()
        self.assertFalse(FastingSession.objects.exists())
        self.assertIsNone(Setting.get('fasting_longest_streak'))


class PersistenceWriterTests(SimpleTestCase):

    def test_inline_writer_records_last_error(self):
        gateway = InMemoryGateway()
        writer = PersistenceWriter(gateway)
        gateway.fail = True
        with self.assertLogs('fasting.persistence', level='WARNING'):
            writer.submit([], StreakState())
        self.assertIsInstance(writer.last_error, StorageUnavailable)

        gateway.fail = False
        writer.submit([], StreakState(), goal_hours=12)
        self.assertIsNone(writer.last_error)
        self.assertEqual(gateway.goal_hours, 12)

    def test_background_writer_keeps_order(self):
        gateway = InMemoryGateway()
        writer = PersistenceWriter(gateway, background=True)
        records = [closed(utc(2025, 3, d, 20), 17) for d in range(1, 6)]
        try:
            for n in range(1, 6):
                writer.submit(records[:n], StreakState(n, n))
            writer.flush(timeout=5)
        finally:
            writer.close()
        self.assertEqual(len(gateway.sessions), 5)
        self.assertEqual(gateway.streak_state, StreakState(5, 5))
        self.assertEqual(gateway.save_count, 5)

    def test_controller_with_background_writer(self):
        gateway = InMemoryGateway()
        writer = PersistenceWriter(gateway, background=True)
        controller, clock, _ = make_controller(gateway=gateway, writer=writer)
        try:
            controller.start()
            controller.stop(at=clock.advance(hours=17))
            writer.flush(timeout=5)
        finally:
            writer.close()
        self.assertEqual(len(gateway.sessions), 1)
        self.assertTrue(gateway.sessions[0].is_complete)

    def test_failed_change_set_is_saved_with_the_next_one(self):
        gateway = InMemoryGateway()
        writer = PersistenceWriter(gateway)
        first = closed(utc(2025, 3, 1, 20), 17)
        second = closed(utc(2025, 3, 2, 20), 17)

        gateway.fail = True
        with self.assertLogs('fasting.persistence', level='WARNING'):
            writer.submit([first], StreakState(1, 1))
        gateway.fail = False
        writer.submit([second], StreakState(2, 2))

        self.assertEqual({r.id for r in gateway.sessions}, {first.id, second.id})
        self.assertIsNone(writer.last_error)

    def test_enqueue_waits_for_drain(self):
        gateway = InMemoryGateway()
        writer = PersistenceWriter(gateway)
        writer.enqueue([closed(utc(2025, 3, 1, 20), 17)], StreakState(1, 1))
        self.assertEqual(gateway.sessions, [])
        writer.drain()
        self.assertEqual(len(gateway.sessions), 1)


class SlowGateway(InMemoryGateway):
    """Reads the controller from another thread while a save is in flight."""

    def __init__(self):
        super().__init__()
        self.controller = None
        self.reads_during_save = []

    def save_sessions(self, records, deleted_ids=()):
        reader = threading.Thread(target=lambda: self.reads_during_save.append(self.controller.is_active))
        reader.start()
        reader.join(timeout=2)
        super().save_sessions(records, deleted_ids)


class ControllerWriteTests(SimpleTestCase):
    """Tests for how much the controller writes, and when"""

    def test_reads_are_not_blocked_by_a_save(self):
        gateway = SlowGateway()
        controller, _, _ = make_controller(gateway=gateway)
        gateway.controller = controller

        controller.start()
        self.assertEqual(gateway.reads_during_save, [True])

    def test_mutation_saves_only_changed_records(self):
        old = closed(utc(2025, 3, 1, 20), 17)
        gateway = InMemoryGateway(sessions=[old])
        controller, _, _ = make_controller(gateway=gateway)

        with mock.patch.object(gateway, 'save_sessions', wraps=gateway.save_sessions) as save:
            record = controller.log_completed(utc(2025, 3, 9, 20), utc(2025, 3, 10, 13))
            controller.delete(record.id)

        self.assertEqual(save.call_args_list, [
            mock.call([record], deleted_ids=[]),
            mock.call([], deleted_ids=[record.id]),
        ])

    def test_refresh_streaks_saves_only_changed_counters(self):
        gateway = InMemoryGateway(sessions=[closed(utc(2025, 3, 9, 18), 17)], streak_state=StreakState(1, 1))
        controller, clock, _ = make_controller(gateway=gateway, now=utc(2025, 3, 10, 12))
        self.assertEqual(controller.streaks(), StreakState(1, 1))

        with mock.patch.object(gateway, 'save_sessions') as save_sessions, \
                mock.patch.object(gateway, 'save_streak_state', wraps=gateway.save_streak_state) as save_streaks:
            controller.refresh_streaks()
            clock.advance(days=2)
            self.assertEqual(controller.refresh_streaks(), StreakState(0, 1))
            controller.refresh_streaks()

        save_sessions.assert_not_called()
        save_streaks.assert_called_once_with(0, 1)
