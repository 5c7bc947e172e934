"""
Goal-reached reminders for running fasts.

The controller schedules a reminder when a fast starts and cancels it when the
fast stops, is deleted, or has its start time moved. Scheduling is
fire-and-forget: a failure here is logged and never blocks a fast.
"""
import logging

from django.db import DatabaseError

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Interface for reminder backends."""

    def schedule_goal_reached(self, session_id, at):
        raise NotImplementedError

    def cancel_all(self, session_id):
        raise NotImplementedError


class NullNotificationScheduler(NotificationScheduler):
    """Drops every request. Used when no reminder backend is configured."""

    def schedule_goal_reached(self, session_id, at):
        pass

    def cancel_all(self, session_id):
        pass


class DatabaseNotificationScheduler(NotificationScheduler):
    """Stores reminders as fasting.ScheduledNotification rows for a push worker to deliver."""

    def schedule_goal_reached(self, session_id, at):
        from .models import ScheduledNotification

        try:
            ScheduledNotification.objects.update_or_create(
                session_id=session_id,
                kind=ScheduledNotification.KIND_GOAL,
                defaults={'fire_at': at},
            )
        except DatabaseError:
            logger.exception('Could not schedule goal reminder for fast %s', session_id)
            return
        logger.info('Goal reminder for fast %s scheduled at %s', session_id, at.isoformat())

    def cancel_all(self, session_id):
        from .models import ScheduledNotification

        try:
            deleted, _ = ScheduledNotification.objects.filter(session_id=session_id).delete()
        except DatabaseError:
            logger.exception('Could not cancel reminders for fast %s', session_id)
            return
        if deleted:
            logger.info('Cancelled %d reminder(s) for fast %s', deleted, session_id)


def pending_notifications(now):
    """Reminders whose fire time has passed, oldest first."""
    from .models import ScheduledNotification

    return list(ScheduledNotification.due(now))
