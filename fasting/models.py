from django.db import models

from .records import SessionRecord, Source


class FastingSession(models.Model):
    """
    Stored copy of a fasting session (manual, or imported from a health store / Zero export).

    Rows are written by DatabaseGateway from the in-memory History Store;
    nothing else should create or edit them directly.
    """
    SOURCE_CHOICES = [(s.value, s.value) for s in Source]

    session_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Stable id of the session, shared with the in-memory record"
    )
    source = models.CharField(
        max_length=50,
        choices=SOURCE_CHOICES,
        default=Source.MANUAL.value,
        help_text="Source of the fasting data ('Manual' or 'ExternalSync')"
    )
    start = models.DateTimeField(
        help_text="Fasting start time"
    )
    end = models.DateTimeField(
        help_text="Fasting end time (empty while the fast is running)",
        null=True,
        blank=True
    )
    goal_hours = models.FloatField(
        help_text="Goal for this fast in hours (empty means the default goal)",
        null=True,
        blank=True
    )
    eating_window = models.DurationField(
        help_text="Time since the previous fast ended, captured when this fast began",
        null=True,
        blank=True
    )

    # Audit fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start']
        indexes = [
            models.Index(fields=['-start'], name='fasting_session_start_idx'),
            models.Index(fields=['source'], name='fasting_session_source_idx'),
        ]
        verbose_name = 'Fasting Session'
        verbose_name_plural = 'Fasting Sessions'

    def __str__(self):
        return f"{self.source} fast on {self.start.strftime('%Y-%m-%d %H:%M')}"

    @property
    def duration(self):
        """Calculate fasting duration"""
        if self.end:
            return self.end - self.start
        return None

    @property
    def duration_hours(self):
        """Calculate fasting duration in hours"""
        if self.duration:
            return self.duration.total_seconds() / 3600
        return None

    @staticmethod
    def fields_from_record(record):
        """Model field values for a SessionRecord, minus session_id."""
        return {
            'source': record.source.value,
            'start': record.start_time,
            'end': record.end_time,
            'goal_hours': record.goal_hours,
            'eating_window': record.preceding_eating_window,
        }

    def to_record(self):
        return SessionRecord(
            id=self.session_id,
            start_time=self.start,
            end_time=self.end,
            goal_hours=self.goal_hours,
            preceding_eating_window=self.eating_window,
            source=Source(self.source),
        )


class ScheduledNotification(models.Model):
    """
    A pending reminder for a running fast, delivered by whatever push worker
    polls `due()`.
    """
    KIND_GOAL = 'goal'
    KIND_CHOICES = [
        (KIND_GOAL, 'Goal reached'),
    ]

    session_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Session this reminder belongs to"
    )
    kind = models.CharField(
        max_length=20,
        choices=KIND_CHOICES,
        default=KIND_GOAL
    )
    fire_at = models.DateTimeField(
        help_text="When the reminder should be delivered"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['fire_at']
        unique_together = ['session_id', 'kind']
        verbose_name = 'Scheduled Notification'
        verbose_name_plural = 'Scheduled Notifications'

    def __str__(self):
        return f"{self.get_kind_display()} for {self.session_id} at {self.fire_at.strftime('%Y-%m-%d %H:%M')}"

    @classmethod
    def due(cls, now):
        return cls.objects.filter(fire_at__lte=now)
