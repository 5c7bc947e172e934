"""
Pattern tests: executable documentation of the codebase's critical invariants.

These tests demonstrate (and enforce) the patterns every change to the fasting
app must follow. Read these before writing new code.

Run with: pytest tests/test_patterns.py
"""
from datetime import datetime, timedelta, timezone as dt_timezone
import json

from django.test import TestCase, RequestFactory
from django.urls import reverse

import pytz

from fasting.models import FastingSession
from fasting.persistence import DatabaseGateway
from fasting.records import SessionRecord, Source
from fastlife.timezone_utils import get_calendar_timezone, get_user_timezone, local_date
from settings.models import Setting


class SessionIdDeduplicationTests(TestCase):
    """
    PATTERN: Session ID Deduplication

    Every stored fast is keyed by `session_id`, the same id the in-memory
    SessionRecord carries. Saves use `update_or_create()` on that id, so
    re-saving or re-importing never creates duplicates.
    """

    def test_resaving_updates_not_duplicates(self):
        start = datetime(2025, 3, 1, 20, tzinfo=dt_timezone.utc)
        record = SessionRecord(start_time=start, end_time=start + timedelta(hours=16))
        gateway = DatabaseGateway()
        for _ in range(3):
            gateway.save_sessions([record])
        self.assertEqual(FastingSession.objects.count(), 1)

    def test_source_names_are_title_cased(self):
        """Source values are 'Manual' and 'ExternalSync', never lower case."""
        self.assertEqual([s.value for s in Source], ['Manual', 'ExternalSync'])
        FastingSession.objects.create(
            session_id='x1',
            source=Source.EXTERNAL_SYNC.value,
            start=datetime(2025, 3, 1, 20, tzinfo=dt_timezone.utc),
        )
        self.assertFalse(FastingSession.objects.filter(source='externalsync').exists())
        self.assertTrue(FastingSession.objects.filter(source='ExternalSync').exists())


class TimezoneHandlingTests(TestCase):
    """
    PATTERN: Timezone from Browser Cookie

    The user's timezone is read from `request.COOKIES['user_timezone']`.
    All datetimes are stored in UTC. Streak days are counted in the user's
    timezone, falling back to the `fasting_time_zone` Setting.
    """

    def setUp(self):
        self.factory = RequestFactory()

    def test_timezone_from_cookie(self):
        request = self.factory.get('/')
        request.COOKIES['user_timezone'] = 'America/Los_Angeles'
        tz = get_user_timezone(request)
        self.assertEqual(str(tz), 'America/Los_Angeles')

    def test_missing_cookie_uses_calendar_timezone(self):
        Setting.set('fasting_time_zone', 'Europe/Berlin')
        request = self.factory.get('/')
        request.COOKIES = {}
        self.assertEqual(str(get_user_timezone(request)), 'Europe/Berlin')
        self.assertEqual(str(get_calendar_timezone()), 'Europe/Berlin')

    def test_invalid_timezone_falls_back_to_utc(self):
        request = self.factory.get('/')
        request.COOKIES['user_timezone'] = 'Not/A/Timezone'
        tz = get_user_timezone(request)
        self.assertEqual(str(tz), 'UTC')

    def test_local_date_returns_correct_date_for_timezone(self):
        """
        When it's 11 PM in LA (which is 7 AM next day UTC),
        local_date should return the LA date, not the UTC date.
        """
        now = datetime(2025, 1, 16, 7, 0, 0, tzinfo=dt_timezone.utc)
        today = local_date(now, pytz.timezone('America/Los_Angeles'))

        # Should be Jan 15 in LA, not Jan 16
        self.assertEqual(today.month, 1)
        self.assertEqual(today.day, 15)
        self.assertEqual(local_date(now, pytz.UTC).day, 16)

    def test_iso_8601_parsing_pattern(self):
        """Frontend sends Z-suffix timestamps. Parse with fromisoformat after replacing Z."""
        frontend_value = '2025-03-15T14:30:00Z'
        parsed = datetime.fromisoformat(frontend_value.replace('Z', '+00:00'))
        self.assertEqual(parsed.hour, 14)
        self.assertIsNotNone(parsed.tzinfo)


class AjaxResponseFormatTests(TestCase):
    """
    PATTERN: AJAX Response Format

    All AJAX endpoints return {'success': bool, ...} with appropriate status codes.
    Errors include an 'error' key with a message string.
    """

    def test_success_response_format(self):
        response = self.client.get(reverse('fasting:state'))
        body = json.loads(response.content)
        self.assertTrue(body['success'])
        self.assertEqual(response.status_code, 200)

    def test_error_response_format(self):
        response = self.client.delete(reverse('fasting:delete', kwargs={'session_id': 'missing'}))
        body = json.loads(response.content)
        self.assertFalse(body['success'])
        self.assertIn('error', body)
        self.assertEqual(response.status_code, 404)
