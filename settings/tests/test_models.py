from django.test import TestCase

from settings.models import Setting


class SettingTests(TestCase):
    """Tests for the Setting model."""

    def test_create_setting_with_key_and_value(self):
        """Creating a setting with key (PK) and value should work."""
        setting = Setting.objects.create(key='fasting_time_zone', value='America/Chicago')
        self.assertEqual(setting.pk, 'fasting_time_zone')
        self.assertEqual(setting.value, 'America/Chicago')

    def test_str_shows_key_and_truncated_value(self):
        """__str__ should show 'key: value' with value truncated to 50 chars."""
        short = Setting.objects.create(key='short', value='hello')
        self.assertEqual(str(short), 'short: hello')

        long_setting = Setting.objects.create(key='long', value='x' * 100)
        self.assertEqual(str(long_setting), f'long: {"x" * 50}')

    def test_get_returns_value_when_exists(self):
        Setting.objects.create(key='fasting_goal_hours', value='18')
        self.assertEqual(Setting.get('fasting_goal_hours'), '18')

    def test_get_returns_default_for_missing_key(self):
        self.assertIsNone(Setting.get('missing'))
        self.assertEqual(Setting.get('missing', 'fallback'), 'fallback')

    def test_set_updates_existing_setting(self):
        """Setting.set should update in place rather than add a second row."""
        Setting.set('fasting_current_streak', '2')
        Setting.set('fasting_current_streak', '3')
        self.assertEqual(Setting.objects.get(pk='fasting_current_streak').value, '3')
        self.assertEqual(Setting.objects.filter(pk='fasting_current_streak').count(), 1)

    def test_remove_deletes_only_given_keys(self):
        Setting.set('fasting_current_streak', '2')
        Setting.set('fasting_longest_streak', '5')
        Setting.set('fasting_goal_hours', '16')

        Setting.remove('fasting_current_streak', 'fasting_longest_streak', 'never_set')

        self.assertEqual(list(Setting.objects.values_list('key', flat=True)), ['fasting_goal_hours'])
