"""
Reads fasts from a Zero app data export (biodata.json).

The export is a one-shot health store: it can be fetched from but not pushed to.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional

from fasting.records import SessionRecord, Source, parse_instant

from .health_store_client import HealthStoreBridge

logger = logging.getLogger(__name__)


class ZeroExportBridge(HealthStoreBridge):
    """
    Bridge over a Zero `biodata.json` file.

    Each entry of `fast_data` becomes a closed ExternalSync record whose id is
    derived from Zero's FastID, so importing the same file twice is a no-op.
    """

    def __init__(self, json_file: str):
        self.json_file = json_file
        self.skipped = []

    def load_entries(self) -> List[dict]:
        """
        Raw `fast_data` entries.

        Raises:
            FileNotFoundError: the file does not exist
            ValueError: the file is not JSON or has no fast_data list
        """
        try:
            with open(self.json_file, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f'Invalid JSON file: {e}') from e

        if 'fast_data' not in data:
            raise ValueError(
                'No "fast_data" key found in JSON file. '
                'Make sure you are using the biodata.json file from Zero export.'
            )
        if not isinstance(data['fast_data'], list):
            raise ValueError(f"'fast_data' must be a list, got {type(data['fast_data']).__name__}")
        return data['fast_data']

    def parse_entry(self, entry: dict) -> Optional[SessionRecord]:
        """Record for one Zero entry, or None (with the reason kept in `skipped`) when unusable."""
        fast_id = entry.get('FastID')
        if not fast_id:
            self.skipped.append((None, 'no FastID'))
            return None

        try:
            start_time = parse_instant(entry['StartDTM'])
            end_time = parse_instant(entry['EndDTM']) if entry.get('EndDTM') else None
        except (KeyError, ValueError, AttributeError) as e:
            self.skipped.append((fast_id, f'invalid timestamps: {e}'))
            return None

        if end_time is None:
            self.skipped.append((fast_id, 'no end time (incomplete fast)'))
            return None
        if end_time <= start_time:
            self.skipped.append((fast_id, 'ends before it starts'))
            return None

        goal_hours = None
        try:
            if entry.get('GoalHours') is not None:
                goal_hours = float(entry['GoalHours'])
            elif entry.get('FastGoal'):
                # FastGoal is stored in seconds
                goal_hours = float(entry['FastGoal']) / 3600
        except (TypeError, ValueError):
            goal_hours = None
        if goal_hours is not None and goal_hours <= 0:
            goal_hours = None

        return SessionRecord(
            id=f'zero-{fast_id}',
            start_time=start_time,
            end_time=end_time,
            goal_hours=goal_hours,
            source=Source.EXTERNAL_SYNC,
        )

    def fetch_external_sessions(self, since: Optional[datetime] = None) -> List[SessionRecord]:
        self.skipped = []
        records = []
        for entry in self.load_entries():
            record = self.parse_entry(entry)
            if record is None:
                continue
            if since is not None and record.start_time < since:
                continue
            records.append(record)

        for fast_id, reason in self.skipped:
            logger.warning('Skipping Zero fast %s - %s', fast_id, reason)
        return records

    def push_session(self, record: SessionRecord) -> None:
        raise NotImplementedError('Zero exports are read-only')
