"""
CSV export and import of fasting history.

Exports list completed fasts with local wall-clock times, one row per fast.
Imports read the same layout back, and also accept the FASTING HISTORY
section of a sectioned export (`=== FASTING HISTORY ===` followed by the
header row). Imported fasts go through FastingController.merge_external, so
a fast already in history (same id or overlapping interval) is never
duplicated.
"""
import csv
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.utils import timezone

from fasting.records import SECONDS_PER_HOUR, SessionRecord, Source

from .health_store_client import HealthStoreBridge

logger = logging.getLogger(__name__)

CSV_HEADER = [
    'Start Time', 'End Time', 'Duration (hours)', 'Goal (hours)', 'Met Goal', 'Eating Window (hours)'
]

TIME_FORMAT = '%Y-%m-%d %H:%M:%S'


def write_sessions_csv(records, handle, default_goal_hours, tz):
    """Write completed fasts in `records` to `handle` (any file-like object with write)."""
    writer = csv.writer(handle)
    writer.writerow(CSV_HEADER)
    count = 0
    for record in records:
        if not record.is_complete:
            continue
        window = record.preceding_eating_window
        writer.writerow([
            record.start_time.astimezone(tz).strftime(TIME_FORMAT),
            record.end_time.astimezone(tz).strftime(TIME_FORMAT),
            f'{record.duration_hours:.2f}',
            f'{record.effective_goal_hours(default_goal_hours):g}',
            'Yes' if record.met_goal(default_goal_hours) else 'No',
            f'{window.total_seconds() / SECONDS_PER_HOUR:.2f}' if window is not None else '',
        ])
        count += 1
    return count


def _parse_local(value, tz):
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if timezone.is_naive(parsed):
        parsed = tz.localize(parsed)
    return parsed


class CSVImportBridge(HealthStoreBridge):
    """
    Bridge over a fasting history CSV file.

    Naive times are read in `tz`. Record ids are derived from the start time,
    so importing the same file twice is a no-op.
    """

    def __init__(self, csv_file: str, tz):
        self.csv_file = csv_file
        self.tz = tz
        self.skipped = []

    def load_rows(self) -> List[List[str]]:
        """
        Data rows below the header.

        Raises:
            FileNotFoundError: the file does not exist
            ValueError: no 'Start Time' header row was found
        """
        rows = []
        in_table = False
        with open(self.csv_file, newline='') as f:
            for row in csv.reader(f):
                first = row[0].strip() if row else ''
                if not in_table:
                    in_table = first == CSV_HEADER[0]
                    continue
                if not first or first.startswith('==='):
                    break
                rows.append(row)
        if not in_table:
            raise ValueError(f'No "{CSV_HEADER[0]}" header row found in CSV file')
        return rows

    def parse_row(self, row_no: int, row: List[str]) -> Optional[SessionRecord]:
        """Record for one row, or None (with the reason kept in `skipped`) when unusable."""
        if len(row) < 2:
            self.skipped.append((row_no, 'missing start or end time'))
            return None
        try:
            start_time = _parse_local(row[0], self.tz)
            end_time = _parse_local(row[1], self.tz)
        except ValueError as e:
            self.skipped.append((row_no, f'invalid timestamps: {e}'))
            return None
        if end_time <= start_time:
            self.skipped.append((row_no, 'ends before it starts'))
            return None

        goal_hours = None
        window = None
        try:
            if len(row) > 3 and row[3].strip():
                goal_hours = float(row[3])
            if len(row) > 5 and row[5].strip():
                window = timedelta(hours=float(row[5]))
        except ValueError as e:
            self.skipped.append((row_no, f'invalid number: {e}'))
            return None
        if goal_hours is not None and goal_hours <= 0:
            goal_hours = None

        return SessionRecord(
            id=f'csv-{int(start_time.timestamp())}',
            start_time=start_time,
            end_time=end_time,
            goal_hours=goal_hours,
            preceding_eating_window=window,
            source=Source.EXTERNAL_SYNC,
        )

    def fetch_external_sessions(self, since: Optional[datetime] = None) -> List[SessionRecord]:
        self.skipped = []
        records = []
        for row_no, row in enumerate(self.load_rows(), start=1):
            record = self.parse_row(row_no, row)
            if record is None:
                continue
            if since is not None and record.start_time < since:
                continue
            records.append(record)

        for row_no, reason in self.skipped:
            logger.warning('Skipping CSV row %s - %s', row_no, reason)
        return records

    def push_session(self, record: SessionRecord) -> None:
        raise NotImplementedError('CSV files are imported, not written to')
