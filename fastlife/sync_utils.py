"""
Shared sync infrastructure for imports into fasting history.

SyncResult: structured result of merging a batch of external sessions.
BaseSyncCommand: base class for sync management commands with --days/--all args.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone

from django.core.management.base import BaseCommand
from django.utils import timezone


@dataclass
class SyncResult:
    """Structured result from a sync operation."""

    source: str
    success: bool = True
    created: int = 0
    skipped: int = 0
    error_message: str = ""
    auth_error: bool = False

    @property
    def total(self):
        return self.created + self.skipped

    @property
    def summary(self):
        if not self.success:
            return f"Failed: {self.error_message}"
        parts = []
        if self.created:
            parts.append(f"{self.created} created")
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        return ", ".join(parts) if parts else "No records processed"


class BaseSyncCommand(BaseCommand):
    """
    Base class for fasting sync management commands.

    Provides:
    - --days and --all arguments, turned into a `since` datetime
    - self.sync_result for structured result access after handle()

    Subclasses should override `sync(since)` and return a SyncResult.
    """

    # Subclasses set this to their source name (e.g., 'HealthStore')
    source_name = ""

    # Earliest instant used when --all is passed
    all_since = datetime(2015, 1, 1, tzinfo=dt_timezone.utc)

    def add_arguments(self, parser):
        parser.add_argument(
            "--days", type=int, default=30, help="Number of days in the past to sync data from (default: 30)"
        )
        parser.add_argument("--all", action="store_true", help="Sync all available data (ignores --days parameter)")

    def handle(self, *_args, **options):
        if options.get("all", False):
            since = self.all_since
        else:
            since = timezone.now() - timedelta(days=options["days"])
        self.sync_result = self.sync(since)
        style = self.style.SUCCESS if self.sync_result.success else self.style.ERROR
        self.stdout.write(style(f"{self.source_name}: {self.sync_result.summary}"))

    def sync(self, since):
        """Override in subclasses. Must return a SyncResult."""
        raise NotImplementedError

    def make_result(self, **kwargs):
        """Convenience: create a SyncResult pre-filled with self.source_name."""
        return SyncResult(source=self.source_name, **kwargs)

    def make_error_result(self, message, auth_error=False):
        """Create a failed SyncResult."""
        return SyncResult(
            source=self.source_name,
            success=False,
            error_message=message,
            auth_error=auth_error,
        )
