"""
Metabolic stages shown alongside a running fast.
"""
from dataclasses import dataclass
from typing import Optional

from .records import SECONDS_PER_HOUR


@dataclass(frozen=True)
class FastingStage:
    start_hours: int
    end_hours: Optional[int]
    title: str
    description: str

    @property
    def hour_range(self):
        if self.end_hours is None:
            return f'{self.start_hours}+'
        return f'{self.start_hours}-{self.end_hours}'

    def contains(self, hours):
        return hours >= self.start_hours and (self.end_hours is None or hours < self.end_hours)


STAGES = (
    FastingStage(0, 4, 'Fed State', 'Digesting the last meal; insulin and blood sugar are elevated.'),
    FastingStage(4, 8, 'Post-Absorptive State', 'Digestion winds down and insulin starts to fall.'),
    FastingStage(8, 12, 'Early Fasting', 'Liver glycogen is being used up.'),
    FastingStage(12, 16, 'Fat-Burning Mode', 'The body shifts toward burning stored fat.'),
    FastingStage(16, 20, 'Ketone Production Rises', 'Ketones become a meaningful fuel source.'),
    FastingStage(20, 24, 'Deeper Fasting', 'Ketosis deepens and growth hormone rises.'),
    FastingStage(24, 36, 'Strong Metabolic Shift', 'Fat is now the primary fuel.'),
    FastingStage(36, 48, 'Deep Autophagy + Repair', 'Cellular cleanup is well under way.'),
    FastingStage(48, None, 'Prolonged Fast Territory', 'Extended fasting; consider medical supervision.'),
)


def stage_for(elapsed):
    """Stage for an elapsed timedelta. Negative elapsed time maps to the first stage."""
    hours = max(elapsed.total_seconds(), 0) / SECONDS_PER_HOUR
    for stage in STAGES:
        if stage.contains(hours):
            return stage
    return STAGES[-1]
