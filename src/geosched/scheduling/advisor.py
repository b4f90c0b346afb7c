"""Greedy forward search for the earliest slot that fits an owner's preferences."""

from __future__ import annotations

from datetime import datetime, timedelta

from geosched.infrastructure.clock import Clock
from geosched.infrastructure.config import OPTIMAL_TIME_SEARCH_DAYS
from geosched.infrastructure.logger import logger
from geosched.scheduling.conflicts import ConflictDetector
from geosched.scheduling.types import SchedulingPreferences

SEARCH_STEP = timedelta(hours=1)

SUNDAY = 0
SATURDAY = 6


def day_of_week(moment: datetime) -> int:
    """0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


class OptimalTimeAdvisor:
    def __init__(
        self,
        detector: ConflictDetector,
        clock: Clock,
        horizon: timedelta = timedelta(days=OPTIMAL_TIME_SEARCH_DAYS),
    ) -> None:
        self._detector = detector
        self._clock = clock
        self._horizon = horizon

    def suggest(self, owner_id: str, preferences: SchedulingPreferences) -> datetime:
        """Return the first conflict-free candidate, stepping an hour at a time.

        Falls back to now + minimum gap when the horizon is exhausted; that
        fallback may still conflict, so callers must re-check before committing.
        Day/hour preferences are evaluated on the UTC instant.
        """
        now = self._clock.now()
        gap = timedelta(minutes=preferences.minimum_gap_minutes)
        first = now + gap
        end = now + self._horizon

        candidate = first
        while candidate < end:
            if self.matches_preferences(candidate, preferences) and not self._detector.has_conflicts(
                owner_id, candidate, preferences.minimum_gap_minutes
            ):
                return candidate
            candidate += SEARCH_STEP

        logger.info("No conflict-free slot found, falling back", owner_id=owner_id, fallback=first.isoformat())
        return first

    @staticmethod
    def matches_preferences(candidate: datetime, preferences: SchedulingPreferences) -> bool:
        day = day_of_week(candidate)
        if preferences.preferred_days is not None and day not in preferences.preferred_days:
            return False
        if preferences.preferred_hours is not None and candidate.hour not in preferences.preferred_hours:
            return False
        if preferences.avoid_weekends and day in (SATURDAY, SUNDAY):
            return False
        return True
