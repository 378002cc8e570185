"""Hourly bucket admission policy for market cap snapshots.

Snapshots are expected at the top of every hour. A feed may deliver them a
little early or late, so a snapshot is accepted when it lies within
``[hh:00 - earlier_tolerance, hh:00 + later_tolerance]``. A second snapshot
for the same market is only accepted once roughly an hour has passed since the
last stored one, which keeps one record per market per hourly bucket.
"""

from datetime import datetime
from enum import Enum

from capweight.logging import get_logger
from capweight.models import MarketSnapshot, ensure_utc

logger = get_logger(__name__)


class Admission(str, Enum):
    """Outcome of evaluating a candidate snapshot."""

    ADMIT = "admit"
    NOT_ALIGNED = "not_aligned"
    TOO_CLOSE = "too_close"


class TimeBucketPolicy:
    """Decides whether a snapshot may be stored."""

    def __init__(self, earlier_tolerance: float = 5.0, later_tolerance: float = 5.0) -> None:
        """
        Args:
            earlier_tolerance: Minutes before the whole hour still accepted.
            later_tolerance: Minutes after the whole hour still accepted.
        """
        if earlier_tolerance < 0 or later_tolerance < 0:
            raise ValueError("Tolerances must be non-negative")
        if earlier_tolerance + later_tolerance >= 60:
            raise ValueError("Tolerances must leave a gap between hourly buckets")
        self.earlier_tolerance = float(earlier_tolerance)
        self.later_tolerance = float(later_tolerance)

    @classmethod
    def from_settings(cls, settings) -> "TimeBucketPolicy":
        return cls(settings.earlier_tolerance_minutes, settings.later_tolerance_minutes)

    @staticmethod
    def minutes_past_hour(timestamp: datetime) -> float:
        ts = ensure_utc(timestamp)
        return ts.minute + ts.second / 60 + ts.microsecond / 60_000_000

    @staticmethod
    def offset_minutes(later: datetime, earlier: datetime) -> float:
        """Signed minutes from ``earlier`` to ``later``."""
        return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 60

    def is_aligned(self, timestamp: datetime) -> bool:
        """True if ``timestamp`` is within tolerance of some whole hour."""
        minutes = self.minutes_past_hour(timestamp)
        return minutes <= self.later_tolerance or minutes >= 60 - self.earlier_tolerance

    def evaluate(
        self,
        candidate: MarketSnapshot,
        last_stored: MarketSnapshot | None,
    ) -> Admission:
        if not self.is_aligned(candidate.updated):
            logger.warning(
                "Market cap of '%s' is not close to the whole hour (%s).",
                candidate.market,
                candidate.updated.isoformat(),
            )
            return Admission.NOT_ALIGNED

        if last_stored is None:
            return Admission.ADMIT

        offset = self.offset_minutes(candidate.updated, last_stored.updated)
        if offset + self.later_tolerance >= 60 - self.earlier_tolerance:
            return Admission.ADMIT

        logger.warning(
            "Market cap of '%s' at %s is within the bucket of the last stored record (%s).",
            candidate.market,
            candidate.updated.isoformat(),
            last_stored.updated.isoformat(),
        )
        return Admission.TOO_CLOSE

    def should_admit(
        self,
        candidate: MarketSnapshot,
        last_stored: MarketSnapshot | None,
    ) -> bool:
        return self.evaluate(candidate, last_stored) is Admission.ADMIT
