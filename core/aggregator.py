"""
Attempt Aggregator - folds attempt history into running statistics.

Recency weighting is an exponentially weighted average with a half-life:

    weight(attempt) = 0.5 ** (age_days / half_life_days)

Age is measured from the newest attempt in the stream, not from the wall
clock, so the same history always yields the same percentage.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .models import AttemptRecord
from .policy import DEFAULT_POLICY, MasteryPolicy

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class AttemptStats:
    """Running statistics after folding a prefix of the attempt history."""
    total: int
    correct: int
    incorrect: int
    percent: float  # Recency-weighted once total >= min_weighted_attempts
    first_at: datetime
    last_at: datetime


def order_attempts(attempts: Iterable[AttemptRecord]) -> List[AttemptRecord]:
    """Sort by timestamp; attempt_id breaks ties so replays are stable."""
    return sorted(attempts, key=lambda a: (a.timestamp, a.attempt_id))


class AttemptAggregator:
    """Folds AttemptRecords for one (student, concept) pair."""

    def __init__(self, policy: MasteryPolicy = DEFAULT_POLICY):
        self.policy = policy

    def fold(self, attempts: Iterable[AttemptRecord]) -> List[AttemptStats]:
        """
        Fold the history and return the stats after every attempt.

        The weighted sums are decayed by the gap between consecutive
        attempts, which equals weighting each attempt by its age relative
        to the newest one.
        """
        ordered = order_attempts(attempts)
        prefixes: List[AttemptStats] = []

        total = correct = 0
        weighted_correct = 0.0
        weight_sum = 0.0
        first_at: Optional[datetime] = None
        last_at: Optional[datetime] = None

        for attempt in ordered:
            if last_at is not None:
                decay = self._decay(attempt.timestamp - last_at)
                weighted_correct *= decay
                weight_sum *= decay
            else:
                first_at = attempt.timestamp

            total += 1
            if attempt.is_correct:
                correct += 1
                weighted_correct += 1.0
            weight_sum += 1.0
            last_at = attempt.timestamp

            if total < self.policy.min_weighted_attempts:
                percent = correct / total * 100
            else:
                percent = weighted_correct / weight_sum * 100

            prefixes.append(AttemptStats(
                total=total,
                correct=correct,
                incorrect=total - correct,
                percent=round(percent, 2),
                first_at=first_at,
                last_at=last_at,
            ))

        return prefixes

    def aggregate(self, attempts: Iterable[AttemptRecord]) -> Optional[AttemptStats]:
        """Stats for the full history, or None when there are no attempts."""
        prefixes = self.fold(attempts)
        return prefixes[-1] if prefixes else None

    def _decay(self, elapsed) -> float:
        days = max(0.0, elapsed.total_seconds() / SECONDS_PER_DAY)
        return 0.5 ** (days / self.policy.half_life_days)
