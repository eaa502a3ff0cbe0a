"""
Mastery policy - every tunable threshold of the kernel in one value.

Components take a MasteryPolicy instead of reading module constants,
so tests can pin thresholds and clocks explicitly.
"""

from dataclasses import dataclass

from .errors import ValidationError


@dataclass(frozen=True)
class MasteryPolicy:
    # Recency weighting
    half_life_days: float = 30.0
    min_weighted_attempts: int = 3  # Plain percentage below this

    # Level cutoffs (percent, lower bound inclusive)
    min_attempts_for_developing: int = 5
    developing_percent: float = 40.0
    proficient_percent: float = 70.0
    mastered_percent: float = 90.0
    expert_percent: float = 98.0
    expert_min_attempts: int = 10

    # Trend band (percentage points)
    trend_tolerance: float = 3.0

    # Gap detection
    staleness_days: int = 180

    def validate(self) -> "MasteryPolicy":
        """Reject policies that would break the level ordering."""
        if self.half_life_days <= 0:
            raise ValidationError("half_life_days must be positive")
        if self.min_weighted_attempts < 0 or self.min_attempts_for_developing < 0:
            raise ValidationError("attempt thresholds must not be negative")
        cutoffs = [
            self.developing_percent,
            self.proficient_percent,
            self.mastered_percent,
            self.expert_percent,
        ]
        if cutoffs != sorted(cutoffs) or cutoffs[0] < 0 or cutoffs[-1] > 100:
            raise ValidationError("level cutoffs must be ascending within [0, 100]")
        if self.trend_tolerance < 0:
            raise ValidationError("trend_tolerance must not be negative")
        if self.staleness_days < 0:
            raise ValidationError("staleness_days must not be negative")
        return self


DEFAULT_POLICY = MasteryPolicy()
