"""
Mastery Classifier - maps statistics onto levels and trends.

Level ladder (default policy):
    0 attempts                  -> NOT_STARTED
    < 5 attempts or < 40%       -> INTRODUCED
    40-69%                      -> DEVELOPING
    70-89%                      -> PROFICIENT
    90-97%                      -> MASTERED
    >= 98% with >= 10 attempts  -> EXPERT
"""

from typing import Optional, Tuple

from .models import MasteryLevel, TrendDirection
from .policy import DEFAULT_POLICY, MasteryPolicy


class MasteryClassifier:
    """Pure functions of (percent, attempts); no state between calls."""

    def __init__(self, policy: MasteryPolicy = DEFAULT_POLICY):
        self.policy = policy

    def classify_level(self, percent: float, attempts: int) -> MasteryLevel:
        p = self.policy

        if attempts < 1:
            return MasteryLevel.NOT_STARTED
        if attempts < p.min_attempts_for_developing or percent < p.developing_percent:
            return MasteryLevel.INTRODUCED
        if percent < p.proficient_percent:
            return MasteryLevel.DEVELOPING
        if percent < p.mastered_percent:
            return MasteryLevel.PROFICIENT
        if percent >= p.expert_percent and attempts >= p.expert_min_attempts:
            return MasteryLevel.EXPERT
        return MasteryLevel.MASTERED

    def classify_trend(self, current: float, previous: Optional[float]) -> TrendDirection:
        if previous is None:
            return TrendDirection.STABLE

        delta = current - previous
        if delta > self.policy.trend_tolerance:
            return TrendDirection.IMPROVING
        if delta < -self.policy.trend_tolerance:
            return TrendDirection.DECLINING
        return TrendDirection.STABLE

    def classify(self, percent: float, attempts: int,
                 previous: Optional[float] = None) -> Tuple[MasteryLevel, TrendDirection]:
        return self.classify_level(percent, attempts), self.classify_trend(percent, previous)
