"""
Student Model - rebuilds mastery snapshots from attempt history.

A MasterySnapshot is a cache of the attempt history with exactly one
invalidation rule: when a new attempt arrives, rebuild from the full
history. Rebuilding the same history twice yields the same snapshot.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .aggregator import AttemptAggregator
from .classifier import MasteryClassifier
from .models import AttemptRecord, MasteryLevel, MasterySnapshot, TrendDirection
from .policy import DEFAULT_POLICY, MasteryPolicy


@dataclass
class MasteryUpdate:
    """Result of folding a new attempt into a snapshot."""
    snapshot: MasterySnapshot
    milestone_reached: bool  # Latest attempt first crossed into MASTERED
    first_introduced: bool  # Latest attempt is the first for this pair


class StudentModel:
    """
    Composes the aggregator and classifier for one (student, concept) pair.

    Trend compares the full history against the history without its newest
    attempt, which is exactly the previously stored snapshot.
    """

    def __init__(self, policy: MasteryPolicy = DEFAULT_POLICY):
        self.policy = policy
        self.aggregator = AttemptAggregator(policy)
        self.classifier = MasteryClassifier(policy)

    def rebuild(self, student_id: str, concept_id: str,
                attempts: Iterable[AttemptRecord],
                stored: Optional[MasterySnapshot] = None) -> Optional[MasteryUpdate]:
        """
        Rebuild the snapshot for one pair. None when there is no history.

        Args:
            stored: the snapshot currently persisted for the pair. A
                mastered_at it carries is kept even if a late, older attempt
                means the replayed history never crosses into MASTERED, and
                the milestone only fires when it had none.
        """
        prefixes = self.aggregator.fold(
            a for a in attempts if a.student_id == student_id and a.concept_id == concept_id
        )
        if not prefixes:
            return None

        current = prefixes[-1]
        previous_percent = prefixes[-2].percent if len(prefixes) > 1 else None
        level, trend = self.classifier.classify(current.percent, current.total, previous_percent)

        # First prefix that reached MASTERED or above
        mastered_index = None
        for index, stats in enumerate(prefixes):
            if self.classifier.classify_level(stats.percent, stats.total) >= MasteryLevel.MASTERED:
                mastered_index = index
                break
        mastered_at = prefixes[mastered_index].last_at if mastered_index is not None else None

        if stored is None:
            milestone = mastered_index == len(prefixes) - 1
        elif stored.mastered_at is not None:
            mastered_at = stored.mastered_at
            milestone = False
        else:
            milestone = mastered_at is not None

        snapshot = MasterySnapshot(
            student_id=student_id,
            concept_id=concept_id,
            total_attempts=current.total,
            correct_attempts=current.correct,
            incorrect_attempts=current.incorrect,
            mastery_percent=current.percent,
            mastery_level=level,
            trend=trend,
            previous_percent=previous_percent,
            first_assessed=current.first_at,
            last_assessed=current.last_at,
            mastered_at=mastered_at,
        )
        return MasteryUpdate(
            snapshot=snapshot,
            milestone_reached=milestone,
            first_introduced=len(prefixes) == 1,
        )

    # ==================== Serialization ====================

    @staticmethod
    def snapshot_to_dict(snapshot: MasterySnapshot) -> dict:
        """Serialize a snapshot to flat strings (for Redis hashes)."""
        return {
            "student_id": snapshot.student_id,
            "concept_id": snapshot.concept_id,
            "total_attempts": str(snapshot.total_attempts),
            "correct_attempts": str(snapshot.correct_attempts),
            "incorrect_attempts": str(snapshot.incorrect_attempts),
            "mastery_percent": repr(snapshot.mastery_percent),
            "mastery_level": snapshot.mastery_level.value,
            "trend": snapshot.trend.value,
            "previous_percent": "" if snapshot.previous_percent is None else repr(snapshot.previous_percent),
            "first_assessed": snapshot.first_assessed.isoformat(),
            "last_assessed": snapshot.last_assessed.isoformat(),
            "mastered_at": snapshot.mastered_at.isoformat() if snapshot.mastered_at else "",
        }

    @staticmethod
    def snapshot_from_dict(data: dict) -> MasterySnapshot:
        """Deserialize a snapshot written by snapshot_to_dict."""
        previous = data.get("previous_percent") or ""
        mastered_at = data.get("mastered_at") or ""
        return MasterySnapshot(
            student_id=data["student_id"],
            concept_id=data["concept_id"],
            total_attempts=int(data["total_attempts"]),
            correct_attempts=int(data["correct_attempts"]),
            incorrect_attempts=int(data["incorrect_attempts"]),
            mastery_percent=float(data["mastery_percent"]),
            mastery_level=MasteryLevel(data["mastery_level"]),
            trend=TrendDirection(data["trend"]),
            previous_percent=float(previous) if previous else None,
            first_assessed=datetime.fromisoformat(data["first_assessed"]),
            last_assessed=datetime.fromisoformat(data["last_assessed"]),
            mastered_at=datetime.fromisoformat(mastered_at) if mastered_at else None,
        )
