"""
Gap Detector - finds concepts a student is likely to have lost.

A concept is a gap when either:
    - it was last assessed longer ago than the staleness window and the
      student never got it to PROFICIENT, or
    - it is a direct prerequisite of current class material and the
      student has never been assessed on it.

Gaps depend on "now", so they are computed per request and never stored.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from .knowledge_graph import KnowledgeGraph
from .models import GapSeverity, KnowledgeGap, MasteryLevel, MasterySnapshot, utcnow
from .policy import DEFAULT_POLICY, MasteryPolicy

logger = logging.getLogger(__name__)


@dataclass
class GapReport:
    """Ranked gaps plus the summary counts shown on dashboards."""
    student_id: str
    class_id: Optional[str]
    gaps: List[KnowledgeGap] = field(default_factory=list)

    @property
    def total_gaps(self) -> int:
        return len(self.gaps)

    @property
    def critical_gaps(self) -> int:
        return sum(1 for g in self.gaps if g.severity == GapSeverity.HIGH)

    @property
    def moderate_gaps(self) -> int:
        return sum(1 for g in self.gaps if g.severity == GapSeverity.MEDIUM)


class GapDetector:
    def __init__(self, knowledge_graph: KnowledgeGraph, policy: MasteryPolicy = DEFAULT_POLICY):
        self.kg = knowledge_graph
        self.policy = policy

    def detect(
        self,
        student_id: str,
        snapshots: Dict[str, MasterySnapshot],
        current_concepts: Iterable[str],
        class_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> GapReport:
        """
        Rank the student's gaps for the material currently being taught.

        Args:
            snapshots: concept_id -> snapshot for this student
            current_concepts: concepts taught in the class right now
            now: evaluation time (defaults to the current UTC time)
        """
        now = now or utcnow()
        current = [c for c in current_concepts if self.kg.has_concept(c)]

        hard_prereqs: Set[str] = set()
        for concept_id in current:
            hard_prereqs.update(self.kg.direct_prerequisites(concept_id))
        scope = set(current) | hard_prereqs

        gaps: List[KnowledgeGap] = []
        for concept_id in sorted(scope):
            gap = self._evaluate(concept_id, snapshots.get(concept_id),
                                 concept_id in hard_prereqs, now)
            if gap is not None:
                gaps.append(gap)

        gaps.sort(key=self._rank_key)
        logger.debug("Student %s: %d gaps across %d concepts", student_id, len(gaps), len(scope))
        return GapReport(student_id=student_id, class_id=class_id, gaps=gaps)

    def _evaluate(self, concept_id: str, snapshot: Optional[MasterySnapshot],
                  is_prereq: bool, now: datetime) -> Optional[KnowledgeGap]:
        name = self.kg.get_concept(concept_id).name

        never_assessed = snapshot is None or snapshot.mastery_level == MasteryLevel.NOT_STARTED
        if never_assessed:
            if not is_prereq:
                return None
            return KnowledgeGap(
                concept_id=concept_id,
                concept_name=name,
                current_mastery=None,
                days_since_practiced=None,
                severity=GapSeverity.HIGH,
                recommendation=self._recommend(name, None),
                is_prerequisite=True,
            )

        days = (now - snapshot.last_assessed).days
        if days <= self.policy.staleness_days:
            return None
        if snapshot.mastery_level >= MasteryLevel.PROFICIENT:
            return None

        return KnowledgeGap(
            concept_id=concept_id,
            concept_name=name,
            current_mastery=snapshot.mastery_percent,
            days_since_practiced=days,
            severity=self._severity(snapshot.mastery_percent),
            recommendation=self._recommend(name, snapshot.mastery_percent),
            is_prerequisite=is_prereq,
        )

    def _severity(self, percent: float) -> GapSeverity:
        if percent < self.policy.developing_percent:
            return GapSeverity.HIGH
        if percent < self.policy.proficient_percent:
            return GapSeverity.MEDIUM
        return GapSeverity.LOW

    def _recommend(self, name: str, percent: Optional[float]) -> str:
        if percent is None:
            return f"Introduce {name} before proceeding with advanced topics"
        if percent < self.policy.developing_percent:
            return f"Extensive review of {name} needed - consider remediation assignments"
        if percent < self.policy.proficient_percent:
            return f"Quick review of {name} recommended before new material"
        return f"Monitor {name} performance"

    @staticmethod
    def _rank_key(gap: KnowledgeGap):
        # Never practiced counts as the most stale
        staleness = float("inf") if gap.days_since_practiced is None else gap.days_since_practiced
        return gap.severity.rank, -staleness, gap.concept_id
