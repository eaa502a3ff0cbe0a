"""
Domain types shared by the mastery kernel.

Structure:
    Concept ──[PrerequisiteEdge]──> Concept
    AttemptRecord (immutable fact) ──fold──> MasterySnapshot (cache)
    MasterySnapshot + graph + now ──> KnowledgeGap (never stored)
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class MasteryLevel(Enum):
    """Ordered classification of how well a student knows a concept."""
    NOT_STARTED = "NOT_STARTED"
    INTRODUCED = "INTRODUCED"
    DEVELOPING = "DEVELOPING"
    PROFICIENT = "PROFICIENT"
    MASTERED = "MASTERED"
    EXPERT = "EXPERT"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, MasteryLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_ORDER = list(MasteryLevel)


class TrendDirection(Enum):
    IMPROVING = "IMPROVING"
    DECLINING = "DECLINING"
    STABLE = "STABLE"


class RelationshipKind(Enum):
    PREREQUISITE = "prerequisite"
    BUILDS_UPON = "builds_upon"
    APPLIED_IN = "applied_in"
    RELATED = "related"

    @property
    def label(self) -> str:
        """Display label, e.g. 'Builds Upon'."""
        return self.value.replace("_", " ").title()


class GapSeverity(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        # HIGH sorts first
        return list(GapSeverity).index(self)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Concept:
    """A named unit of knowledge within a subject."""
    id: str
    name: str
    subject: str = ""
    grade_level: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class PrerequisiteEdge:
    """Directed relation between two concepts."""
    source: str
    target: str
    kind: RelationshipKind
    strength: float = 1.0
    ai_generated: bool = False
    confidence: Optional[float] = None


@dataclass(frozen=True)
class AttemptRecord:
    """A single graded answer. Never mutated after creation."""
    student_id: str
    concept_id: str
    is_correct: bool
    timestamp: datetime
    assignment_id: Optional[str] = None
    question_id: Optional[str] = None
    class_id: Optional[str] = None
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class MasterySnapshot:
    """Materialized mastery state for one (student, concept) pair."""
    student_id: str
    concept_id: str
    total_attempts: int
    correct_attempts: int
    incorrect_attempts: int
    mastery_percent: float
    mastery_level: MasteryLevel
    trend: TrendDirection
    previous_percent: Optional[float]
    first_assessed: datetime
    last_assessed: datetime
    mastered_at: Optional[datetime] = None


@dataclass
class KnowledgeGap:
    """A concept the student has not adequately or recently mastered."""
    concept_id: str
    concept_name: str
    current_mastery: Optional[float]  # None = never assessed
    days_since_practiced: Optional[int]  # None = never practiced
    severity: GapSeverity
    recommendation: str
    is_prerequisite: bool = False
