"""
Core module - Concept mastery and knowledge graph kernel.

Components:
    - aggregator: Folds attempt history into recency-weighted statistics
    - classifier: Maps statistics onto mastery levels and trends
    - knowledge_graph: Typed concept graph with prerequisite chains
    - student_model: Rebuilds mastery snapshots, flags milestones
    - gap_detector: Ranks stale or missing prerequisite knowledge
    - layout: Force-directed positions for the knowledge map
"""

from .aggregator import AttemptAggregator, AttemptStats
from .classifier import MasteryClassifier
from .errors import (
    ConceptNotFound,
    CycleDetected,
    DuplicateEdgeError,
    MasteryError,
    SelfLoopError,
    SnapshotNotFound,
    ValidationError,
)
from .gap_detector import GapDetector, GapReport
from .knowledge_graph import KnowledgeGraph
from .models import (
    AttemptRecord,
    Concept,
    GapSeverity,
    KnowledgeGap,
    MasteryLevel,
    MasterySnapshot,
    PrerequisiteEdge,
    RelationshipKind,
    TrendDirection,
)
from .policy import MasteryPolicy
from .student_model import MasteryUpdate, StudentModel

__all__ = [
    "AttemptAggregator",
    "AttemptStats",
    "MasteryClassifier",
    "ConceptNotFound",
    "CycleDetected",
    "DuplicateEdgeError",
    "MasteryError",
    "SelfLoopError",
    "SnapshotNotFound",
    "ValidationError",
    "GapDetector",
    "GapReport",
    "KnowledgeGraph",
    "AttemptRecord",
    "Concept",
    "GapSeverity",
    "KnowledgeGap",
    "MasteryLevel",
    "MasterySnapshot",
    "PrerequisiteEdge",
    "RelationshipKind",
    "TrendDirection",
    "MasteryPolicy",
    "MasteryUpdate",
    "StudentModel",
]
