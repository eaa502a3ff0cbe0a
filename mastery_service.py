"""
Mastery Service - the kernel's public operations.

Wires the Redis store to the pure kernel components:
    attempt -> StudentModel.rebuild -> snapshot (+ milestone flag)
    graph edits -> KnowledgeGraph validation -> store
    queries -> snapshots, prerequisite chains, gap reports, graph views
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.aggregator import AttemptAggregator, order_attempts
from core.errors import ConceptNotFound, SnapshotNotFound, ValidationError
from core.gap_detector import GapDetector, GapReport
from core.knowledge_graph import KnowledgeGraph
from core.layout import compute_layout
from core.models import (
    AttemptRecord,
    Concept,
    MasteryLevel,
    MasterySnapshot,
    PrerequisiteEdge,
    RelationshipKind,
    utcnow,
)
from core.policy import DEFAULT_POLICY, MasteryPolicy
from core.student_model import MasteryUpdate, StudentModel
from redis_store import RedisStore

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    """What an ingested attempt changed."""
    snapshot: MasterySnapshot
    milestone_reached: bool
    first_introduced: bool
    duplicate: bool = False


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class MasteryService:
    def __init__(self, store: RedisStore, policy: MasteryPolicy = DEFAULT_POLICY):
        self.store = store
        self.policy = policy.validate()
        self.model = StudentModel(policy)

    # ==================== Graph Editing ====================

    def add_concept(self, concept: Concept) -> Concept:
        if not concept.id or not concept.name:
            raise ValidationError("Concept id and name are required")
        self.store.save_concept(concept)
        logger.info("Added concept %s (%s)", concept.id, concept.name)
        return concept

    def update_concept(self, concept_id: str, **fields) -> Concept:
        graph = self.store.load_graph()
        updated = graph.update_concept(concept_id, **fields)
        self.store.save_concept(updated, overwrite=True)
        return updated

    def get_concept(self, concept_id: str) -> Concept:
        concept = self.store.get_concept(concept_id)
        if concept is None:
            raise ConceptNotFound(concept_id)
        return concept

    def add_edge(self, source: str, target: str, kind: RelationshipKind,
                 strength: float = 1.0, ai_generated: bool = False,
                 confidence: Optional[float] = None) -> PrerequisiteEdge:
        """Validate against the current graph, then persist."""
        graph = self.store.load_graph()
        edge = graph.add_edge(source, target, kind, strength,
                              ai_generated=ai_generated, confidence=confidence)
        self.store.save_edge(edge)
        logger.info("Added edge %s -[%s]-> %s (%.2f)", source, edge.kind.value, target, strength)
        return edge

    def remove_edge(self, source: str, target: str, kind: RelationshipKind):
        self.store.delete_edge(source, target, kind)
        logger.info("Removed edge %s -[%s]-> %s", source, RelationshipKind(kind).value, target)

    def load_graph(self) -> KnowledgeGraph:
        return self.store.load_graph()

    # ==================== Attempt Ingestion ====================

    def record_attempt(
        self,
        student_id: str,
        concept_id: str,
        is_correct: bool,
        timestamp: Optional[datetime] = None,
        assignment_id: Optional[str] = None,
        question_id: Optional[str] = None,
        class_id: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ) -> AttemptResult:
        """
        Record a graded answer and refresh the pair's snapshot.

        Re-delivering the same attempt_id is a no-op that returns the
        current snapshot.
        """
        if not student_id:
            raise ValidationError("student_id is required")
        if self.store.get_concept(concept_id) is None:
            raise ConceptNotFound(concept_id)

        fields = dict(
            student_id=student_id,
            concept_id=concept_id,
            is_correct=bool(is_correct),
            timestamp=_as_utc(timestamp or utcnow()),
            assignment_id=assignment_id,
            question_id=question_id,
            class_id=class_id,
        )
        if attempt_id:
            fields["attempt_id"] = attempt_id
        attempt = AttemptRecord(**fields)

        update = self.store.record_attempt(attempt, self.model)
        if update is None:
            return AttemptResult(
                snapshot=self.get_snapshot(student_id, concept_id),
                milestone_reached=False,
                first_introduced=False,
                duplicate=True,
            )

        if update.milestone_reached:
            logger.info("Milestone: student %s mastered %s", student_id, concept_id)
        return AttemptResult(
            snapshot=update.snapshot,
            milestone_reached=update.milestone_reached,
            first_introduced=update.first_introduced,
        )

    def rebuild_snapshot(self, student_id: str, concept_id: str) -> MasteryUpdate:
        """Replay the stored history and overwrite the cached snapshot."""
        update = self.model.rebuild(student_id, concept_id, self.store.get_attempts(student_id, concept_id),
                                    stored=self.store.get_snapshot(student_id, concept_id))
        if update is None:
            raise SnapshotNotFound(student_id, concept_id)
        self.store.save_snapshot(update.snapshot)
        return update

    # ==================== Mastery Queries ====================

    def get_snapshot(self, student_id: str, concept_id: str) -> MasterySnapshot:
        snapshot = self.store.get_snapshot(student_id, concept_id)
        if snapshot is None:
            raise SnapshotNotFound(student_id, concept_id)
        return snapshot

    def get_snapshots(self, student_id: str, class_id: Optional[str] = None) -> Dict[str, MasterySnapshot]:
        """
        All of a student's snapshots, optionally limited to a class's concepts.

        Raises SnapshotNotFound when the student has never been assessed.
        """
        snapshots = self.store.get_snapshots(student_id)
        if not snapshots:
            raise SnapshotNotFound(student_id)
        if class_id is not None:
            taught = set(self.store.get_class_concepts(class_id))
            snapshots = {cid: s for cid, s in snapshots.items() if cid in taught}
        return snapshots

    def get_timeline(self, student_id: str, concept_id: str) -> dict:
        """Mastery after every attempt plus per-class progression."""
        snapshot = self.get_snapshot(student_id, concept_id)
        attempts = order_attempts(self.store.get_attempts(student_id, concept_id))
        prefixes = AttemptAggregator(self.policy).fold(attempts)

        history = [
            {
                "date": attempt.timestamp.isoformat(),
                "percent": stats.percent,
                "is_correct": attempt.is_correct,
                "class_id": attempt.class_id,
                "assignment_id": attempt.assignment_id,
            }
            for attempt, stats in zip(attempts, prefixes)
        ]

        by_class: Dict[str, dict] = {}
        for attempt in attempts:
            if attempt.class_id is None:
                continue
            entry = by_class.setdefault(attempt.class_id, {"class_id": attempt.class_id,
                                                           "attempts": 0, "correct": 0})
            entry["attempts"] += 1
            entry["correct"] += int(attempt.is_correct)
            entry["last_assessed"] = attempt.timestamp.isoformat()
        for entry in by_class.values():
            entry["percent"] = round(entry["correct"] / entry["attempts"] * 100, 2)

        return {
            "concept_id": concept_id,
            "concept_name": self.get_concept(concept_id).name,
            "first_introduced": snapshot.first_assessed.isoformat(),
            "current_mastery": snapshot.mastery_percent,
            "trend": snapshot.trend.value,
            "history": history,
            "class_progression": list(by_class.values()),
        }

    # ==================== Graph Queries ====================

    def prerequisite_chain(self, concept_id: str) -> List[dict]:
        """Prerequisites in learning order, each with its hop distance."""
        graph = self.store.load_graph()
        chain = graph.prerequisite_chain(concept_id)
        depths = graph.prerequisite_depths(concept_id)
        return [
            {
                "id": cid,
                "name": graph.concepts[cid].name,
                "subject": graph.concepts[cid].subject,
                "depth": depths[cid],
            }
            for cid in chain
        ]

    def learning_path(self, student_id: str, concept_id: str) -> List[str]:
        graph = self.store.load_graph()
        return graph.get_learning_path(concept_id, self.store.get_snapshots(student_id))

    def student_graph(self, student_id: str, subject: Optional[str] = None,
                      mastery_level: Optional[MasteryLevel] = None) -> dict:
        """
        Knowledge map payload with a position for every node.

        Layout runs over the whole graph, so filtering never moves a node.
        """
        graph = self.store.load_graph()
        viz = graph.get_graph_visualization(self.store.get_snapshots(student_id),
                                            subject=subject, mastery_level=mastery_level)
        positions = compute_layout(graph, self.store.get_positions(student_id))
        for node in viz["nodes"]:
            x, y = positions.get(node["id"], (0.0, 0.0))
            node["position"] = {"x": x, "y": y}
        return viz

    def update_node_position(self, student_id: str, concept_id: str, x: float, y: float):
        self.get_concept(concept_id)
        self.store.set_position(student_id, concept_id, x, y)

    # ==================== Classes & Gaps ====================

    def set_class_concepts(self, class_id: str, concept_ids: List[str]) -> List[str]:
        for concept_id in concept_ids:
            if self.store.get_concept(concept_id) is None:
                raise ConceptNotFound(concept_id)
        self.store.set_class_concepts(class_id, concept_ids)
        return sorted(set(concept_ids))

    def detect_gaps(self, student_id: str, class_id: str, now: Optional[datetime] = None) -> GapReport:
        graph = self.store.load_graph()
        detector = GapDetector(graph, self.policy)
        return detector.detect(
            student_id=student_id,
            snapshots=self.store.get_snapshots(student_id),
            current_concepts=self.store.get_class_concepts(class_id),
            class_id=class_id,
            now=_as_utc(now) if now else None,
        )
