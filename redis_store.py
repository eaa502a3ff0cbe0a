"""
Redis Store - durable state for the mastery kernel.

Key Structure ({p} = key prefix):
    {p}:concepts                       -> Hash (concept_id -> JSON concept)
    {p}:edges                          -> Hash ("src|tgt|kind" -> JSON edge)
    {p}:attempts:{student}:{concept}   -> List (JSON attempts, append-only)
    {p}:attempt_ids:{student}:{concept} -> Set (delivered attempt ids)
    {p}:snapshot:{student}:{concept}   -> Hash (MasterySnapshot fields)
    {p}:student:{student}:concepts     -> Set (concepts with a snapshot)
    {p}:class:{class_id}:concepts      -> Set (concepts taught in class)
    {p}:positions:{student}            -> Hash (concept_id -> JSON [x, y])
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import redis

import config
from core.errors import DuplicateConceptError, DuplicateEdgeError, EdgeNotFound
from core.knowledge_graph import KnowledgeGraph
from core.models import AttemptRecord, Concept, MasterySnapshot, PrerequisiteEdge, RelationshipKind
from core.student_model import MasteryUpdate, StudentModel

logger = logging.getLogger(__name__)


class RedisStore:
    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        """Connect to Redis using environment variables unless a client is given."""
        self.client = client if client is not None else redis.Redis(**config.redis_settings())
        self.prefix = prefix or config.key_prefix()

    # ==================== Key Builders ====================

    def _concepts_key(self) -> str:
        return f"{self.prefix}:concepts"

    def _edges_key(self) -> str:
        return f"{self.prefix}:edges"

    def _attempts_key(self, student_id: str, concept_id: str) -> str:
        return f"{self.prefix}:attempts:{student_id}:{concept_id}"

    def _attempt_ids_key(self, student_id: str, concept_id: str) -> str:
        return f"{self.prefix}:attempt_ids:{student_id}:{concept_id}"

    def _snapshot_key(self, student_id: str, concept_id: str) -> str:
        return f"{self.prefix}:snapshot:{student_id}:{concept_id}"

    def _student_concepts_key(self, student_id: str) -> str:
        return f"{self.prefix}:student:{student_id}:concepts"

    def _class_concepts_key(self, class_id: str) -> str:
        return f"{self.prefix}:class:{class_id}:concepts"

    def _positions_key(self, student_id: str) -> str:
        return f"{self.prefix}:positions:{student_id}"

    @staticmethod
    def _edge_field(source: str, target: str, kind: RelationshipKind) -> str:
        return f"{source}|{target}|{RelationshipKind(kind).value}"

    # ==================== Concepts ====================

    def save_concept(self, concept: Concept, overwrite: bool = False):
        """Store a concept. New concepts never replace existing ones."""
        payload = json.dumps(asdict(concept))
        if overwrite:
            self.client.hset(self._concepts_key(), concept.id, payload)
        elif not self.client.hsetnx(self._concepts_key(), concept.id, payload):
            raise DuplicateConceptError(concept.id)

    def get_concept(self, concept_id: str) -> Optional[Concept]:
        raw = self.client.hget(self._concepts_key(), concept_id)
        return Concept(**json.loads(raw)) if raw else None

    def get_concepts(self) -> List[Concept]:
        raw = self.client.hgetall(self._concepts_key())
        return [Concept(**json.loads(v)) for _, v in sorted(raw.items())]

    # ==================== Edges ====================

    def save_edge(self, edge: PrerequisiteEdge):
        """Store an edge; a concurrent writer of the same edge loses."""
        payload = json.dumps({
            "source": edge.source,
            "target": edge.target,
            "kind": edge.kind.value,
            "strength": edge.strength,
            "ai_generated": edge.ai_generated,
            "confidence": edge.confidence,
        })
        field = self._edge_field(edge.source, edge.target, edge.kind)
        if not self.client.hsetnx(self._edges_key(), field, payload):
            raise DuplicateEdgeError(edge.source, edge.target, edge.kind.value)

    def delete_edge(self, source: str, target: str, kind: RelationshipKind):
        if not self.client.hdel(self._edges_key(), self._edge_field(source, target, kind)):
            raise EdgeNotFound(source, target, RelationshipKind(kind).value)

    def get_edges(self) -> List[PrerequisiteEdge]:
        edges = []
        for _, raw in sorted(self.client.hgetall(self._edges_key()).items()):
            data = json.loads(raw)
            edges.append(PrerequisiteEdge(
                source=data["source"],
                target=data["target"],
                kind=RelationshipKind(data["kind"]),
                strength=data["strength"],
                ai_generated=data.get("ai_generated", False),
                confidence=data.get("confidence"),
            ))
        return edges

    def load_graph(self) -> KnowledgeGraph:
        """Rebuild the knowledge graph from stored concepts and edges."""
        return KnowledgeGraph(self.get_concepts(), self.get_edges())

    # ==================== Attempts & Snapshots ====================

    @staticmethod
    def _encode_attempt(attempt: AttemptRecord) -> str:
        data = asdict(attempt)
        data["timestamp"] = attempt.timestamp.isoformat()
        return json.dumps(data)

    @staticmethod
    def _decode_attempt(raw: str) -> AttemptRecord:
        data = json.loads(raw)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return AttemptRecord(**data)

    def record_attempt(self, attempt: AttemptRecord, model: StudentModel) -> Optional[MasteryUpdate]:
        """
        Append an attempt and rebuild its snapshot atomically.

        Runs as a WATCH/MULTI transaction on the pair's own keys, so
        concurrent attempts for the same pair are serialized by retry and
        writes for other pairs never force one.

        Returns:
            The update, or None if this attempt_id was already recorded
            for the pair
        """
        attempts_key = self._attempts_key(attempt.student_id, attempt.concept_id)
        ids_key = self._attempt_ids_key(attempt.student_id, attempt.concept_id)
        snapshot_key = self._snapshot_key(attempt.student_id, attempt.concept_id)

        def apply(pipe) -> Optional[MasteryUpdate]:
            if pipe.sismember(ids_key, attempt.attempt_id):
                return None

            history = [self._decode_attempt(r) for r in pipe.lrange(attempts_key, 0, -1)]
            stored = pipe.hgetall(snapshot_key)
            update = model.rebuild(
                attempt.student_id,
                attempt.concept_id,
                history + [attempt],
                stored=StudentModel.snapshot_from_dict(stored) if stored else None,
            )

            pipe.multi()
            pipe.rpush(attempts_key, self._encode_attempt(attempt))
            pipe.sadd(ids_key, attempt.attempt_id)
            pipe.hset(snapshot_key, mapping=StudentModel.snapshot_to_dict(update.snapshot))
            pipe.sadd(self._student_concepts_key(attempt.student_id), attempt.concept_id)
            return update

        update = self.client.transaction(apply, attempts_key, ids_key, snapshot_key,
                                         value_from_callable=True)
        if update is None:
            logger.info("Attempt %s already recorded, skipping", attempt.attempt_id)
        return update

    def get_attempts(self, student_id: str, concept_id: str) -> List[AttemptRecord]:
        raw = self.client.lrange(self._attempts_key(student_id, concept_id), 0, -1)
        return [self._decode_attempt(r) for r in raw]

    def get_snapshot(self, student_id: str, concept_id: str) -> Optional[MasterySnapshot]:
        data = self.client.hgetall(self._snapshot_key(student_id, concept_id))
        return StudentModel.snapshot_from_dict(data) if data else None

    def get_snapshots(self, student_id: str) -> Dict[str, MasterySnapshot]:
        """All snapshots for a student, keyed by concept id."""
        snapshots = {}
        for concept_id in sorted(self.client.smembers(self._student_concepts_key(student_id))):
            snapshot = self.get_snapshot(student_id, concept_id)
            if snapshot is not None:
                snapshots[concept_id] = snapshot
        return snapshots

    def save_snapshot(self, snapshot: MasterySnapshot):
        """Overwrite a snapshot (used when replaying history)."""
        self.client.hset(
            self._snapshot_key(snapshot.student_id, snapshot.concept_id),
            mapping=StudentModel.snapshot_to_dict(snapshot),
        )
        self.client.sadd(self._student_concepts_key(snapshot.student_id), snapshot.concept_id)

    # ==================== Classes ====================

    def set_class_concepts(self, class_id: str, concept_ids: List[str]):
        """Replace the set of concepts currently taught in a class."""
        key = self._class_concepts_key(class_id)
        pipe = self.client.pipeline()
        pipe.delete(key)
        if concept_ids:
            pipe.sadd(key, *concept_ids)
        pipe.execute()

    def get_class_concepts(self, class_id: str) -> List[str]:
        return sorted(self.client.smembers(self._class_concepts_key(class_id)))

    # ==================== Node Positions ====================

    def set_position(self, student_id: str, concept_id: str, x: float, y: float):
        self.client.hset(self._positions_key(student_id), concept_id, json.dumps([x, y]))

    def get_positions(self, student_id: str) -> Dict[str, Tuple[float, float]]:
        raw = self.client.hgetall(self._positions_key(student_id))
        return {cid: tuple(json.loads(v)) for cid, v in raw.items()}
