"""
Knowledge Graph - Manages the typed concept relationship graph.

Features:
    - Concepts as nodes, relationships as typed, weighted edges
    - Prerequisite chains in learning order (furthest prerequisite first)
    - Cycle detection at read time instead of trusting writes
    - Mastery-based visualization payload
"""

import logging
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import networkx as nx

from .errors import (
    ConceptNotFound,
    CycleDetected,
    DuplicateConceptError,
    DuplicateEdgeError,
    EdgeNotFound,
    SelfLoopError,
    ValidationError,
)
from .models import Concept, MasteryLevel, MasterySnapshot, PrerequisiteEdge, RelationshipKind

logger = logging.getLogger(__name__)

# DFS colours
_WHITE, _GRAY, _BLACK = 0, 1, 2

LEVEL_COLORS = {
    MasteryLevel.NOT_STARTED: "#c8d6e5",
    MasteryLevel.INTRODUCED: "#ff6b6b",
    MasteryLevel.DEVELOPING: "#feca57",
    MasteryLevel.PROFICIENT: "#48dbfb",
    MasteryLevel.MASTERED: "#5cd85c",
    MasteryLevel.EXPERT: "#1dd1a1",
}


class KnowledgeGraph:
    """
    Directed multigraph of concepts.

    Edge keys are RelationshipKind values, so the same pair of concepts
    can be linked once per kind:
        A -[prerequisite]-> B
        A -[related]-> B
    """

    def __init__(self, concepts: Iterable[Concept] = (), edges: Iterable[PrerequisiteEdge] = ()):
        self.graph = nx.MultiDiGraph()
        self.concepts: Dict[str, Concept] = {}

        for concept in concepts:
            self.add_concept(concept)
        for edge in edges:
            self.add_edge(edge.source, edge.target, edge.kind, edge.strength,
                          ai_generated=edge.ai_generated, confidence=edge.confidence)

    # ==================== Concepts ====================

    def add_concept(self, concept: Concept) -> Concept:
        if concept.id in self.concepts:
            raise DuplicateConceptError(concept.id)
        self.concepts[concept.id] = concept
        self.graph.add_node(concept.id, subject=concept.subject)
        return concept

    def update_concept(self, concept_id: str, **fields) -> Concept:
        """Rename or edit metadata. The id itself is immutable."""
        current = self.get_concept(concept_id)
        if "id" in fields and fields["id"] != concept_id:
            raise ValidationError("Concept id cannot be changed")
        unknown = set(fields) - {f.name for f in dataclass_fields(Concept)}
        if unknown:
            raise ValidationError(f"Unknown concept fields: {', '.join(sorted(unknown))}")
        if "name" in fields and not fields["name"]:
            raise ValidationError("Concept name cannot be empty")
        updated = replace(current, **fields)
        self.concepts[concept_id] = updated
        self.graph.nodes[concept_id]["subject"] = updated.subject
        return updated

    def get_concept(self, concept_id: str) -> Concept:
        concept = self.concepts.get(concept_id)
        if concept is None:
            raise ConceptNotFound(concept_id)
        return concept

    def has_concept(self, concept_id: str) -> bool:
        return concept_id in self.concepts

    # ==================== Edges ====================

    def add_edge(self, source: str, target: str, kind: RelationshipKind,
                 strength: float = 1.0, ai_generated: bool = False,
                 confidence: Optional[float] = None) -> PrerequisiteEdge:
        """
        Add a typed edge. All checks run before the graph is touched.

        Cycles are not rejected here; prerequisite_chain() and
        topological_order() detect them when read.
        """
        kind = RelationshipKind(kind)
        if source == target:
            raise SelfLoopError(source)
        for concept_id in (source, target):
            if concept_id not in self.concepts:
                raise ConceptNotFound(concept_id)
        if not 0.0 < strength <= 1.0:
            raise ValidationError(f"Edge strength must be in (0, 1], got {strength}")
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValidationError(f"Edge confidence must be in [0, 1], got {confidence}")
        if self.graph.has_edge(source, target, key=kind):
            raise DuplicateEdgeError(source, target, kind.value)

        self.graph.add_edge(source, target, key=kind, strength=strength,
                            ai_generated=ai_generated, confidence=confidence)
        return PrerequisiteEdge(source, target, kind, strength, ai_generated, confidence)

    def remove_edge(self, source: str, target: str, kind: RelationshipKind):
        kind = RelationshipKind(kind)
        if not self.graph.has_edge(source, target, key=kind):
            raise EdgeNotFound(source, target, kind.value)
        self.graph.remove_edge(source, target, key=kind)

    def get_edges(self) -> List[PrerequisiteEdge]:
        edges = [self._edge(u, v, k, data) for u, v, k, data in self.graph.edges(keys=True, data=True)]
        return sorted(edges, key=lambda e: (e.source, e.target, e.kind.value))

    def outgoing_by_kind(self, concept_id: str, kind: RelationshipKind) -> List[PrerequisiteEdge]:
        """Direct successors along one relationship kind."""
        self.get_concept(concept_id)
        kind = RelationshipKind(kind)
        edges = [
            self._edge(u, v, k, data)
            for u, v, k, data in self.graph.out_edges(concept_id, keys=True, data=True)
            if k == kind
        ]
        return sorted(edges, key=lambda e: e.target)

    def incoming_by_kind(self, concept_id: str, kind: RelationshipKind) -> List[PrerequisiteEdge]:
        """Direct predecessors along one relationship kind."""
        self.get_concept(concept_id)
        kind = RelationshipKind(kind)
        edges = [
            self._edge(u, v, k, data)
            for u, v, k, data in self.graph.in_edges(concept_id, keys=True, data=True)
            if k == kind
        ]
        return sorted(edges, key=lambda e: e.source)

    def direct_prerequisites(self, concept_id: str) -> List[str]:
        """Immediate prerequisites only (one level up)."""
        return [e.source for e in self.incoming_by_kind(concept_id, RelationshipKind.PREREQUISITE)]

    # ==================== Prerequisite Traversal ====================

    def prerequisite_chain(self, concept_id: str) -> List[str]:
        """
        Everything that must be learned before concept_id, furthest first.

        Iterative three-colour DFS over reversed prerequisite edges. The
        post-order puts every prerequisite before the concepts needing it.
        Raises CycleDetected instead of looping forever.
        """
        self.get_concept(concept_id)

        color = {concept_id: _GRAY}
        path = [concept_id]
        stack = [(concept_id, iter(self._prereq_sources(concept_id)))]
        order: List[str] = []

        while stack:
            node, pending = stack[-1]
            nxt = next(pending, None)

            if nxt is None:
                stack.pop()
                path.pop()
                color[node] = _BLACK
                order.append(node)
                continue

            state = color.get(nxt, _WHITE)
            if state == _GRAY:
                cycle = path[path.index(nxt):] + [nxt]
                cycle.reverse()  # Report in prerequisite direction
                logger.warning("Prerequisite cycle while tracing %s: %s", concept_id, cycle)
                raise CycleDetected(cycle)
            if state == _WHITE:
                color[nxt] = _GRAY
                path.append(nxt)
                stack.append((nxt, iter(self._prereq_sources(nxt))))

        order.pop()  # The concept itself finishes last
        return order

    def prerequisite_depths(self, concept_id: str) -> Dict[str, int]:
        """Shortest number of prerequisite hops to each chain member."""
        self.get_concept(concept_id)
        depths = {concept_id: 0}
        frontier = [concept_id]

        while frontier:
            next_frontier = []
            for node in frontier:
                for prereq in self._prereq_sources(node):
                    if prereq not in depths:
                        depths[prereq] = depths[node] + 1
                        next_frontier.append(prereq)
            frontier = next_frontier

        del depths[concept_id]
        return depths

    def topological_order(self) -> List[str]:
        """All concepts ordered by prerequisite edges (ties by id)."""
        prereq_graph = self._prerequisite_subgraph()
        try:
            return list(nx.lexicographical_topological_sort(prereq_graph))
        except nx.NetworkXUnfeasible:
            cycle = self.find_cycle() or []
            logger.warning("Prerequisite graph is not a DAG: %s", cycle)
            raise CycleDetected(cycle)

    def find_cycle(self) -> Optional[List[str]]:
        """One prerequisite cycle as a closed path, or None for a DAG."""
        try:
            edges = nx.find_cycle(self._prerequisite_subgraph())
        except nx.NetworkXNoCycle:
            return None
        return [u for u, _ in edges] + [edges[0][0]]

    def get_learning_path(self, target_concept: str,
                          snapshots: Dict[str, MasterySnapshot]) -> List[str]:
        """
        Prerequisites of target (and target itself) still below PROFICIENT,
        in the order they should be studied.
        """
        chain = self.prerequisite_chain(target_concept) + [target_concept]

        def is_weak(cid: str) -> bool:
            snap = snapshots.get(cid)
            return snap is None or snap.mastery_level < MasteryLevel.PROFICIENT

        return [c for c in chain if is_weak(c)]

    # ==================== Visualization ====================

    def get_graph_visualization(self, snapshots: Dict[str, MasterySnapshot],
                                subject: Optional[str] = None,
                                mastery_level: Optional[MasteryLevel] = None) -> dict:
        """
        Generate nodes and edges for frontend visualization.

        Optional filters keep one subject and/or one mastery level. An edge
        is kept only when both ends are, and metadata counts kept nodes.
        """
        if mastery_level is not None:
            mastery_level = MasteryLevel(mastery_level)

        nodes = []
        for concept_id in sorted(self.concepts):
            concept = self.concepts[concept_id]
            snap = snapshots.get(concept_id)
            level = snap.mastery_level if snap else MasteryLevel.NOT_STARTED
            if subject is not None and concept.subject != subject:
                continue
            if mastery_level is not None and level != mastery_level:
                continue

            nodes.append({
                "id": concept_id,
                "label": concept.name,
                "subject": concept.subject,
                "mastery": snap.mastery_percent if snap else 0.0,
                "mastery_level": level.value,
                "trend": snap.trend.value if snap else None,
                "color": LEVEL_COLORS[level],
                "first_learned": snap.first_assessed.isoformat() if snap else None,
                "last_practiced": snap.last_assessed.isoformat() if snap else None,
                "attempt_stats": {
                    "total": snap.total_attempts if snap else 0,
                    "correct": snap.correct_attempts if snap else 0,
                    "incorrect": snap.incorrect_attempts if snap else 0,
                },
            })

        kept = {n["id"] for n in nodes}
        edges = [
            {
                "source": e.source,
                "target": e.target,
                "type": e.kind.value,
                "label": e.kind.label,
                "strength": e.strength,
                "ai_generated": e.ai_generated,
                "confidence": e.confidence,
            }
            for e in self.get_edges()
            if e.source in kept and e.target in kept
        ]

        levels = [MasteryLevel(n["mastery_level"]) for n in nodes]
        metadata = {
            "total_concepts": len(nodes),
            "mastered_concepts": sum(1 for lv in levels if lv >= MasteryLevel.MASTERED),
            "in_progress_concepts": sum(
                1 for lv in levels if lv in (MasteryLevel.DEVELOPING, MasteryLevel.PROFICIENT)
            ),
            "not_started_concepts": sum(1 for lv in levels if lv == MasteryLevel.NOT_STARTED),
            "overall_progress": (
                round(sum(n["mastery"] for n in nodes) / len(nodes), 2) if nodes else 0.0
            ),
        }

        return {"nodes": nodes, "edges": edges, "metadata": metadata}

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get graph statistics."""
        kinds = {kind.value: 0 for kind in RelationshipKind}
        for _, _, kind in self.graph.edges(keys=True):
            kinds[kind.value] += 1

        subjects: Dict[str, int] = {}
        for concept in self.concepts.values():
            subjects[concept.subject] = subjects.get(concept.subject, 0) + 1

        cycle = self.find_cycle()
        return {
            "total_concepts": len(self.concepts),
            "total_edges": self.graph.number_of_edges(),
            "edges_by_kind": kinds,
            "concepts_per_subject": subjects,
            "is_dag": cycle is None,
            "max_depth": (
                nx.dag_longest_path_length(self._prerequisite_subgraph())
                if cycle is None and self.concepts else 0
            ),
        }

    # ==================== Internals ====================

    def _prereq_sources(self, concept_id: str) -> List[str]:
        return sorted(
            u for u, _, k in self.graph.in_edges(concept_id, keys=True)
            if k == RelationshipKind.PREREQUISITE
        )

    def _prerequisite_subgraph(self) -> nx.DiGraph:
        sub = nx.DiGraph()
        sub.add_nodes_from(self.graph.nodes)
        sub.add_edges_from(
            (u, v) for u, v, k in self.graph.edges(keys=True)
            if k == RelationshipKind.PREREQUISITE
        )
        return sub

    @staticmethod
    def _edge(source: str, target: str, kind: RelationshipKind, data: dict) -> PrerequisiteEdge:
        return PrerequisiteEdge(
            source=source,
            target=target,
            kind=kind,
            strength=data.get("strength", 1.0),
            ai_generated=data.get("ai_generated", False),
            confidence=data.get("confidence"),
        )
