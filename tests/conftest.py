from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from core.knowledge_graph import KnowledgeGraph
from core.models import Concept, MasterySnapshot, RelationshipKind, TrendDirection
from mastery_service import MasteryService
from redis_store import RedisStore

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def algebra_concepts():
    return [
        Concept("variables", "Variables & Expressions", "math", "7"),
        Concept("linear_eq", "Linear Equations", "math", "8"),
        Concept("systems", "Systems of Equations", "math", "9"),
        Concept("quadratics", "Quadratic Equations", "math", "9"),
    ]


@pytest.fixture
def algebra_graph(algebra_concepts):
    """
    variables -[prerequisite]-> linear_eq -[prerequisite]-> systems
    variables -[prerequisite]-> quadratics
    linear_eq -[builds_upon]-> quadratics
    systems   -[related]-> quadratics
    """
    kg = KnowledgeGraph(algebra_concepts)
    kg.add_edge("variables", "linear_eq", RelationshipKind.PREREQUISITE, 1.0)
    kg.add_edge("linear_eq", "systems", RelationshipKind.PREREQUISITE, 0.9)
    kg.add_edge("variables", "quadratics", RelationshipKind.PREREQUISITE, 0.8)
    kg.add_edge("linear_eq", "quadratics", RelationshipKind.BUILDS_UPON, 0.6)
    kg.add_edge("systems", "quadratics", RelationshipKind.RELATED, 0.3)
    return kg


@pytest.fixture
def store():
    client = fakeredis.FakeRedis(decode_responses=True)
    return RedisStore(client=client, prefix="test")


@pytest.fixture
def service(store, algebra_concepts):
    svc = MasteryService(store)
    for concept in algebra_concepts:
        svc.add_concept(concept)
    svc.add_edge("variables", "linear_eq", "prerequisite", 1.0)
    svc.add_edge("linear_eq", "systems", "prerequisite", 0.9)
    return svc


def make_snapshot(concept_id, percent, level, last_assessed, attempts=5, student_id="s1"):
    """Build a snapshot directly, bypassing attempt history."""
    correct = round(attempts * percent / 100)
    return MasterySnapshot(
        student_id=student_id,
        concept_id=concept_id,
        total_attempts=attempts,
        correct_attempts=correct,
        incorrect_attempts=attempts - correct,
        mastery_percent=percent,
        mastery_level=level,
        trend=TrendDirection.STABLE,
        previous_percent=None,
        first_assessed=last_assessed - timedelta(days=30),
        last_assessed=last_assessed,
    )


@pytest.fixture
def snapshot_factory():
    return make_snapshot
