"""
FastAPI Backend for the concept mastery service.

Endpoints:
    POST   /concepts                          - Create a concept
    GET    /concepts/{id}                     - Get a concept
    PATCH  /concepts/{id}                     - Rename / edit metadata
    GET    /concepts/{id}/prerequisites       - Prerequisite chain
    POST   /edges                             - Add a relationship
    DELETE /edges                             - Remove a relationship
    POST   /attempts                          - Record a graded answer
    GET    /mastery/{student_id}              - Snapshots (optionally one concept / class)
    GET    /timeline/{student_id}/{concept}   - Mastery history for one concept
    PUT    /classes/{class_id}/concepts       - Concepts currently taught in a class
    GET    /gaps/{student_id}/{class_id}      - Ranked knowledge gaps
    GET    /learning-path/{student_id}/{id}   - Weak prerequisites in study order
    GET    /graph/{student_id}                - Knowledge map with layout (subject / level filters)
    PATCH  /node-position                     - Save a hand-placed node position
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import config
from core.errors import (
    CycleDetected,
    DuplicateConceptError,
    DuplicateEdgeError,
    MasteryError,
    NotFoundError,
    ValidationError,
)
from core.models import Concept, KnowledgeGap, MasteryLevel, MasterySnapshot, RelationshipKind
from mastery_service import MasteryService
from redis_store import RedisStore

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ==================== Initialize ====================

app = FastAPI(
    title="Concept Mastery API",
    description="Concept mastery tracking, prerequisite graphs and knowledge gaps",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = MasteryService(RedisStore(), config.mastery_policy())


def get_service() -> MasteryService:
    return service


# ==================== Error Mapping ====================

def status_for(error: MasteryError) -> int:
    if isinstance(error, (DuplicateEdgeError, DuplicateConceptError, CycleDetected)):
        return 409
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 500


@app.exception_handler(MasteryError)
async def mastery_error_handler(request: Request, exc: MasteryError):
    status = status_for(exc)
    logger.info("%s %s -> %d %s", request.method, request.url.path, status, exc.code)
    body = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, CycleDetected):
        body["cycle"] = exc.cycle
    return JSONResponse(status_code=status, content=body)


# ==================== Request/Response Models ====================

class ConceptIn(BaseModel):
    id: str
    name: str
    subject: str = ""
    grade_level: Optional[str] = None
    description: str = ""


class ConceptPatch(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    grade_level: Optional[str] = None
    description: Optional[str] = None


class EdgeIn(BaseModel):
    source: str
    target: str
    kind: RelationshipKind = RelationshipKind.PREREQUISITE
    strength: float = 1.0
    ai_generated: bool = False
    confidence: Optional[float] = None


class EdgeRef(BaseModel):
    source: str
    target: str
    kind: RelationshipKind = RelationshipKind.PREREQUISITE


class AttemptIn(BaseModel):
    student_id: str
    concept_id: str
    is_correct: bool
    timestamp: Optional[datetime] = None
    assignment_id: Optional[str] = None
    question_id: Optional[str] = None
    class_id: Optional[str] = None
    attempt_id: Optional[str] = None


class SnapshotOut(BaseModel):
    student_id: str
    concept_id: str
    total_attempts: int
    correct_attempts: int
    incorrect_attempts: int
    mastery_percent: float
    mastery_level: str
    trend: str
    previous_percent: Optional[float] = None
    first_assessed: datetime
    last_assessed: datetime
    mastered_at: Optional[datetime] = None


class AttemptOut(BaseModel):
    snapshot: SnapshotOut
    milestone_reached: bool
    first_introduced: bool
    duplicate: bool


class ClassConceptsIn(BaseModel):
    concept_ids: List[str]


class GapOut(BaseModel):
    concept_id: str
    concept_name: str
    current_mastery: Optional[float] = None
    days_since_practiced: Optional[int] = None
    severity: str
    recommendation: str
    is_prerequisite: bool


class GapReportOut(BaseModel):
    student_id: str
    class_id: Optional[str] = None
    gaps: List[GapOut]
    total_gaps: int
    critical_gaps: int
    moderate_gaps: int


class NodePositionIn(BaseModel):
    student_id: str
    concept_id: str
    x: float
    y: float


class GraphStateResponse(BaseModel):
    nodes: list
    edges: list
    metadata: dict = Field(default_factory=dict)


# ==================== Helper Functions ====================

def snapshot_out(snapshot: MasterySnapshot) -> SnapshotOut:
    return SnapshotOut(
        student_id=snapshot.student_id,
        concept_id=snapshot.concept_id,
        total_attempts=snapshot.total_attempts,
        correct_attempts=snapshot.correct_attempts,
        incorrect_attempts=snapshot.incorrect_attempts,
        mastery_percent=snapshot.mastery_percent,
        mastery_level=snapshot.mastery_level.value,
        trend=snapshot.trend.value,
        previous_percent=snapshot.previous_percent,
        first_assessed=snapshot.first_assessed,
        last_assessed=snapshot.last_assessed,
        mastered_at=snapshot.mastered_at,
    )


def gap_out(gap: KnowledgeGap) -> GapOut:
    return GapOut(
        concept_id=gap.concept_id,
        concept_name=gap.concept_name,
        current_mastery=gap.current_mastery,
        days_since_practiced=gap.days_since_practiced,
        severity=gap.severity.value,
        recommendation=gap.recommendation,
        is_prerequisite=gap.is_prerequisite,
    )


# ==================== Endpoints ====================

@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Concept mastery API is running"}


@app.post("/concepts", status_code=201)
def create_concept(request: ConceptIn, svc: MasteryService = Depends(get_service)):
    concept = svc.add_concept(Concept(**request.model_dump()))
    return asdict(concept)


@app.get("/concepts/{concept_id}")
def get_concept(concept_id: str, svc: MasteryService = Depends(get_service)):
    return asdict(svc.get_concept(concept_id))


@app.patch("/concepts/{concept_id}")
def update_concept(concept_id: str, request: ConceptPatch, svc: MasteryService = Depends(get_service)):
    fields = request.model_dump(exclude_none=True)
    return asdict(svc.update_concept(concept_id, **fields))


@app.get("/concepts/{concept_id}/prerequisites")
def get_prerequisites(concept_id: str, svc: MasteryService = Depends(get_service)):
    """Prerequisite chain, furthest prerequisite first."""
    return {"concept_id": concept_id, "prerequisites": svc.prerequisite_chain(concept_id)}


@app.post("/edges", status_code=201)
def create_edge(request: EdgeIn, svc: MasteryService = Depends(get_service)):
    edge = svc.add_edge(request.source, request.target, request.kind, request.strength,
                        ai_generated=request.ai_generated, confidence=request.confidence)
    return {
        "source": edge.source,
        "target": edge.target,
        "kind": edge.kind.value,
        "strength": edge.strength,
    }


@app.delete("/edges")
def delete_edge(request: EdgeRef, svc: MasteryService = Depends(get_service)):
    svc.remove_edge(request.source, request.target, request.kind)
    return {"status": "deleted"}


@app.post("/attempts", response_model=AttemptOut)
def record_attempt(request: AttemptIn, svc: MasteryService = Depends(get_service)):
    """
    Record a graded answer.

    milestone_reached is True only on the attempt that first brings the
    student to MASTERED; delivering the notification is up to the caller.
    """
    result = svc.record_attempt(**request.model_dump())
    return AttemptOut(
        snapshot=snapshot_out(result.snapshot),
        milestone_reached=result.milestone_reached,
        first_introduced=result.first_introduced,
        duplicate=result.duplicate,
    )


@app.get("/mastery/{student_id}")
def get_mastery(student_id: str, concept_id: Optional[str] = None,
                class_id: Optional[str] = None, svc: MasteryService = Depends(get_service)):
    """404 means never assessed, which is different from 0%."""
    if concept_id is not None:
        return {"snapshots": [snapshot_out(svc.get_snapshot(student_id, concept_id))]}
    snapshots = svc.get_snapshots(student_id, class_id)
    return {"snapshots": [snapshot_out(s) for s in snapshots.values()]}


@app.get("/timeline/{student_id}/{concept_id}")
def get_timeline(student_id: str, concept_id: str, svc: MasteryService = Depends(get_service)):
    return svc.get_timeline(student_id, concept_id)


@app.put("/classes/{class_id}/concepts")
def set_class_concepts(class_id: str, request: ClassConceptsIn, svc: MasteryService = Depends(get_service)):
    return {"class_id": class_id, "concept_ids": svc.set_class_concepts(class_id, request.concept_ids)}


@app.get("/gaps/{student_id}/{class_id}", response_model=GapReportOut)
def get_gaps(student_id: str, class_id: str, svc: MasteryService = Depends(get_service)):
    report = svc.detect_gaps(student_id, class_id)
    return GapReportOut(
        student_id=report.student_id,
        class_id=report.class_id,
        gaps=[gap_out(g) for g in report.gaps],
        total_gaps=report.total_gaps,
        critical_gaps=report.critical_gaps,
        moderate_gaps=report.moderate_gaps,
    )


@app.get("/learning-path/{student_id}/{concept_id}")
def get_learning_path(student_id: str, concept_id: str, svc: MasteryService = Depends(get_service)):
    return {"concept_id": concept_id, "path": svc.learning_path(student_id, concept_id)}


@app.get("/graph/{student_id}", response_model=GraphStateResponse)
def get_graph_state(student_id: str, subject: Optional[str] = None,
                    mastery_level: Optional[MasteryLevel] = None,
                    svc: MasteryService = Depends(get_service)):
    """
    Get the student's knowledge map.

    Nodes carry mastery level, colour and a layout position. subject and
    mastery_level narrow the map; metadata counts only the kept nodes.
    """
    viz = svc.student_graph(student_id, subject=subject, mastery_level=mastery_level)
    return GraphStateResponse(nodes=viz["nodes"], edges=viz["edges"], metadata=viz["metadata"])


@app.patch("/node-position")
def update_node_position(request: NodePositionIn, svc: MasteryService = Depends(get_service)):
    svc.update_node_position(request.student_id, request.concept_id, request.x, request.y)
    return {"success": True, "message": "Position updated"}


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
