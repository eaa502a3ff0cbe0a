"""
Errors raised by the mastery kernel.

Every error carries a stable ``code`` so the API layer can map it to a
response without string matching.
"""

from typing import List, Optional


class MasteryError(Exception):
    """Base class for all kernel errors."""

    code = "mastery_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ==================== Validation ====================

class ValidationError(MasteryError):
    """A mutation was rejected before anything was written."""

    code = "validation_error"


class SelfLoopError(ValidationError):
    code = "self_loop"

    def __init__(self, concept_id: str):
        super().__init__(f"Concept '{concept_id}' cannot be related to itself")
        self.concept_id = concept_id


class DuplicateEdgeError(ValidationError):
    code = "duplicate_edge"

    def __init__(self, source: str, target: str, kind: str):
        super().__init__(f"Edge {source} -[{kind}]-> {target} already exists")
        self.source = source
        self.target = target
        self.kind = kind


class DuplicateConceptError(ValidationError):
    code = "duplicate_concept"

    def __init__(self, concept_id: str):
        super().__init__(f"Concept '{concept_id}' already exists")
        self.concept_id = concept_id


# ==================== Not Found ====================

class NotFoundError(MasteryError):
    code = "not_found"


class ConceptNotFound(NotFoundError):
    code = "concept_not_found"

    def __init__(self, concept_id: str):
        super().__init__(f"Concept '{concept_id}' does not exist")
        self.concept_id = concept_id


class EdgeNotFound(NotFoundError):
    code = "edge_not_found"

    def __init__(self, source: str, target: str, kind: str):
        super().__init__(f"Edge {source} -[{kind}]-> {target} does not exist")


class SnapshotNotFound(NotFoundError):
    """The student has never been assessed on the concept."""

    code = "snapshot_not_found"

    def __init__(self, student_id: str, concept_id: Optional[str] = None):
        if concept_id is None:
            message = f"Student '{student_id}' has no mastery data"
        else:
            message = f"Student '{student_id}' has no mastery data for '{concept_id}'"
        super().__init__(message)
        self.student_id = student_id
        self.concept_id = concept_id


# ==================== Graph Structure ====================

class CycleDetected(MasteryError):
    """Prerequisite edges form a cycle, so no learning order exists."""

    code = "cycle_detected"

    def __init__(self, cycle: List[str]):
        path = " -> ".join(cycle)
        super().__init__(f"Prerequisite cycle detected: {path}")
        self.cycle = cycle
