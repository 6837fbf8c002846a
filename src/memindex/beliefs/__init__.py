"""memindex belief graph — beliefs, projects, sessions and the error/solution log."""

from memindex.beliefs.extraction import import_beliefs, parse_belief_payload
from memindex.beliefs.solutions import SolutionLog
from memindex.beliefs.store import (
    PREDICATES,
    BeliefObservation,
    BeliefStore,
    belief_id,
    detect_project,
    strength_for,
)

__all__ = [
    "PREDICATES",
    "BeliefObservation",
    "BeliefStore",
    "SolutionLog",
    "belief_id",
    "detect_project",
    "import_beliefs",
    "parse_belief_payload",
    "strength_for",
]
