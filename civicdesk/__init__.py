# Civic issue lifecycle and scoring core

from .errors import (AlreadyApproved, AlreadyAssigned, CivicDeskError, ConflictingTransition,
                     DependencyUnavailable, InvalidTransition, NotFound, ReviewInProgress,
                     WorkerUnavailable)
from .effects import EffectDispatcher, EffectOutcome, TransitionResult
from .escalation import EscalationWorkflow
from .feed import poll_issue_snapshots, rescore_snapshots
from .lifecycle import IssueLifecycle
from .review import ProofReview, credit_worker
from .scoring import ScoringEngine, compute_score, score_departments
from .store import InMemoryStore, IssueStore

__all__ = [
    "AlreadyApproved", "AlreadyAssigned", "CivicDeskError", "ConflictingTransition",
    "DependencyUnavailable", "InvalidTransition", "NotFound", "ReviewInProgress",
    "WorkerUnavailable",
    "EffectDispatcher", "EffectOutcome", "TransitionResult",
    "EscalationWorkflow", "IssueLifecycle", "ProofReview", "credit_worker",
    "ScoringEngine", "compute_score", "score_departments",
    "poll_issue_snapshots", "rescore_snapshots",
    "InMemoryStore", "IssueStore",
]
