"""
Proof-of-work review: the sub-state machine under `assign`.

assign --submit--> pending-review --approve--> resolved
                                  --reject---> assign

One review is open at a time. On approval the assigned worker is credited
through atomic store counters, and badges are recomputed from the
post-increment totals and only ever raised.
"""

import logging
from datetime import datetime

from .config import PROOF_APPROVAL_POINTS, SCORE_BADGE_THRESHOLDS, TASK_BADGE_THRESHOLDS
from .errors import AlreadyApproved, InvalidTransition, ReviewInProgress
from .models import Issue, IssueStatus, ProofStatus
from .store import IssueStore

logger = logging.getLogger(__name__)


def badge_count(tasks_completed: int, civic_score: int) -> int:
    """Number of task and score thresholds cleared."""
    return (sum(1 for t in TASK_BADGE_THRESHOLDS if tasks_completed >= t)
            + sum(1 for s in SCORE_BADGE_THRESHOLDS if civic_score >= s))


class ProofReview:

    @staticmethod
    def ensure_can_submit(issue: Issue) -> None:
        if issue.status == IssueStatus.PENDING_REVIEW.value:
            raise ReviewInProgress(
                f"issue {issue.id} already has proof under review", issue_id=issue.id)
        if issue.status != IssueStatus.ASSIGN.value:
            raise InvalidTransition(
                f"cannot submit proof for issue {issue.id} in status '{issue.status}'",
                issue_id=issue.id, status=issue.status)

    @staticmethod
    def ensure_reviewable(issue: Issue) -> None:
        if (issue.status == IssueStatus.RESOLVED.value
                and issue.proof_status == ProofStatus.APPROVED.value):
            raise AlreadyApproved(f"proof for issue {issue.id} is already approved", issue_id=issue.id)
        if issue.status != IssueStatus.PENDING_REVIEW.value:
            raise InvalidTransition(
                f"issue {issue.id} has no proof under review (status '{issue.status}')",
                issue_id=issue.id, status=issue.status)

    @staticmethod
    def approval_fields(reviewer: str, at: datetime, credit_pending: bool = False) -> dict:
        return {"status": IssueStatus.RESOLVED.value,
                "proof_status": ProofStatus.APPROVED.value,
                "approved_at": at, "approved_by": reviewer,
                "credit_pending": credit_pending,
                "updated_at": at}

    @staticmethod
    def rejection_fields(reviewer: str, at: datetime) -> dict:
        return {"status": IssueStatus.ASSIGN.value,
                "proof_status": ProofStatus.REJECTED.value,
                "rejected_at": at, "rejected_by": reviewer,
                "updated_at": at}


def credit_worker(store: IssueStore, worker_id: str) -> dict:
    """Credit one approved resolution; returns the worker's updated counters."""
    worker = store.increment_worker_score(worker_id, PROOF_APPROVAL_POINTS, 1)
    badges = badge_count(worker.get("tasks_completed", 0), worker.get("civic_score", 0))
    store.raise_worker_badges(worker_id, badges)
    logger.info("Credited worker %s: score=%s tasks=%s badges>=%s",
                worker_id, worker.get("civic_score"), worker.get("tasks_completed"), badges)
    return {"worker_id": worker_id,
            "civic_score": worker.get("civic_score", 0),
            "tasks_completed": worker.get("tasks_completed", 0),
            "earned_badges": max(worker.get("earned_badges", 0), badges)}
