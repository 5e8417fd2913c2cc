"""
Issue lifecycle: the primary `status` state machine.

    pending --assign--> assign --submit proof--> pending-review --approve--> resolved
                          ^                            |                        |
                          +---------- reject ----------+                     reopen
                          ^                                                     v
                          +------------------- resume ------------------- reopened

Each operation reads the latest document, validates the transition, then
commits with a conditional write that re-checks the precondition it
validated. Worker credit for an approved proof is settled right after that
write and fails loudly; the remaining effects (post mirroring, worker load,
disclosure posts) are dispatched best-effort once the write succeeds.
"""

import logging
from typing import Callable, List, Optional, Union

from .config import DEPARTMENTS_BY_ID, department_name, new_id, now_utc
from .effects import (Effect, EffectDispatcher, TransitionResult, disclosure_post, mirror_post,
                      worker_load)
from .errors import (AlreadyAssigned, DependencyUnavailable, InvalidTransition, NotFound,
                     WorkerUnavailable)
from .models import (AuditEntry, DisclosureTag, Issue, IssueStatus, PostKind, PostStatus, Priority,
                     ProofOfWork, issue_from_doc, worker_from_doc)
from .review import ProofReview, credit_worker
from .store import IssueStore

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = (IssueStatus.PENDING.value, IssueStatus.ASSIGN.value, IssueStatus.REOPENED.value)


class TransitionEngine:
    """Shared read / conditional-commit / dispatch cycle for issue transitions."""

    def __init__(self, store: IssueStore, clock: Callable = now_utc):
        self.store = store
        self.clock = clock
        self.dispatcher = EffectDispatcher(store)

    def load(self, issue_id: str) -> Issue:
        return issue_from_doc(self.store.get_issue(issue_id))

    def _commit(self, issue: Issue, fields: dict, expected: dict, actor: str,
                push: Optional[dict] = None) -> Issue:
        push = dict(push or {})
        if "status" in fields:
            push["status_history"] = {"status": fields["status"],
                                      "timestamp": fields.get("updated_at") or self.clock(),
                                      "updated_by": actor}
        doc = self.store.update_issue(issue.id, fields, expected, push=push)
        return issue_from_doc(doc)

    def _finish(self, issue: Issue, effects: List[Effect]) -> TransitionResult:
        return TransitionResult(issue=issue, effects=self.dispatcher.dispatch(issue, effects))

    @staticmethod
    def _mirror(issue: Issue, status: PostStatus) -> List[Effect]:
        if not issue.original_post_id:
            return []
        return [mirror_post(issue.original_post_id, status.value)]


def issue_reference(code: str, year: int, seq: int) -> str:
    return f"{code}-{year}-{seq:06d}"


class IssueLifecycle(TransitionEngine):

    def report_issue(self, title: str, description: str, department: str,
                     priority: str = Priority.MEDIUM.value, location: Optional[str] = None,
                     reported_by: Optional[str] = None, author_name: Optional[str] = None,
                     media_url: Optional[str] = None, with_post: bool = True) -> Issue:
        """Create an issue in `pending`, optionally with the citizen post that mirrors it."""
        dept = DEPARTMENTS_BY_ID.get(department)
        if dept is None:
            raise ValueError(f"unknown department '{department}'")
        at = self.clock()
        issue = Issue(id=new_id(), title=title, description=description, location=location,
                      department=department, priority=priority, reported_by=reported_by,
                      status_history=[AuditEntry(status=IssueStatus.PENDING.value, timestamp=at,
                                                 updated_by=reported_by or "citizen")],
                      created_at=at, updated_at=at)
        seq = self.store.next_sequence(f"issue:{dept['code']}")
        issue.reference = issue_reference(dept["code"], at.year, seq)

        if with_post:
            issue.original_post_id = self.store.create_post({
                "kind": PostKind.CITIZEN.value,
                "user_id": reported_by,
                "author_name": author_name or reported_by or "anonymous",
                "department": department,
                "issue_id": issue.id,
                "status": PostStatus.PENDING.value,
                "content": f"{title}\n\n{description}".strip(),
                "media_url": media_url,
                "likes": [],
                "is_resolved": False,
                "is_escalated": False,
                "created_at": at,
            })

        doc = issue.model_dump(exclude={"id"})
        doc["_id"] = issue.id
        self.store.insert_issue(doc)
        logger.info("Issue %s (%s) reported for %s", issue.reference, issue.id, department)
        return issue

    def assign_task(self, issue_id: str, worker_id: str, actor: str) -> TransitionResult:
        issue = self.load(issue_id)
        if issue.assigned_personnel is not None:
            raise AlreadyAssigned(
                f"issue {issue_id} is already assigned to {issue.assigned_personnel.name}",
                issue_id=issue_id, worker_id=issue.assigned_personnel.id)
        if issue.status not in ASSIGNABLE_STATUSES:
            raise InvalidTransition(f"cannot assign issue {issue_id} in status '{issue.status}'",
                                    issue_id=issue_id, status=issue.status)
        worker = worker_from_doc(self.store.get_worker(worker_id))
        if not worker.active:
            raise WorkerUnavailable(f"worker {worker_id} is not active", worker_id=worker_id)

        at = self.clock()
        fields = {"status": IssueStatus.ASSIGN.value,
                  "assigned_personnel": worker.as_personnel().model_dump(),
                  "updated_at": at}
        updated = self._commit(issue, fields,
                               {"status": issue.status, "assigned_personnel": None}, actor)
        logger.info("Issue %s assigned to worker %s by %s", issue_id, worker_id, actor)
        effects = self._mirror(updated, PostStatus.ASSIGNED) + [worker_load(worker_id, 1)]
        return self._finish(updated, effects)

    def submit_proof_of_work(self, issue_id: str, evidence: Union[ProofOfWork, dict],
                             actor: str) -> TransitionResult:
        if not isinstance(evidence, ProofOfWork):
            evidence = ProofOfWork.model_validate(evidence)
        issue = self.load(issue_id)
        ProofReview.ensure_can_submit(issue)

        at = self.clock()
        fields = {"status": IssueStatus.PENDING_REVIEW.value,
                  "proof_status": "pending",
                  "updated_at": at}
        updated = self._commit(issue, fields, {"status": IssueStatus.ASSIGN.value}, actor,
                               push={"proof_of_work": evidence.model_dump()})
        logger.info("Proof submitted for issue %s by %s", issue_id, actor)
        # citizen post stays at 'assigned' until the proof is reviewed
        return self._finish(updated, [])

    def approve_proof(self, issue_id: str, reviewer: str) -> TransitionResult:
        """
        Approve the proof under review and credit the assigned worker.

        The approval write marks the credit as pending. If the credit write
        then fails, DependencyUnavailable propagates and the marker stays
        set; approving again settles the credit and runs the effects instead
        of raising AlreadyApproved.
        """
        issue = self.load(issue_id)
        if issue.credit_pending:
            logger.info("Settling pending worker credit for approved issue %s", issue_id)
            updated = issue
        else:
            ProofReview.ensure_reviewable(issue)
            at = self.clock()
            fields = ProofReview.approval_fields(reviewer, at,
                                                 credit_pending=issue.assigned_personnel is not None)
            updated = self._commit(issue, fields, {"status": IssueStatus.PENDING_REVIEW.value}, reviewer)
            logger.info("Proof for issue %s approved by %s", issue_id, reviewer)

        effects = self._mirror(updated, PostStatus.RESOLVED)
        if updated.credit_pending:
            updated = self._settle_credit(updated)
            effects.append(worker_load(updated.assigned_personnel.id, -1))
        effects.append(disclosure_post(self._resolution_disclosure(updated, reviewer)))
        return self._finish(updated, effects)

    def _settle_credit(self, issue: Issue) -> Issue:
        # only the caller that flips the marker credits the worker
        claimed = issue_from_doc(self.store.update_issue(
            issue.id, {"credit_pending": False}, {"credit_pending": True}))
        worker_id = issue.assigned_personnel.id
        try:
            credit_worker(self.store, worker_id)
        except NotFound:
            logger.error("Worker %s for issue %s no longer exists; credit dropped", worker_id, issue.id)
        except DependencyUnavailable:
            logger.error("Credit for worker %s on issue %s failed; left pending", worker_id, issue.id)
            self.store.update_issue(issue.id, {"credit_pending": True}, {"credit_pending": False})
            raise
        return claimed

    def reject_proof(self, issue_id: str, reviewer: str) -> TransitionResult:
        issue = self.load(issue_id)
        if issue.status != IssueStatus.PENDING_REVIEW.value:
            raise InvalidTransition(
                f"issue {issue_id} has no proof under review (status '{issue.status}')",
                issue_id=issue_id, status=issue.status)

        at = self.clock()
        updated = self._commit(issue, ProofReview.rejection_fields(reviewer, at),
                               {"status": IssueStatus.PENDING_REVIEW.value}, reviewer)
        logger.info("Proof for issue %s rejected by %s", issue_id, reviewer)
        return self._finish(updated, self._mirror(updated, PostStatus.ASSIGN))

    def reopen_issue(self, issue_id: str, actor: str) -> TransitionResult:
        issue = self.load(issue_id)
        if issue.status != IssueStatus.RESOLVED.value:
            raise InvalidTransition(f"only resolved issues can be reopened (issue {issue_id} is '{issue.status}')",
                                    issue_id=issue_id, status=issue.status)
        at = self.clock()
        updated = self._commit(issue, {"status": IssueStatus.REOPENED.value, "updated_at": at},
                               {"status": IssueStatus.RESOLVED.value}, actor)
        logger.info("Issue %s reopened by %s", issue_id, actor)
        return self._finish(updated, self._mirror(updated, PostStatus.REOPENED))

    def resume_work(self, issue_id: str, actor: str) -> TransitionResult:
        issue = self.load(issue_id)
        if issue.status != IssueStatus.REOPENED.value:
            raise InvalidTransition(f"issue {issue_id} is not reopened (status '{issue.status}')",
                                    issue_id=issue_id, status=issue.status)
        if issue.assigned_personnel is None:
            raise InvalidTransition(f"issue {issue_id} has no personnel; assign it instead",
                                    issue_id=issue_id, status=issue.status)
        at = self.clock()
        fields = {"status": IssueStatus.ASSIGN.value, "proof_status": None, "updated_at": at}
        updated = self._commit(issue, fields, {"status": IssueStatus.REOPENED.value}, actor)
        logger.info("Work resumed on issue %s by %s", issue_id, actor)
        effects = self._mirror(updated, PostStatus.ASSIGNED)
        effects.append(worker_load(updated.assigned_personnel.id, 1))
        return self._finish(updated, effects)

    # ------------------------------------------------------------------
    @staticmethod
    def _resolution_disclosure(issue: Issue, reviewer: str) -> dict:
        dept = department_name(issue.department)
        label = issue.reference or issue.id
        content = f"Resolved: {issue.title or 'civic issue'} ({label}) has been resolved by {dept}."
        if issue.assigned_personnel is not None:
            content += f" Work completed by {issue.assigned_personnel.name}."
        work = issue.public_ratings.work if issue.public_ratings else None
        if work is not None and work.average is not None:
            content += f" Citizen rating: {work.average:.1f}/5."

        record = {
            "kind": PostKind.DISCLOSURE.value,
            "tag": DisclosureTag.RESOLUTION.value,
            "author_name": dept,
            "department": issue.department,
            "issue_id": issue.id,
            "original_post_id": issue.original_post_id,
            "status": PostStatus.RESOLVED.value,
            "content": content,
            "media_url": issue.proof_of_work[-1].media_url if issue.proof_of_work else None,
            "approved_by": reviewer,
            "is_resolved": True,
            "is_escalated": False,
            "likes": [],
        }
        if issue.public_ratings is not None:
            record["public_ratings"] = issue.public_ratings.model_dump(exclude_none=True)
        return record
