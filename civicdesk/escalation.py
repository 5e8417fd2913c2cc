"""
Escalation workflow: a sub-state machine orthogonal to the issue status.

    none --escalate--> pending --approve--> approved
                               --reject---> rejected

approved and rejected are terminal for the cycle; escalating again moves the
closed cycle into `escalation_history` and opens a new pending one.

Both terminal transitions put the issue back to `assign` whatever its status
was, including `resolved`. That reset is kept as-is and logged at WARNING.
"""

import logging
from typing import List

from .config import department_name
from .effects import Effect, TransitionResult, disclosure_post, notify_citizen, worker_load
from .errors import InvalidTransition
from .lifecycle import TransitionEngine
from .models import (DisclosureTag, Escalation, EscalationStatus, Issue, IssueStatus, PostKind,
                     PostStatus)

logger = logging.getLogger(__name__)

# statuses in which the assigned worker's load was already released
_RELEASED_STATUSES = (IssueStatus.RESOLVED.value, IssueStatus.REOPENED.value)


class EscalationWorkflow(TransitionEngine):

    def escalate(self, issue_id: str, reason: str, escalated_by: str) -> TransitionResult:
        issue = self.load(issue_id)
        current = issue.escalation
        if current is not None and not current.is_terminal:
            raise InvalidTransition(f"issue {issue_id} already has a pending escalation",
                                    issue_id=issue_id, escalation_status=current.status)

        at = self.clock()
        opened = Escalation(status=EscalationStatus.PENDING, reason=reason,
                            escalated_by=escalated_by, escalated_at=at)
        fields = {"escalation": opened.model_dump(), "updated_at": at}
        if current is None:
            expected, push = {"escalation": None}, None
        else:
            expected = {"escalation.status": current.status}
            push = {"escalation_history": current.model_dump()}
        updated = self._commit(issue, fields, expected, escalated_by, push=push)
        logger.info("Issue %s escalated by %s", issue_id, escalated_by)
        return self._finish(updated, [])

    def approve_escalation(self, issue_id: str, approver: str) -> TransitionResult:
        issue = self._load_pending(issue_id)
        at = self.clock()
        fields = {"escalation.status": EscalationStatus.APPROVED.value,
                  "escalation.approved_by": approver,
                  "escalation.approved_at": at,
                  "status": IssueStatus.ASSIGN.value,
                  "updated_at": at}
        updated = self._commit(issue, fields,
                               {"escalation.status": EscalationStatus.PENDING.value}, approver)
        self._warn_reset(issue, "approval")
        logger.info("Escalation on issue %s approved by %s", issue_id, approver)

        effects = self._mirror(updated, PostStatus.ESCALATED_APPROVED)
        effects += self._reload_worker(issue)
        effects.append(disclosure_post(self._escalation_disclosure(updated, approver)))
        if updated.original_post_id:
            effects.append(notify_citizen(updated.original_post_id, {
                "issue_id": updated.id,
                "kind": "escalation-approved",
                "message": (f"Your report {updated.reference or updated.id} has been escalated "
                            f"for priority handling by {department_name(updated.department)}."),
            }))
        else:
            logger.warning("Issue %s has no citizen post; escalation approval not notified", issue_id)
        return self._finish(updated, effects)

    def reject_escalation(self, issue_id: str, approver: str) -> TransitionResult:
        issue = self._load_pending(issue_id)
        at = self.clock()
        fields = {"escalation.status": EscalationStatus.REJECTED.value,
                  "escalation.rejected_by": approver,
                  "escalation.rejected_at": at,
                  "status": IssueStatus.ASSIGN.value,
                  "updated_at": at}
        updated = self._commit(issue, fields,
                               {"escalation.status": EscalationStatus.PENDING.value}, approver)
        self._warn_reset(issue, "rejection")
        logger.info("Escalation on issue %s rejected by %s", issue_id, approver)
        effects = self._mirror(updated, PostStatus.ASSIGN) + self._reload_worker(issue)
        return self._finish(updated, effects)

    # ------------------------------------------------------------------
    def _load_pending(self, issue_id: str) -> Issue:
        issue = self.load(issue_id)
        if issue.escalation is None or issue.escalation.status != EscalationStatus.PENDING.value:
            raise InvalidTransition(
                f"issue {issue_id} has no pending escalation",
                issue_id=issue_id,
                escalation_status=issue.escalation.status if issue.escalation else None)
        return issue

    @staticmethod
    def _warn_reset(issue: Issue, outcome: str) -> None:
        if issue.status == IssueStatus.RESOLVED.value:
            logger.warning("Escalation %s resets resolved issue %s back to 'assign'", outcome, issue.id)

    @staticmethod
    def _reload_worker(before: Issue) -> List[Effect]:
        if before.assigned_personnel is None or before.status not in _RELEASED_STATUSES:
            return []
        return [worker_load(before.assigned_personnel.id, 1)]

    @staticmethod
    def _escalation_disclosure(issue: Issue, approver: str) -> dict:
        dept = department_name(issue.department)
        label = issue.reference or issue.id
        content = (f"Priority escalation: {issue.title or 'civic issue'} ({label}) has been "
                   f"escalated for priority handling by {dept}.")
        if issue.escalation is not None and issue.escalation.reason:
            content += f" Reason: {issue.escalation.reason}"

        record = {
            "kind": PostKind.DISCLOSURE.value,
            "tag": DisclosureTag.PRIORITY_ESCALATION.value,
            "author_name": dept,
            "department": issue.department,
            "issue_id": issue.id,
            "original_post_id": issue.original_post_id,
            "status": PostStatus.ESCALATED_APPROVED.value,
            "content": content,
            "approved_by": approver,
            "is_resolved": False,
            "is_escalated": True,
            "likes": [],
        }
        if issue.public_ratings is not None:
            record["public_ratings"] = issue.public_ratings.model_dump(exclude_none=True)
        return record
