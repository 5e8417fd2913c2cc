"""
Department and worker scoring.

Department scores are recomputed from scratch over the issue and post corpus
on every evaluation:

    base_score = resolved*100 + likes*10 - escalated*50
    score      = max(0, base_score + rating_adjustment)

Worker scores are not derived here; they are the persisted counters credited
on proof approval (see review.credit_worker) and only read and ordered.

Scoring is a display aggregate. A failed read is logged and the ranking is
computed from whatever was obtained.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import (DEPARTMENTS, ESCALATED_WEIGHT, ESCALATION_UNFOUNDED_ADJUSTMENT,
                     ESCALATION_UNFOUNDED_MAX_AVG, ESCALATION_UPHELD_ADJUSTMENT,
                     ESCALATION_UPHELD_MIN_AVG, LIKE_WEIGHT, RANK_BADGES, RESOLVED_WEIGHT,
                     WORK_RATING_BANDS, WORK_RATING_FLOOR_ADJUSTMENT, department_aliases,
                     department_name)
from .models import DepartmentScore, EscalationStatus, IssueStatus, WorkerScore
from .store import IssueStore

logger = logging.getLogger(__name__)

COUNTED_ESCALATIONS = (EscalationStatus.PENDING.value, EscalationStatus.APPROVED.value)


def _average(post: dict, kind: str) -> Optional[float]:
    ratings = post.get("public_ratings") or {}
    summary = ratings.get(kind) or {}
    return summary.get("average")


def work_rating_adjustment(average: float) -> int:
    for lower, adjustment in WORK_RATING_BANDS:
        if average >= lower:
            return adjustment
    return WORK_RATING_FLOOR_ADJUSTMENT


def escalation_rating_adjustment(average: float) -> int:
    # a well-rated escalation confirms the complaint against the department
    if average >= ESCALATION_UPHELD_MIN_AVG:
        return ESCALATION_UPHELD_ADJUSTMENT
    if average <= ESCALATION_UNFOUNDED_MAX_AVG:
        return ESCALATION_UNFOUNDED_ADJUSTMENT
    return 0


def rating_adjustment(posts: Iterable[dict]) -> int:
    total = 0
    for post in posts:
        if post.get("is_resolved"):
            avg = _average(post, "work")
            if avg is not None:
                total += work_rating_adjustment(avg)
        if post.get("is_escalated"):
            avg = _average(post, "escalation")
            if avg is not None:
                total += escalation_rating_adjustment(avg)
    return total


def trend_label(adjustment: int) -> str:
    if adjustment > 0:
        return f"+{adjustment}"
    return str(adjustment)


def compute_score(resolved_count: int, escalated_count: int, likes_total: int,
                  adjustment: int = 0) -> Tuple[int, int]:
    """Returns (base_score, score); score is floored at zero."""
    base = resolved_count * RESOLVED_WEIGHT + likes_total * LIKE_WEIGHT - escalated_count * ESCALATED_WEIGHT
    return base, max(0, base + adjustment)


def authored_by(department: str, posts: Iterable[dict]) -> List[dict]:
    aliases = department_aliases(department)
    return [p for p in posts if str(p.get("author_name") or "").lower() in aliases]


def score_department(department: str, issues: Iterable[dict], posts: Iterable[dict]) -> DepartmentScore:
    """Score one department. `issues` and `posts` may span the whole corpus."""
    resolved = escalated = 0
    for issue in issues:
        if issue.get("department") != department:
            continue
        if issue.get("status") == IssueStatus.RESOLVED.value:
            resolved += 1
        if (issue.get("escalation") or {}).get("status") in COUNTED_ESCALATIONS:
            escalated += 1

    own_posts = authored_by(department, posts)
    likes = sum(len(p.get("likes") or []) for p in own_posts)
    adjustment = rating_adjustment(own_posts)
    base, score = compute_score(resolved, escalated, likes, adjustment)
    return DepartmentScore(
        department=department, name=department_name(department),
        resolved_count=resolved, escalated_count=escalated, likes_total=likes,
        rating_adjustment=adjustment, base_score=base, score=score,
        trend_label=trend_label(adjustment))


def rank_departments(scores: Sequence[DepartmentScore]) -> List[DepartmentScore]:
    """Order by score descending; ties keep their input order."""
    ordered = sorted(scores, key=lambda s: s.score, reverse=True)
    return [s.model_copy(update={"rank": i, "badge": RANK_BADGES.get(i)})
            for i, s in enumerate(ordered, start=1)]


def score_departments(issues: Iterable[dict], posts: Iterable[dict],
                      departments: Optional[Sequence[str]] = None) -> List[DepartmentScore]:
    issues, posts = list(issues), list(posts)
    if departments is None:
        departments = [d["id"] for d in DEPARTMENTS]
    return rank_departments([score_department(d, issues, posts) for d in departments])


def rank_workers(workers: Iterable[dict]) -> List[WorkerScore]:
    ordered = sorted(workers, key=lambda w: (w.get("civic_score", 0), w.get("tasks_completed", 0)),
                     reverse=True)
    return [WorkerScore(worker_id=str(w["_id"]), name=w.get("name", ""),
                        department=w.get("department", ""),
                        civic_score=w.get("civic_score", 0),
                        tasks_completed=w.get("tasks_completed", 0),
                        earned_badges=w.get("earned_badges", 0))
            for w in ordered]


class ScoringEngine:
    """Reads the corpus from a store and ranks it; never raises on read failure."""

    def __init__(self, store: IssueStore, departments: Optional[Sequence[str]] = None):
        self.store = store
        self.departments = list(departments) if departments else [d["id"] for d in DEPARTMENTS]

    def _read(self, what: str, fn, *args, **kwargs) -> list:
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.error("Scoring read of %s failed, using partial data: %s", what, e)
            return []

    def _department_posts(self) -> List[dict]:
        names = set()
        for d in self.departments:
            names |= department_aliases(d)
        return self._read("posts", self.store.query_posts, author_names=sorted(names))

    def department_leaderboard(self) -> List[DepartmentScore]:
        by_id = {}
        for doc in self._read("resolved issues", self.store.query_issues,
                              department=self.departments, status=IssueStatus.RESOLVED.value):
            by_id[doc["_id"]] = doc
        for doc in self._read("escalated issues", self.store.query_issues,
                              department=self.departments, escalation_status=COUNTED_ESCALATIONS):
            by_id[doc["_id"]] = doc
        return score_departments(by_id.values(), self._department_posts(), self.departments)

    def leaderboard_from_issues(self, issues: Iterable[dict]) -> List[DepartmentScore]:
        """Rank an issue snapshot already in hand; only posts are read."""
        return score_departments(issues, self._department_posts(), self.departments)

    def worker_leaderboard(self, department: Optional[str] = None) -> List[WorkerScore]:
        return rank_workers(self._read("workers", self.store.query_workers, department))
