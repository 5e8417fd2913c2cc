"""
Store adapters for issue, worker, post and notification documents.

`IssueStore` is the contract the engines are written against. Every issue
write is conditional: `expected` maps (possibly dotted) field paths to the
value they must still hold at write time, so a precondition that changed
after the caller's read surfaces as ConflictingTransition instead of a lost
update. Worker counters are only ever changed through atomic increments.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from .config import new_id
from .errors import ConflictingTransition, NotFound

_MISSING = object()


class IssueStore(ABC):

    # -- issues --------------------------------------------------------------
    @abstractmethod
    def get_issue(self, issue_id: str) -> dict: ...

    @abstractmethod
    def query_issues(self, department=None, status=None, escalation_status=None) -> List[dict]:
        """Each filter accepts a single value or an iterable of accepted values."""

    @abstractmethod
    def insert_issue(self, doc: dict) -> str: ...

    @abstractmethod
    def update_issue(self, issue_id: str, fields: dict, expected: dict,
                     push: Optional[dict] = None) -> dict:
        """Apply `fields` (and append `push` items) only if `expected` still holds.

        Returns the updated document. Raises NotFound or ConflictingTransition.
        """

    @abstractmethod
    def next_sequence(self, name: str) -> int: ...

    # -- posts & notifications ----------------------------------------------
    @abstractmethod
    def get_post(self, post_id: str) -> dict: ...

    @abstractmethod
    def query_posts(self, author_names: Optional[Iterable[str]] = None) -> List[dict]: ...

    @abstractmethod
    def create_post(self, record: dict) -> str: ...

    @abstractmethod
    def update_post(self, post_id: str, fields: dict) -> None: ...

    @abstractmethod
    def create_notification(self, record: dict) -> str: ...

    # -- workers -------------------------------------------------------------
    @abstractmethod
    def get_worker(self, worker_id: str) -> dict: ...

    @abstractmethod
    def insert_worker(self, doc: dict) -> str: ...

    @abstractmethod
    def query_workers(self, department: Optional[str] = None) -> List[dict]: ...

    @abstractmethod
    def set_worker_active(self, worker_id: str, active: bool) -> dict: ...

    @abstractmethod
    def increment_worker_score(self, worker_id: str, score_delta: int, tasks_delta: int) -> dict:
        """Atomically add to civic_score / tasks_completed; returns the updated worker."""

    @abstractmethod
    def raise_worker_badges(self, worker_id: str, badge_count: int) -> None:
        """Set earned_badges to max(current, badge_count)."""

    @abstractmethod
    def adjust_worker_load(self, worker_id: str, delta: int) -> None: ...

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Dotted-path helpers
# ---------------------------------------------------------------------------
def _get_path(doc: dict, path: str):
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node

def _set_path(doc: dict, path: str, value) -> None:
    parts = path.split(".")
    node = doc
    for part in parts[:-1]:
        if not isinstance(node.get(part), dict):
            node[part] = {}
        node = node[part]
    node[parts[-1]] = value

def _matches(doc: dict, path: str, expected) -> bool:
    actual = _get_path(doc, path)
    if expected is None:
        return actual is _MISSING or actual is None
    if isinstance(expected, (list, tuple, set, frozenset)):
        return actual is not _MISSING and actual in expected
    return actual is not _MISSING and actual == expected

def _accepted(value) -> Optional[set]:
    if value is None:
        return None
    if isinstance(value, str):
        return {value}
    return set(value)


class InMemoryStore(IssueStore):
    """Process-local store. One lock serialises all writes, which gives the
    same per-document atomicity MongoDB provides for single-document updates."""

    def __init__(self):
        self._lock = threading.Lock()
        self._issues: Dict[str, dict] = {}
        self._posts: Dict[str, dict] = {}
        self._notifications: Dict[str, dict] = {}
        self._workers: Dict[str, dict] = {}
        self._counters: Dict[str, int] = {}

    # -- issues --------------------------------------------------------------
    def get_issue(self, issue_id: str) -> dict:
        with self._lock:
            doc = self._issues.get(issue_id)
            if doc is None:
                raise NotFound(f"issue {issue_id} not found", issue_id=issue_id)
            return copy.deepcopy(doc)

    def query_issues(self, department=None, status=None, escalation_status=None) -> List[dict]:
        departments, statuses, esc_statuses = (
            _accepted(department), _accepted(status), _accepted(escalation_status))
        out = []
        with self._lock:
            for doc in self._issues.values():
                if departments is not None and doc.get("department") not in departments:
                    continue
                if statuses is not None and doc.get("status") not in statuses:
                    continue
                if esc_statuses is not None:
                    esc = doc.get("escalation") or {}
                    if esc.get("status") not in esc_statuses:
                        continue
                out.append(copy.deepcopy(doc))
        return out

    def insert_issue(self, doc: dict) -> str:
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", new_id())
        with self._lock:
            self._issues[doc["_id"]] = doc
        return doc["_id"]

    def update_issue(self, issue_id: str, fields: dict, expected: dict,
                     push: Optional[dict] = None) -> dict:
        with self._lock:
            doc = self._issues.get(issue_id)
            if doc is None:
                raise NotFound(f"issue {issue_id} not found", issue_id=issue_id)
            for path, value in expected.items():
                if not _matches(doc, path, value):
                    raise ConflictingTransition(
                        f"issue {issue_id}: precondition on '{path}' no longer holds",
                        issue_id=issue_id, field=path)
            for path, value in fields.items():
                _set_path(doc, path, copy.deepcopy(value))
            for path, item in (push or {}).items():
                current = _get_path(doc, path)
                if current is _MISSING or current is None:
                    _set_path(doc, path, [])
                    current = _get_path(doc, path)
                current.append(copy.deepcopy(item))
            return copy.deepcopy(doc)

    def next_sequence(self, name: str) -> int:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + 1
            return self._counters[name]

    # -- posts & notifications ----------------------------------------------
    def get_post(self, post_id: str) -> dict:
        with self._lock:
            doc = self._posts.get(post_id)
            if doc is None:
                raise NotFound(f"post {post_id} not found", post_id=post_id)
            return copy.deepcopy(doc)

    def query_posts(self, author_names: Optional[Iterable[str]] = None) -> List[dict]:
        names = None if author_names is None else {n.lower() for n in author_names}
        with self._lock:
            return [copy.deepcopy(p) for p in self._posts.values()
                    if names is None or str(p.get("author_name", "")).lower() in names]

    def create_post(self, record: dict) -> str:
        doc = copy.deepcopy(record)
        doc.setdefault("_id", new_id())
        doc.setdefault("likes", [])
        with self._lock:
            self._posts[doc["_id"]] = doc
        return doc["_id"]

    def update_post(self, post_id: str, fields: dict) -> None:
        with self._lock:
            doc = self._posts.get(post_id)
            if doc is None:
                raise NotFound(f"post {post_id} not found", post_id=post_id)
            for path, value in fields.items():
                _set_path(doc, path, copy.deepcopy(value))

    def create_notification(self, record: dict) -> str:
        doc = copy.deepcopy(record)
        doc.setdefault("_id", new_id())
        with self._lock:
            self._notifications[doc["_id"]] = doc
        return doc["_id"]

    def notifications_for(self, user_id: str) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(n) for n in self._notifications.values()
                    if n.get("user_id") == user_id]

    # -- workers -------------------------------------------------------------
    def get_worker(self, worker_id: str) -> dict:
        with self._lock:
            doc = self._workers.get(worker_id)
            if doc is None:
                raise NotFound(f"worker {worker_id} not found", worker_id=worker_id)
            return copy.deepcopy(doc)

    def insert_worker(self, doc: dict) -> str:
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", new_id())
        for counter in ("civic_score", "tasks_completed", "earned_badges", "active_tasks"):
            doc.setdefault(counter, 0)
        doc.setdefault("active", True)
        with self._lock:
            self._workers[doc["_id"]] = doc
        return doc["_id"]

    def query_workers(self, department: Optional[str] = None) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(w) for w in self._workers.values()
                    if department is None or w.get("department") == department]

    def _worker_locked(self, worker_id: str) -> dict:
        doc = self._workers.get(worker_id)
        if doc is None:
            raise NotFound(f"worker {worker_id} not found", worker_id=worker_id)
        return doc

    def set_worker_active(self, worker_id: str, active: bool) -> dict:
        with self._lock:
            doc = self._worker_locked(worker_id)
            doc["active"] = active
            return copy.deepcopy(doc)

    def increment_worker_score(self, worker_id: str, score_delta: int, tasks_delta: int) -> dict:
        with self._lock:
            doc = self._worker_locked(worker_id)
            doc["civic_score"] = doc.get("civic_score", 0) + score_delta
            doc["tasks_completed"] = doc.get("tasks_completed", 0) + tasks_delta
            return copy.deepcopy(doc)

    def raise_worker_badges(self, worker_id: str, badge_count: int) -> None:
        with self._lock:
            doc = self._worker_locked(worker_id)
            doc["earned_badges"] = max(doc.get("earned_badges", 0), badge_count)

    def adjust_worker_load(self, worker_id: str, delta: int) -> None:
        with self._lock:
            doc = self._worker_locked(worker_id)
            doc["active_tasks"] = max(0, doc.get("active_tasks", 0) + delta)
