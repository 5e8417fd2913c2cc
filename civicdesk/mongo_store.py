# MongoDB-backed IssueStore

import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from .config import MONGODB_DB, MONGODB_URL, new_id
from .errors import ConflictingTransition, DependencyUnavailable, NotFound
from .store import IssueStore

logger = logging.getLogger(__name__)


def _filter_value(value):
    if isinstance(value, (list, tuple, set, frozenset)):
        return {"$in": list(value)}
    return value


@contextmanager
def _guard(operation: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("MongoDB %s failed: %s", operation, e)
        raise DependencyUnavailable(f"document store unavailable during {operation}") from e


class MongoStore(IssueStore):
    """Collections: issues, posts, notifications, workers, counters."""

    def __init__(self, url: str = MONGODB_URL, db_name: str = MONGODB_DB, client: Optional[MongoClient] = None):
        self.client = client or MongoClient(url, serverSelectionTimeoutMS=5000, tz_aware=True)
        self.db = self.client[db_name]

    def ensure_indexes(self) -> None:
        with _guard("create_index"):
            self.db.issues.create_index("status")
            self.db.issues.create_index("department")
            self.db.issues.create_index("escalation.status")
            self.db.issues.create_index("reference")
            self.db.posts.create_index("author_name")
            self.db.posts.create_index("issue_id")
            self.db.notifications.create_index("user_id")
            self.db.workers.create_index("department")
        logger.info("MongoDB indexes ensured on %s", self.db.name)

    def close(self) -> None:
        self.client.close()

    # -- issues --------------------------------------------------------------
    def get_issue(self, issue_id: str) -> dict:
        with _guard("get_issue"):
            doc = self.db.issues.find_one({"_id": issue_id})
        if doc is None:
            raise NotFound(f"issue {issue_id} not found", issue_id=issue_id)
        return doc

    def query_issues(self, department=None, status=None, escalation_status=None) -> List[dict]:
        query = {}
        if department is not None:
            query["department"] = _filter_value(department)
        if status is not None:
            query["status"] = _filter_value(status)
        if escalation_status is not None:
            query["escalation.status"] = _filter_value(escalation_status)
        with _guard("query_issues"):
            return list(self.db.issues.find(query).sort("_id", 1))

    def insert_issue(self, doc: dict) -> str:
        doc = dict(doc)
        doc.setdefault("_id", new_id())
        with _guard("insert_issue"):
            self.db.issues.insert_one(doc)
        return doc["_id"]

    def update_issue(self, issue_id: str, fields: dict, expected: dict,
                     push: Optional[dict] = None) -> dict:
        query = {"_id": issue_id}
        for path, value in expected.items():
            query[path] = _filter_value(value)
        update = {"$set": fields}
        if push:
            update["$push"] = push
        with _guard("update_issue"):
            doc = self.db.issues.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER)
            if doc is None:
                exists = self.db.issues.find_one({"_id": issue_id}, {"_id": 1})
        if doc is None:
            if exists is None:
                raise NotFound(f"issue {issue_id} not found", issue_id=issue_id)
            raise ConflictingTransition(
                f"issue {issue_id}: precondition {sorted(expected)} no longer holds",
                issue_id=issue_id)
        return doc

    def next_sequence(self, name: str) -> int:
        with _guard("next_sequence"):
            counter = self.db.counters.find_one_and_update(
                {"_id": name}, {"$inc": {"seq": 1}},
                upsert=True, return_document=ReturnDocument.AFTER)
        return counter["seq"]

    # -- posts & notifications ----------------------------------------------
    def get_post(self, post_id: str) -> dict:
        with _guard("get_post"):
            doc = self.db.posts.find_one({"_id": post_id})
        if doc is None:
            raise NotFound(f"post {post_id} not found", post_id=post_id)
        return doc

    def query_posts(self, author_names: Optional[Iterable[str]] = None) -> List[dict]:
        query = {}
        if author_names is not None:
            names = list(author_names)
            # author names are matched case-insensitively
            query["author_name"] = {"$in": names}
            collation = {"locale": "en", "strength": 2}
        else:
            collation = None
        with _guard("query_posts"):
            cursor = self.db.posts.find(query)
            if collation:
                cursor = cursor.collation(collation)
            return list(cursor)

    def create_post(self, record: dict) -> str:
        doc = dict(record)
        doc.setdefault("_id", new_id())
        doc.setdefault("likes", [])
        with _guard("create_post"):
            self.db.posts.insert_one(doc)
        return doc["_id"]

    def update_post(self, post_id: str, fields: dict) -> None:
        with _guard("update_post"):
            result = self.db.posts.update_one({"_id": post_id}, {"$set": fields})
        if result.matched_count == 0:
            raise NotFound(f"post {post_id} not found", post_id=post_id)

    def create_notification(self, record: dict) -> str:
        doc = dict(record)
        doc.setdefault("_id", new_id())
        with _guard("create_notification"):
            self.db.notifications.insert_one(doc)
        return doc["_id"]

    # -- workers -------------------------------------------------------------
    def get_worker(self, worker_id: str) -> dict:
        with _guard("get_worker"):
            doc = self.db.workers.find_one({"_id": worker_id})
        if doc is None:
            raise NotFound(f"worker {worker_id} not found", worker_id=worker_id)
        return doc

    def insert_worker(self, doc: dict) -> str:
        doc = dict(doc)
        doc.setdefault("_id", new_id())
        for counter in ("civic_score", "tasks_completed", "earned_badges", "active_tasks"):
            doc.setdefault(counter, 0)
        doc.setdefault("active", True)
        with _guard("insert_worker"):
            self.db.workers.insert_one(doc)
        return doc["_id"]

    def query_workers(self, department: Optional[str] = None) -> List[dict]:
        query = {"department": department} if department else {}
        with _guard("query_workers"):
            return list(self.db.workers.find(query))

    def set_worker_active(self, worker_id: str, active: bool) -> dict:
        with _guard("set_worker_active"):
            doc = self.db.workers.find_one_and_update(
                {"_id": worker_id}, {"$set": {"active": active}},
                return_document=ReturnDocument.AFTER)
        if doc is None:
            raise NotFound(f"worker {worker_id} not found", worker_id=worker_id)
        return doc

    def increment_worker_score(self, worker_id: str, score_delta: int, tasks_delta: int) -> dict:
        with _guard("increment_worker_score"):
            doc = self.db.workers.find_one_and_update(
                {"_id": worker_id},
                {"$inc": {"civic_score": score_delta, "tasks_completed": tasks_delta}},
                return_document=ReturnDocument.AFTER)
        if doc is None:
            raise NotFound(f"worker {worker_id} not found", worker_id=worker_id)
        return doc

    def raise_worker_badges(self, worker_id: str, badge_count: int) -> None:
        with _guard("raise_worker_badges"):
            self.db.workers.update_one({"_id": worker_id}, {"$max": {"earned_badges": badge_count}})

    def adjust_worker_load(self, worker_id: str, delta: int) -> None:
        with _guard("adjust_worker_load"):
            self.db.workers.update_one({"_id": worker_id}, [
                {"$set": {"active_tasks": {
                    "$max": [0, {"$add": [{"$ifNull": ["$active_tasks", 0]}, delta]}]}}}])
