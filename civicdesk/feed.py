"""
Polling producer of issue snapshots.

Change notification is abstracted as a lazy sequence: each iteration yields
the full list of issues matching the filters. Calling the function again
starts a fresh, independent sequence, so a consumer that dies can simply
restart it.
"""

import logging
import time
from typing import Callable, Iterable, Iterator, List, Optional

from .config import RESCORE_INTERVAL_SECONDS
from .errors import DependencyUnavailable
from .models import DepartmentScore, Issue, issue_from_doc
from .scoring import ScoringEngine
from .store import IssueStore

logger = logging.getLogger(__name__)


def _fingerprint(docs: List[dict]) -> tuple:
    return tuple((str(d.get("_id")), d.get("status"), (d.get("escalation") or {}).get("status"),
                  str(d.get("updated_at"))) for d in docs)


def poll_issue_snapshots(store: IssueStore, interval: float = RESCORE_INTERVAL_SECONDS,
                         max_polls: Optional[int] = None, changes_only: bool = False,
                         sleep: Callable[[float], None] = time.sleep,
                         **filters) -> Iterator[List[Issue]]:
    """Yield issue snapshots every `interval` seconds.

    A poll that fails with DependencyUnavailable is logged and skipped.
    With `changes_only`, a snapshot identical to the previous one is not
    yielded again. `max_polls` bounds the number of store reads.
    """
    polls = 0
    last = None
    while max_polls is None or polls < max_polls:
        if polls:
            sleep(interval)
        polls += 1
        try:
            docs = store.query_issues(**filters)
        except DependencyUnavailable as e:
            logger.warning("Issue snapshot poll %d failed: %s", polls, e)
            continue
        fingerprint = _fingerprint(docs)
        if changes_only and fingerprint == last:
            continue
        last = fingerprint
        yield [issue_from_doc(d) for d in docs]


def rescore_snapshots(snapshots: Iterable[List[Issue]],
                      engine: ScoringEngine) -> Iterator[List[DepartmentScore]]:
    for snapshot in snapshots:
        yield engine.leaderboard_from_issues(issue.model_dump() for issue in snapshot)
