"""Snapshot polling feed and rescoring over snapshots."""

from civicdesk.errors import DependencyUnavailable
from civicdesk.feed import poll_issue_snapshots, rescore_snapshots
from civicdesk.scoring import ScoringEngine


class Sleeps(list):
    def __call__(self, seconds):
        self.append(seconds)


def test_polls_are_bounded_and_spaced(store, make_issue):
    make_issue()
    sleeps = Sleeps()
    snapshots = list(poll_issue_snapshots(store, interval=30, max_polls=3, sleep=sleeps))
    assert len(snapshots) == 3
    assert sleeps == [30, 30]
    assert all(len(s) == 1 for s in snapshots)


def test_feed_is_lazy_and_sees_new_issues(store, make_issue):
    feed = poll_issue_snapshots(store, max_polls=2, sleep=lambda s: None)
    assert next(feed) == []
    make_issue()
    assert len(next(feed)) == 1


def test_feed_is_restartable(store, make_issue):
    make_issue()
    first = poll_issue_snapshots(store, max_polls=5, sleep=lambda s: None)
    next(first)
    first.close()
    again = list(poll_issue_snapshots(store, max_polls=2, sleep=lambda s: None))
    assert len(again) == 2


def test_changes_only_suppresses_identical_snapshots(store, make_issue, lifecycle, worker):
    issue = make_issue()
    feed = poll_issue_snapshots(store, max_polls=4, changes_only=True, sleep=lambda s: None)
    assert next(feed)[0].status == "pending"
    lifecycle.assign_task(issue.id, worker, "pwd_dept")
    assert next(feed)[0].status == "assign"
    assert list(feed) == []


def test_failed_poll_is_skipped(store, make_issue):
    make_issue()
    calls = []

    class Flaky:
        def query_issues(self, **filters):
            calls.append(filters)
            if len(calls) == 1:
                raise DependencyUnavailable("store down")
            return store.query_issues(**filters)

    snapshots = list(poll_issue_snapshots(Flaky(), max_polls=2, sleep=lambda s: None, department="pwd"))
    assert len(snapshots) == 1
    assert calls == [{"department": "pwd"}, {"department": "pwd"}]


def test_rescore_snapshots(store, make_issue, lifecycle, worker):
    issue = make_issue()
    lifecycle.assign_task(issue.id, worker, "pwd_dept")
    lifecycle.submit_proof_of_work(issue.id, {"media_url": "https://m/1.jpg"}, worker)
    lifecycle.approve_proof(issue.id, "pwd_dept")

    feed = poll_issue_snapshots(store, max_polls=1, sleep=lambda s: None)
    boards = list(rescore_snapshots(feed, ScoringEngine(store)))
    assert len(boards) == 1
    top = boards[0][0]
    assert (top.department, top.resolved_count, top.score, top.badge) == ("pwd", 1, 100, "gold")
