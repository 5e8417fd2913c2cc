"""Department score formula, rating bands, ranking and the store-backed engine."""

import pytest

from civicdesk.errors import DependencyUnavailable
from civicdesk.models import DepartmentScore
from civicdesk.scoring import (ScoringEngine, authored_by, compute_score, rank_departments,
                               rating_adjustment, score_department, score_departments, trend_label)


def _post(author="Public Works Department", likes=0, resolved=False, escalated=False,
          work=None, escalation=None):
    ratings = {}
    if work is not None:
        ratings["work"] = {"average": work}
    if escalation is not None:
        ratings["escalation"] = {"average": escalation}
    return {"author_name": author, "likes": [f"u{i}" for i in range(likes)],
            "is_resolved": resolved, "is_escalated": escalated,
            "public_ratings": ratings or None}


class TestFormula:
    def test_reference_case(self):
        assert compute_score(3, 1, 10, 0) == (350, 350)

    def test_floor_at_zero(self):
        assert compute_score(0, 10, 0, 0) == (-500, 0)

    def test_adjustment_applies_before_floor(self):
        assert compute_score(1, 0, 0, -130) == (100, 0)
        assert compute_score(1, 0, 0, 50) == (100, 150)

    @pytest.mark.parametrize("average, expected", [
        (5.0, 50), (4.0, 50), (3.99, 20), (3.0, 20), (2.5, 5), (2.0, 5), (1.99, -30), (0.0, -30),
    ])
    def test_work_rating_bands(self, average, expected):
        assert rating_adjustment([_post(resolved=True, work=average)]) == expected

    @pytest.mark.parametrize("average, expected", [
        (4.5, -40), (4.0, -40), (3.0, 0), (2.01, 0), (2.0, 20), (1.0, 20),
    ])
    def test_escalation_rating_bands(self, average, expected):
        assert rating_adjustment([_post(escalated=True, escalation=average)]) == expected

    def test_ratings_ignored_without_flags(self):
        posts = [_post(work=5.0), _post(escalation=5.0), _post(resolved=True), _post(escalated=True)]
        assert rating_adjustment(posts) == 0

    def test_post_can_carry_both_ratings(self):
        assert rating_adjustment([_post(resolved=True, escalated=True, work=4.5, escalation=1.0)]) == 70

    @pytest.mark.parametrize("adjustment, label", [(70, "+70"), (-30, "-30"), (0, "0")])
    def test_trend_label(self, adjustment, label):
        assert trend_label(adjustment) == label


class TestDepartmentScore:
    def test_counts_from_corpus(self):
        issues = [
            {"department": "pwd", "status": "resolved", "escalation": None},
            {"department": "pwd", "status": "resolved", "escalation": {"status": "rejected"}},
            {"department": "pwd", "status": "resolved", "escalation": {"status": "approved"}},
            {"department": "pwd", "status": "assign", "escalation": {"status": "pending"}},
            {"department": "water", "status": "resolved"},
        ]
        posts = [_post(likes=4, resolved=True, work=4.5), _post(author="pwd_dept", likes=6),
                 _post(author="Electricity Department", likes=50)]
        score = score_department("pwd", issues, posts)
        assert score.resolved_count == 3
        assert score.escalated_count == 2
        assert score.likes_total == 10
        assert score.rating_adjustment == 50
        assert score.base_score == 300 + 100 - 100
        assert score.score == 350
        assert score.trend_label == "+50"
        assert score.name == "Public Works Department"

    def test_author_aliases_case_insensitive(self):
        posts = [_post(author=a) for a in
                 ("WATER SUPPLY & SEWAGE", "wss", "Water", "water_dept", "Water Board")]
        assert len(authored_by("water", posts)) == 4

    def test_ranking_is_stable_with_badges(self):
        scores = [DepartmentScore(department=d, name=d, score=s)
                  for d, s in [("a", 100), ("b", 300), ("c", 100), ("d", 300), ("e", 0)]]
        ranked = rank_departments(scores)
        assert [s.department for s in ranked] == ["b", "d", "a", "c", "e"]
        assert [s.rank for s in ranked] == [1, 2, 3, 4, 5]
        assert [s.badge for s in ranked] == ["gold", "silver", "bronze", None, None]

    def test_all_departments_ranked_in_directory_order_on_ties(self):
        ranked = score_departments([], [])
        assert len(ranked) == 9
        assert ranked[0].department == "pwd"
        assert all(s.score == 0 for s in ranked)


class FlakyStore:
    """Delegates to a real store but fails the named reads."""

    def __init__(self, store, failing):
        self._store = store
        self._failing = set(failing)

    def __getattr__(self, name):
        if name in self._failing:
            def fail(*args, **kwargs):
                raise DependencyUnavailable(f"{name} unavailable")
            return fail
        return getattr(self._store, name)


class TestScoringEngine:
    def _seed(self, lifecycle, escalations, make_issue, worker):
        done = make_issue()
        lifecycle.assign_task(done.id, worker, "pwd_dept")
        lifecycle.submit_proof_of_work(done.id, {"media_url": "https://m/1.jpg"}, worker)
        lifecycle.approve_proof(done.id, "pwd_dept")
        hot = make_issue()
        escalations.escalate(hot.id, "urgent", "pwd_dept")
        make_issue("water")

    def test_department_leaderboard(self, store, lifecycle, escalations, make_issue, worker):
        self._seed(lifecycle, escalations, make_issue, worker)
        board = ScoringEngine(store).department_leaderboard()
        pwd = next(s for s in board if s.department == "pwd")
        # 1 resolved, 1 pending escalation, disclosure post authored by the department
        assert (pwd.resolved_count, pwd.escalated_count) == (1, 1)
        assert pwd.score == 50
        assert board[0].department == "pwd"
        assert board[0].badge == "gold"

    def test_partial_data_on_read_failure(self, store, lifecycle, escalations, make_issue, worker, caplog):
        self._seed(lifecycle, escalations, make_issue, worker)
        engine = ScoringEngine(FlakyStore(store, {"query_posts"}))
        pwd = next(s for s in engine.department_leaderboard() if s.department == "pwd")
        assert pwd.resolved_count == 1
        assert pwd.likes_total == 0
        assert "partial data" in caplog.text

    def test_never_raises(self, store):
        engine = ScoringEngine(FlakyStore(store, {"query_posts", "query_issues", "query_workers"}))
        assert len(engine.department_leaderboard()) == 9
        assert engine.worker_leaderboard() == []

    def test_worker_leaderboard(self, store):
        store.insert_worker({"name": "A", "department": "pwd", "civic_score": 300, "tasks_completed": 3})
        store.insert_worker({"name": "B", "department": "pwd", "civic_score": 500, "tasks_completed": 5})
        store.insert_worker({"name": "C", "department": "swm", "civic_score": 500, "tasks_completed": 6})
        board = ScoringEngine(store).worker_leaderboard()
        assert [w.name for w in board] == ["C", "B", "A"]
        assert [w.name for w in ScoringEngine(store).worker_leaderboard("pwd")] == ["B", "A"]
