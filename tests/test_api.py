"""
Portal API tests.

Uses httpx AsyncClient + ASGITransport against the in-memory store; each test
gets a fresh app lifespan and therefore a fresh store.
"""

import uuid

import pytest

from civicdesk.errors import DependencyUnavailable
from conftest import auth_headers

pytestmark = pytest.mark.asyncio


async def _create_issue(client, headers, department="pwd", **extra):
    resp = await client.post("/issues", headers=headers, json={
        "title": "Pothole on AB Road", "description": "Deep pothole in the left lane",
        "department": department, **extra})
    assert resp.status_code == 200, resp.text
    return resp.json()


async def _create_worker(client, headers, department="pwd", name="Ravi Choudhary"):
    resp = await client.post("/workers", headers=headers, json={"name": name, "department": department})
    assert resp.status_code == 200, resp.text
    return resp.json()


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH & AUTH
# ═══════════════════════════════════════════════════════════════════════════════

class TestHealthAndAuth:
    async def test_health_endpoint(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["store"] == "memory"
        assert "timestamp" in data

    async def test_security_headers(self, client):
        resp = await client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    async def test_no_token(self, client):
        assert (await client.get("/departments")).status_code == 401

    async def test_invalid_token(self, client):
        resp = await client.get("/departments", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_unknown_role(self, client):
        resp = await client.get("/departments", headers=auth_headers("x", "superuser"))
        assert resp.status_code == 401

    async def test_departments(self, client, citizen_headers):
        resp = await client.get("/departments", headers=citizen_headers)
        assert resp.status_code == 200
        codes = [d["code"] for d in resp.json()]
        assert codes[:3] == ["PWD", "WSS", "SWM"]
        assert len(codes) == 9
        assert set(resp.json()[0]) == {"id", "name", "code"}


# ═══════════════════════════════════════════════════════════════════════════════
# ISSUES
# ═══════════════════════════════════════════════════════════════════════════════

class TestIssues:
    async def test_citizen_reports_issue(self, client, citizen_headers):
        issue = await _create_issue(client, citizen_headers, priority="high")
        assert issue["status"] == "pending"
        assert issue["priority"] == "high"
        assert issue["reported_by"] == "citizen-1"
        assert issue["reference"].startswith("PWD-")
        assert issue["original_post_id"]

    async def test_invalid_department(self, client, citizen_headers):
        resp = await client.post("/issues", headers=citizen_headers, json={
            "title": "Broken bench", "description": "In the park", "department": "parks"})
        assert resp.status_code == 422

    async def test_citizen_cannot_list(self, client, citizen_headers):
        assert (await client.get("/issues", headers=citizen_headers)).status_code == 403

    async def test_list_and_filter(self, client, citizen_headers, officer_headers):
        await _create_issue(client, citizen_headers, "pwd")
        await _create_issue(client, citizen_headers, "water")
        resp = await client.get("/issues", headers=officer_headers, params={"department": "water"})
        assert resp.status_code == 200
        assert [i["department"] for i in resp.json()] == ["water"]
        resp = await client.get("/issues", headers=officer_headers, params={"status": "pending"})
        assert len(resp.json()) == 2

    async def test_get_issue(self, client, citizen_headers, officer_headers):
        issue = await _create_issue(client, citizen_headers)
        resp = await client.get(f"/issues/{issue['id']}", headers=officer_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == issue["id"]

    async def test_unknown_issue_404(self, client, officer_headers):
        resp = await client.get(f"/issues/{uuid.uuid4()}", headers=officer_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    async def test_bad_id_400(self, client, officer_headers):
        resp = await client.get("/issues/not-a-uuid", headers=officer_headers)
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════════
# LIFECYCLE OVER HTTP
# ═══════════════════════════════════════════════════════════════════════════════

class TestLifecycleFlow:
    async def test_full_resolution(self, client, citizen_headers, manager_headers, officer_headers):
        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        worker_headers = auth_headers(worker["id"], "worker", department="pwd")

        resp = await client.put(f"/issues/{issue['id']}/assign", headers=manager_headers,
                                json={"worker_id": worker["id"]})
        assert resp.status_code == 200
        assert resp.json()["issue"]["status"] == "assign"

        resp = await client.post(f"/issues/{issue['id']}/proof", headers=worker_headers,
                                 json={"media_url": "https://media.example/p.jpg", "geo_verified": True})
        assert resp.status_code == 200
        assert resp.json()["issue"]["status"] == "pending-review"

        resp = await client.put(f"/issues/{issue['id']}/proof/approve", headers=officer_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["issue"]["status"] == "resolved"
        assert [e["kind"] for e in body["effects"]] == \
            ["mirror_post", "worker_load", "disclosure_post"]
        assert all(e["ok"] for e in body["effects"])

        resp = await client.put(f"/issues/{issue['id']}/proof/approve", headers=officer_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "already_approved"

        resp = await client.get("/scores/workers", headers=citizen_headers)
        assert resp.json()[0]["civic_score"] == 100
        assert resp.json()[0]["tasks_completed"] == 1

    async def test_only_assigned_worker_submits_proof(self, client, citizen_headers, manager_headers):
        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        await client.put(f"/issues/{issue['id']}/assign", headers=manager_headers,
                         json={"worker_id": worker["id"]})
        stranger = auth_headers(str(uuid.uuid4()), "worker")
        resp = await client.post(f"/issues/{issue['id']}/proof", headers=stranger,
                                 json={"media_url": "https://media.example/p.jpg"})
        assert resp.status_code == 403

    async def test_assign_conflicts(self, client, citizen_headers, manager_headers):
        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        url = f"/issues/{issue['id']}/assign"
        await client.put(url, headers=manager_headers, json={"worker_id": worker["id"]})
        resp = await client.put(url, headers=manager_headers, json={"worker_id": worker["id"]})
        assert resp.status_code == 409
        assert resp.json()["error"] == "already_assigned"

    async def test_inactive_worker(self, client, citizen_headers, manager_headers):
        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        resp = await client.put(f"/workers/{worker['id']}/active", headers=manager_headers,
                                json={"active": False})
        assert resp.json()["active"] is False
        resp = await client.put(f"/issues/{issue['id']}/assign", headers=manager_headers,
                                json={"worker_id": worker["id"]})
        assert resp.status_code == 409
        assert resp.json()["error"] == "worker_unavailable"

    async def test_proof_on_pending_issue(self, client, citizen_headers, officer_headers):
        issue = await _create_issue(client, citizen_headers)
        resp = await client.post(f"/issues/{issue['id']}/proof", headers=officer_headers,
                                 json={"media_url": "https://media.example/p.jpg"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"

    async def test_citizen_cannot_assign(self, client, citizen_headers):
        issue = await _create_issue(client, citizen_headers)
        resp = await client.put(f"/issues/{issue['id']}/assign", headers=citizen_headers,
                                json={"worker_id": str(uuid.uuid4())})
        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════════
# ESCALATION OVER HTTP
# ═══════════════════════════════════════════════════════════════════════════════

class TestEscalationFlow:
    async def test_escalate_and_approve(self, client, citizen_headers, officer_headers, admin_headers):
        issue = await _create_issue(client, citizen_headers)
        resp = await client.post(f"/issues/{issue['id']}/escalation", headers=officer_headers,
                                 json={"reason": "Child injured here yesterday"})
        assert resp.status_code == 200
        assert resp.json()["issue"]["escalation"]["status"] == "pending"

        # officers may raise but not decide escalations
        resp = await client.put(f"/issues/{issue['id']}/escalation/approve", headers=officer_headers)
        assert resp.status_code == 403

        resp = await client.put(f"/issues/{issue['id']}/escalation/approve", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["issue"]["status"] == "assign"
        assert [e["kind"] for e in body["effects"]] == ["mirror_post", "disclosure_post", "notify_citizen"]

        resp = await client.put(f"/issues/{issue['id']}/escalation/reject", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"

    async def test_escalation_lowers_department_score(self, client, citizen_headers, officer_headers,
                                                      manager_headers):
        issue = await _create_issue(client, citizen_headers, "water")
        await client.post(f"/issues/{issue['id']}/escalation", headers=officer_headers,
                          json={"reason": "No response in a week"})
        resp = await client.get("/scores/departments", headers=citizen_headers, params={"fresh": True})
        assert resp.status_code == 200
        water = next(s for s in resp.json() if s["department"] == "water")
        assert water["escalated_count"] == 1
        assert water["base_score"] == -50
        assert water["score"] == 0
        assert len(resp.json()) == 9


# ═══════════════════════════════════════════════════════════════════════════════
# SCORES
# ═══════════════════════════════════════════════════════════════════════════════

class TestScores:
    async def test_leaderboard_reflects_each_approval(self, client, citizen_headers, manager_headers,
                                                      officer_headers):
        before = await client.get("/scores/departments", headers=citizen_headers)
        pwd = next(s for s in before.json() if s["department"] == "pwd")
        assert (pwd["resolved_count"], pwd["score"]) == (0, 0)

        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        await client.put(f"/issues/{issue['id']}/assign", headers=manager_headers,
                         json={"worker_id": worker["id"]})
        await client.post(f"/issues/{issue['id']}/proof", headers=auth_headers(worker["id"], "worker"),
                          json={"media_url": "https://media.example/p.jpg"})
        resp = await client.put(f"/issues/{issue['id']}/proof/approve", headers=officer_headers)
        assert resp.status_code == 200

        after = await client.get("/scores/departments", headers=citizen_headers)
        pwd = next(s for s in after.json() if s["department"] == "pwd")
        assert pwd["resolved_count"] == 1
        assert pwd["score"] >= 100
        assert after.json()[0]["department"] == "pwd"

    async def test_credit_outage_returns_503_and_retry_settles(self, client, citizen_headers,
                                                              manager_headers, officer_headers,
                                                              monkeypatch):
        import portal

        issue = await _create_issue(client, citizen_headers)
        worker = await _create_worker(client, manager_headers)
        await client.put(f"/issues/{issue['id']}/assign", headers=manager_headers,
                         json={"worker_id": worker["id"]})
        await client.post(f"/issues/{issue['id']}/proof", headers=auth_headers(worker["id"], "worker"),
                          json={"media_url": "https://media.example/p.jpg"})

        def down(*args, **kwargs):
            raise DependencyUnavailable("store unavailable")
        monkeypatch.setattr(portal.store, "increment_worker_score", down)
        url = f"/issues/{issue['id']}/proof/approve"
        resp = await client.put(url, headers=officer_headers)
        assert resp.status_code == 503
        assert resp.json()["error"] == "dependency_unavailable"

        monkeypatch.undo()
        resp = await client.put(url, headers=officer_headers)
        assert resp.status_code == 200
        assert resp.json()["issue"]["credit_pending"] is False
        workers = (await client.get("/scores/workers", headers=citizen_headers)).json()
        assert workers[0]["tasks_completed"] == 1


# ═══════════════════════════════════════════════════════════════════════════════
# WORKERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestWorkers:
    async def test_create_and_list(self, client, manager_headers, officer_headers):
        await _create_worker(client, manager_headers, "pwd", "Ravi")
        await _create_worker(client, manager_headers, "water", "Meena")
        resp = await client.get("/workers", headers=officer_headers, params={"department": "water"})
        assert [w["name"] for w in resp.json()] == ["Meena"]

    async def test_officer_cannot_create(self, client, officer_headers):
        resp = await client.post("/workers", headers=officer_headers,
                                 json={"name": "Ravi", "department": "pwd"})
        assert resp.status_code == 403
