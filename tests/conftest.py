"""
Shared pytest fixtures for the Civic Desk test suite.

Engine tests run against an InMemoryStore. Portal tests use an in-process
httpx AsyncClient with the app lifespan entered explicitly and bearer tokens
minted locally with the shared secret, the way the auth provider signs them.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# must be set before civicdesk.config / portal are imported
os.environ["JWT_SECRET"] = "test-secret-for-civic-desk-0123456789abcdef"
os.environ["STORE_BACKEND"] = "memory"
os.environ["RESCORE_INTERVAL_SECONDS"] = "0"

import pytest
import pytest_asyncio
import httpx
from jose import jwt

# Ensure the repo root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from civicdesk.escalation import EscalationWorkflow
from civicdesk.lifecycle import IssueLifecycle
from civicdesk.models import ProofOfWork
from civicdesk.store import InMemoryStore


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def lifecycle(store):
    return IssueLifecycle(store)


@pytest.fixture
def escalations(store):
    return EscalationWorkflow(store)


@pytest.fixture
def worker(store):
    """An active PWD worker with clean counters; returns its id."""
    return store.insert_worker({"name": "Ravi Choudhary", "department": "pwd", "contact": "9826010001"})


@pytest.fixture
def make_issue(lifecycle):
    def _make(department="pwd", **kwargs):
        kwargs.setdefault("reported_by", "citizen-1")
        kwargs.setdefault("author_name", "Aarti Sharma")
        return lifecycle.report_issue("Pothole on AB Road", "Deep pothole in the left lane",
                                      department, **kwargs)
    return _make


@pytest.fixture
def issue(make_issue):
    return make_issue()


@pytest.fixture
def evidence():
    return ProofOfWork(media_url="https://media.example/proof/1.jpg", notes="Patched and levelled")


@pytest.fixture
def resolved_issue(lifecycle, issue, worker, evidence):
    """Issue taken through assign -> proof -> approval."""
    lifecycle.assign_task(issue.id, worker, "pwd_dept")
    lifecycle.submit_proof_of_work(issue.id, evidence, worker)
    return lifecycle.approve_proof(issue.id, "pwd_dept").issue


# ---------------------------------------------------------------------------
# Portal
# ---------------------------------------------------------------------------
def make_token(sub: str, role: str, name: str = None, department: str = None) -> str:
    claims = {"sub": sub, "role": role, "name": name or sub, "department": department,
              "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    return jwt.encode(claims, os.environ["JWT_SECRET"], algorithm="HS256")


def auth_headers(sub: str, role: str, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, role, **kwargs)}"}


@pytest_asyncio.fixture
async def client():
    """In-process httpx AsyncClient over a fresh in-memory store."""
    from portal import app, lifespan, limiter
    # Disable rate limiting so intake tests aren't throttled
    limiter.enabled = False

    async with lifespan(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            yield c


@pytest.fixture
def citizen_headers():
    return auth_headers("citizen-1", "citizen", name="Aarti Sharma")


@pytest.fixture
def officer_headers():
    return auth_headers("water_dept", "officer", department="water")


@pytest.fixture
def manager_headers():
    return auth_headers("pwd_dept", "manager", department="pwd")


@pytest.fixture
def admin_headers():
    return auth_headers("admin_dept", "admin", department="admin")
