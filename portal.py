# Civic Desk: issue lifecycle & department scoring portal
# FastAPI + MongoDB

import os
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from pydantic import BaseModel, Field
from jose import JWTError, jwt
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from civicdesk import config
from civicdesk.config import DEPARTMENTS, RESCORE_INTERVAL_SECONDS, STORE_BACKEND

JWT_SECRET = os.getenv("JWT_SECRET", "")
if not JWT_SECRET or len(JWT_SECRET) < 32:
    raise RuntimeError(
        "FATAL: JWT_SECRET must be set in the environment and be at least 32 characters. "
        "It must match the secret the auth provider signs tokens with."
    )
JWT_ALGORITHM = "HS256"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from civicdesk.errors import CivicDeskError, DependencyUnavailable, NotFound
from civicdesk.effects import TransitionResult
from civicdesk.escalation import EscalationWorkflow
from civicdesk.lifecycle import IssueLifecycle
from civicdesk.models import (Department, DepartmentScore, EscalationStatus, Geolocation, Issue,
                              IssueStatus, Priority, ProofOfWork, UserRole, Worker, WorkerScore,
                              issue_from_doc, worker_from_doc)
from civicdesk.scoring import ScoringEngine
from civicdesk.store import InMemoryStore, IssueStore

# tokens come from the external auth provider; this portal only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

STAFF_ROLES = (UserRole.WORKER.value, UserRole.OFFICER.value, UserRole.MANAGER.value, UserRole.ADMIN.value)
REVIEW_ROLES = (UserRole.OFFICER.value, UserRole.MANAGER.value, UserRole.ADMIN.value)
ESCALATION_ROLES = (UserRole.MANAGER.value, UserRole.ADMIN.value)

# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class IssueCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=3, max_length=5000)
    department: Department
    priority: Priority = Priority.MEDIUM
    location: Optional[str] = Field(None, max_length=300)
    media_url: Optional[str] = Field(None, max_length=2000)
    with_post: bool = True

class AssignRequest(BaseModel):
    worker_id: str = Field(..., max_length=64)

class ProofSubmission(BaseModel):
    media_url: str = Field(..., min_length=1, max_length=2000)
    location: Optional[Geolocation] = None
    geo_verified: bool = False
    notes: str = Field("", max_length=5000)

class EscalationRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=2000)

class WorkerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    department: Department
    contact: Optional[str] = Field(None, max_length=100)
    active: bool = True

class WorkerActiveUpdate(BaseModel):
    active: bool

# ---------------------------------------------------------------------------
# App & Globals
# ---------------------------------------------------------------------------
app = FastAPI(title="Civic Desk: Issue Lifecycle & Department Scoring")
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cache-Control"] = "no-store"
        return response

app.add_middleware(SecurityHeadersMiddleware)
store: Optional[IssueStore] = None
lifecycle: Optional[IssueLifecycle] = None
escalations: Optional[EscalationWorkflow] = None
scoring: Optional[ScoringEngine] = None
executor = ThreadPoolExecutor(max_workers=10)
_leaderboard = {"scores": None, "computed_at": None, "periodic": False}

# ---------------------------------------------------------------------------
# Domain errors -> HTTP
# ---------------------------------------------------------------------------
_ERROR_STATUS = [(NotFound, 404), (DependencyUnavailable, 503)]

@app.exception_handler(CivicDeskError)
async def civic_desk_error_handler(request: Request, exc: CivicDeskError):
    status_code = next((code for kind, code in _ERROR_STATUS if isinstance(exc, kind)), 409)
    logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, status_code, exc.code, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": exc.code})

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_store()
    rescore_task = None
    if RESCORE_INTERVAL_SECONDS > 0:
        rescore_task = asyncio.create_task(rescore_loop(RESCORE_INTERVAL_SECONDS))
        _leaderboard["periodic"] = True
        logger.info("Department rescoring every %ss", RESCORE_INTERVAL_SECONDS)
    yield
    if rescore_task:
        rescore_task.cancel()
        with suppress(asyncio.CancelledError):
            await rescore_task
    if store:
        store.close()

app.router.lifespan_context = lifespan

async def startup_store():
    global store, lifecycle, escalations, scoring
    if STORE_BACKEND == "memory":
        store = InMemoryStore()
    else:
        from civicdesk.mongo_store import MongoStore
        store = MongoStore(config.MONGODB_URL, config.MONGODB_DB)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(executor, store.ensure_indexes)
    lifecycle = IssueLifecycle(store)
    escalations = EscalationWorkflow(store)
    scoring = ScoringEngine(store)
    _leaderboard.update(scores=None, computed_at=None, periodic=False)
    logger.info("Store initialized (%s)", STORE_BACKEND)

async def rescore_loop(interval: int):
    loop = asyncio.get_event_loop()
    while True:
        scores = await loop.run_in_executor(executor, scoring.department_leaderboard)
        _leaderboard["scores"] = scores
        _leaderboard["computed_at"] = datetime.now(timezone.utc)
        await asyncio.sleep(interval)

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_store():
    if store is None:
        raise HTTPException(status_code=503, detail="Store not initialized")
    return store

async def run_sync(fn, *args, **kwargs):
    """Run a blocking store or engine call on the worker pool."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(executor, partial(fn, *args, **kwargs))

# ---------------------------------------------------------------------------
# Auth Helpers
# ---------------------------------------------------------------------------
async def get_current_actor(token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    sub = payload.get("sub")
    role = payload.get("role")
    if sub is None or role not in {r.value for r in UserRole}:
        raise HTTPException(status_code=401, detail="Invalid token")
    return {"sub": sub, "name": payload.get("name") or sub, "role": role,
            "department": payload.get("department")}

def require_role(*roles):
    async def role_checker(actor=Depends(get_current_actor)):
        if actor["role"] not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor
    return role_checker

def sanitize_str(value: str) -> str:
    """Ensure a value is a plain string, not a dict/list that could be a NoSQL operator."""
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail="Invalid parameter type")
    return str(value)

def validate_uuid(value: str, param_name: str = "id") -> str:
    """Validate that a string is a valid UUID format."""
    value = sanitize_str(value)
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        raise HTTPException(status_code=400, detail=f"Invalid {param_name} format")
    return value

# ---------------------------------------------------------------------------
# DEPARTMENTS
# ---------------------------------------------------------------------------
@app.get("/departments")
async def list_departments(actor=Depends(get_current_actor)):
    return DEPARTMENTS

# ---------------------------------------------------------------------------
# ISSUES
# ---------------------------------------------------------------------------
@app.post("/issues", response_model=Issue)
@limiter.limit("10/minute")
async def report_issue(request: Request, data: IssueCreate, actor=Depends(get_current_actor),
                       store=Depends(get_store)):
    return await run_sync(
        lifecycle.report_issue, data.title, data.description, data.department.value,
        priority=data.priority.value, location=data.location, reported_by=actor["sub"],
        author_name=actor["name"], media_url=data.media_url, with_post=data.with_post)

@app.get("/issues", response_model=List[Issue])
async def list_issues(
    department: Optional[Department] = None, status: Optional[IssueStatus] = None,
    escalation_status: Optional[EscalationStatus] = None,
    limit: int = Query(50, ge=1, le=100), skip: int = Query(0, ge=0, le=10000),
    actor=Depends(require_role(*STAFF_ROLES)), store=Depends(get_store)):
    docs = await run_sync(
        store.query_issues,
        department=department.value if department else None,
        status=status.value if status else None,
        escalation_status=escalation_status.value if escalation_status else None)
    issues = sorted((issue_from_doc(d) for d in docs),
                    key=lambda i: i.created_at or datetime.min.replace(tzinfo=timezone.utc),
                    reverse=True)
    return issues[skip:skip + limit]

@app.get("/issues/{issue_id}", response_model=Issue)
async def get_issue(issue_id: str, actor=Depends(require_role(*STAFF_ROLES)), store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return issue_from_doc(await run_sync(store.get_issue, issue_id))

@app.put("/issues/{issue_id}/assign", response_model=TransitionResult)
async def assign_issue(issue_id: str, assignment: AssignRequest,
                       actor=Depends(require_role(*REVIEW_ROLES)), store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    worker_id = validate_uuid(assignment.worker_id, "worker_id")
    return await run_sync(lifecycle.assign_task, issue_id, worker_id, actor["sub"])

@app.post("/issues/{issue_id}/proof", response_model=TransitionResult)
async def submit_proof(issue_id: str, proof: ProofSubmission,
                       actor=Depends(require_role(*STAFF_ROLES)), store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    if actor["role"] == UserRole.WORKER.value:
        issue = issue_from_doc(await run_sync(store.get_issue, issue_id))
        if issue.assigned_personnel is None or issue.assigned_personnel.id != actor["sub"]:
            raise HTTPException(status_code=403, detail="Only the assigned worker can submit proof")
    evidence = ProofOfWork(media_url=proof.media_url, location=proof.location,
                           geo_verified=proof.geo_verified, notes=proof.notes)
    return await run_sync(lifecycle.submit_proof_of_work, issue_id, evidence, actor["sub"])

@app.put("/issues/{issue_id}/proof/approve", response_model=TransitionResult)
async def approve_proof(issue_id: str, actor=Depends(require_role(*REVIEW_ROLES)),
                        store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(lifecycle.approve_proof, issue_id, actor["sub"])

@app.put("/issues/{issue_id}/proof/reject", response_model=TransitionResult)
async def reject_proof(issue_id: str, actor=Depends(require_role(*REVIEW_ROLES)),
                       store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(lifecycle.reject_proof, issue_id, actor["sub"])

@app.put("/issues/{issue_id}/reopen", response_model=TransitionResult)
async def reopen_issue(issue_id: str, actor=Depends(require_role(*REVIEW_ROLES)),
                       store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(lifecycle.reopen_issue, issue_id, actor["sub"])

@app.put("/issues/{issue_id}/resume", response_model=TransitionResult)
async def resume_work(issue_id: str, actor=Depends(require_role(*REVIEW_ROLES)),
                      store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(lifecycle.resume_work, issue_id, actor["sub"])

# ---------------------------------------------------------------------------
# ESCALATION
# ---------------------------------------------------------------------------
@app.post("/issues/{issue_id}/escalation", response_model=TransitionResult)
async def escalate_issue(issue_id: str, req: EscalationRequest,
                         actor=Depends(require_role(*REVIEW_ROLES)), store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(escalations.escalate, issue_id, req.reason, actor["sub"])

@app.put("/issues/{issue_id}/escalation/approve", response_model=TransitionResult)
async def approve_escalation(issue_id: str, actor=Depends(require_role(*ESCALATION_ROLES)),
                             store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(escalations.approve_escalation, issue_id, actor["sub"])

@app.put("/issues/{issue_id}/escalation/reject", response_model=TransitionResult)
async def reject_escalation(issue_id: str, actor=Depends(require_role(*ESCALATION_ROLES)),
                            store=Depends(get_store)):
    issue_id = validate_uuid(issue_id, "issue_id")
    return await run_sync(escalations.reject_escalation, issue_id, actor["sub"])

# ---------------------------------------------------------------------------
# WORKERS
# ---------------------------------------------------------------------------
@app.get("/workers", response_model=List[Worker])
async def list_workers(department: Optional[Department] = None,
                       actor=Depends(require_role(*STAFF_ROLES)), store=Depends(get_store)):
    docs = await run_sync(store.query_workers, department.value if department else None)
    return [worker_from_doc(d) for d in docs]

@app.post("/workers", response_model=Worker)
async def create_worker(data: WorkerCreate, actor=Depends(require_role(*ESCALATION_ROLES)),
                        store=Depends(get_store)):
    worker_id = await run_sync(store.insert_worker, {
        "name": data.name, "department": data.department.value,
        "contact": data.contact, "active": data.active})
    logger.info("Worker %s (%s) created by %s", worker_id, data.department.value, actor["sub"])
    return worker_from_doc(await run_sync(store.get_worker, worker_id))

@app.put("/workers/{worker_id}/active", response_model=Worker)
async def set_worker_active(worker_id: str, update: WorkerActiveUpdate,
                            actor=Depends(require_role(*ESCALATION_ROLES)), store=Depends(get_store)):
    worker_id = validate_uuid(worker_id, "worker_id")
    doc = await run_sync(store.set_worker_active, worker_id, update.active)
    logger.info("Worker %s active=%s set by %s", worker_id, update.active, actor["sub"])
    return worker_from_doc(doc)

# ---------------------------------------------------------------------------
# SCORES
# ---------------------------------------------------------------------------
@app.get("/scores/departments", response_model=List[DepartmentScore])
async def department_scores(fresh: bool = False, actor=Depends(get_current_actor),
                            store=Depends(get_store)):
    # the cache is only served while the rescoring task keeps it current
    if _leaderboard["periodic"] and _leaderboard["scores"] is not None and not fresh:
        return _leaderboard["scores"]
    scores = await run_sync(scoring.department_leaderboard)
    _leaderboard["scores"] = scores
    _leaderboard["computed_at"] = datetime.now(timezone.utc)
    return scores

@app.get("/scores/workers", response_model=List[WorkerScore])
async def worker_scores(department: Optional[Department] = None, actor=Depends(get_current_actor),
                        store=Depends(get_store)):
    return await run_sync(scoring.worker_leaderboard, department.value if department else None)

# ---------------------------------------------------------------------------
# HEALTH
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "healthy", "system": "Civic Desk", "store": STORE_BACKEND,
            "leaderboard_computed_at": _leaderboard["computed_at"],
            "timestamp": datetime.now(timezone.utc)}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
