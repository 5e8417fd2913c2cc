# Issue, worker, post and score documents

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import now_utc

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Department(str, Enum):
    PWD = "pwd"
    WATER = "water"
    SWM = "swm"
    TRAFFIC = "traffic"
    HEALTH = "health"
    ENVIRONMENT = "environment"
    ELECTRICITY = "electricity"
    DISASTER = "disaster"
    ADMIN = "admin"

class IssueStatus(str, Enum):
    PENDING = "pending"
    ASSIGN = "assign"
    PENDING_REVIEW = "pending-review"
    RESOLVED = "resolved"
    REOPENED = "reopened"

class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

class ProofStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class EscalationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

TERMINAL_ESCALATION_STATUSES = {EscalationStatus.APPROVED.value, EscalationStatus.REJECTED.value}

class PostStatus(str, Enum):
    """Status shown on the citizen-facing post that mirrors an issue."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    ASSIGN = "assign"
    RESOLVED = "resolved"
    REOPENED = "reopened"
    ESCALATED_APPROVED = "escalated-approved"

class PostKind(str, Enum):
    CITIZEN = "citizen"
    DISCLOSURE = "disclosure"

class DisclosureTag(str, Enum):
    RESOLUTION = "resolution"
    PRIORITY_ESCALATION = "priority-escalation"

class UserRole(str, Enum):
    CITIZEN = "citizen"
    WORKER = "worker"
    OFFICER = "officer"
    MANAGER = "manager"
    ADMIN = "admin"

# ---------------------------------------------------------------------------
# Issue sub-documents
# ---------------------------------------------------------------------------
class Geolocation(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    type: Optional[str] = None
    coordinates: Optional[List[float]] = None
    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v):
        if v is not None and len(v) != 2:
            raise ValueError("Coordinates must be [longitude, latitude]")
        return v
    @model_validator(mode='before')
    @classmethod
    def fill_point(cls, values):
        if isinstance(values, dict):
            values = dict(values)
            if values.get('coordinates') is not None and len(values['coordinates']) == 2:
                values['longitude'] = values['coordinates'][0]
                values['latitude'] = values['coordinates'][1]
            elif values.get('latitude') is not None and values.get('longitude') is not None:
                values['coordinates'] = [values['longitude'], values['latitude']]
                values['type'] = 'Point'
        return values

class AssignedPersonnel(BaseModel):
    id: str
    name: str
    department: str
    contact: Optional[str] = None

class ProofOfWork(BaseModel):
    media_url: str = Field(..., max_length=2000)
    timestamp: datetime = Field(default_factory=now_utc)
    location: Optional[Geolocation] = None
    geo_verified: bool = False
    notes: str = Field("", max_length=5000)

class Escalation(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: EscalationStatus = EscalationStatus.PENDING
    reason: str
    escalated_by: str
    escalated_at: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ESCALATION_STATUSES

class RatingSummary(BaseModel):
    average: Optional[float] = None

class PublicRatings(BaseModel):
    work: Optional[RatingSummary] = None
    escalation: Optional[RatingSummary] = None

class AuditEntry(BaseModel):
    status: str
    timestamp: datetime
    updated_by: str

# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
class Issue(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    reference: Optional[str] = None
    title: str = ""
    description: str = ""
    location: Optional[str] = None
    status: IssueStatus = IssueStatus.PENDING
    priority: Priority = Priority.MEDIUM
    department: Department
    assigned_personnel: Optional[AssignedPersonnel] = None
    proof_of_work: List[ProofOfWork] = Field(default_factory=list)
    proof_status: Optional[ProofStatus] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    escalation: Optional[Escalation] = None
    escalation_history: List[Escalation] = Field(default_factory=list)
    public_ratings: Optional[PublicRatings] = None
    original_post_id: Optional[str] = None
    reported_by: Optional[str] = None
    credit_pending: bool = False
    status_history: List[AuditEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Worker(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    department: Department
    contact: Optional[str] = None
    active: bool = True
    civic_score: int = 0
    tasks_completed: int = 0
    earned_badges: int = 0
    active_tasks: int = 0

    def as_personnel(self) -> AssignedPersonnel:
        return AssignedPersonnel(id=self.id, name=self.name,
                                 department=self.department, contact=self.contact)

# ---------------------------------------------------------------------------
# Derived scores
# ---------------------------------------------------------------------------
class DepartmentScore(BaseModel):
    department: str
    name: str
    resolved_count: int = 0
    escalated_count: int = 0
    likes_total: int = 0
    rating_adjustment: int = 0
    base_score: int = 0
    score: int = 0
    rank: int = 0
    badge: Optional[str] = None
    trend_label: str = "0"

class WorkerScore(BaseModel):
    worker_id: str
    name: str
    department: str
    civic_score: int
    tasks_completed: int
    earned_badges: int

# ---------------------------------------------------------------------------
# Document conversion
# ---------------------------------------------------------------------------
def from_doc(doc: dict) -> dict:
    """Storage documents carry `_id`; the models expose it as `id`."""
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out

def issue_from_doc(doc: dict) -> Issue:
    return Issue.model_validate(from_doc(doc))

def worker_from_doc(doc: dict) -> Worker:
    return Worker.model_validate(from_doc(doc))
