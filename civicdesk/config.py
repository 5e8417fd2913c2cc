# Shared configuration, helpers, and constants for the civic desk core

import os
import uuid
from pathlib import Path
from datetime import datetime, timezone
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
_package_dir = Path(__file__).resolve().parent.parent          # repo root
for _env_path in [_package_dir / ".env", _package_dir.parent / ".env", Path.cwd() / ".env"]:
    if _env_path.is_file():
        load_dotenv(_env_path, override=False)
        break
else:
    load_dotenv(override=False)

MONGODB_URL   = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB    = os.getenv("MONGODB_DB", "civic_desk")
STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo")
RESCORE_INTERVAL_SECONDS = int(os.getenv("RESCORE_INTERVAL_SECONDS", "300"))

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def new_id() -> str:
    return str(uuid.uuid4())

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

# ---------------------------------------------------------------------------
# Department directory (id -> display name, code)
# ---------------------------------------------------------------------------
DEPARTMENTS = [
    {"id": "pwd",         "name": "Public Works Department",                  "code": "PWD"},
    {"id": "water",       "name": "Water Supply & Sewage",                    "code": "WSS"},
    {"id": "swm",         "name": "Solid Waste Management",                   "code": "SWM"},
    {"id": "traffic",     "name": "Traffic Police / Transport Department",    "code": "TRF"},
    {"id": "health",      "name": "Health & Sanitation Department",           "code": "HSN"},
    {"id": "environment", "name": "Environment & Parks Department",           "code": "ENV"},
    {"id": "electricity", "name": "Electricity Department",                   "code": "ELC"},
    {"id": "disaster",    "name": "Disaster Management / Emergency Response", "code": "DMG"},
    {"id": "admin",       "name": "Administration",                           "code": "ADM"},
]

DEPARTMENTS_BY_ID = {d["id"]: d for d in DEPARTMENTS}

def department_name(department_id: str) -> str:
    dept = DEPARTMENTS_BY_ID.get(department_id)
    return dept["name"] if dept else department_id

def department_aliases(department_id: str) -> set[str]:
    """Lower-cased display-name variants a department may author posts under."""
    dept = DEPARTMENTS_BY_ID.get(department_id)
    if dept is None:
        return {department_id.lower()}
    return {dept["name"].lower(), dept["code"].lower(), dept["id"].lower(),
            f"{dept['id']}_dept".lower()}

# ---------------------------------------------------------------------------
# Department scoring weights
# ---------------------------------------------------------------------------
RESOLVED_WEIGHT  = 100
LIKE_WEIGHT      = 10
ESCALATED_WEIGHT = 50

# (lower bound inclusive, adjustment), checked top-down
WORK_RATING_BANDS = [(4.0, 50), (3.0, 20), (2.0, 5)]
WORK_RATING_FLOOR_ADJUSTMENT = -30

ESCALATION_UPHELD_MIN_AVG      = 4.0
ESCALATION_UPHELD_ADJUSTMENT   = -40
ESCALATION_UNFOUNDED_MAX_AVG   = 2.0
ESCALATION_UNFOUNDED_ADJUSTMENT = 20

RANK_BADGES = {1: "gold", 2: "silver", 3: "bronze"}

# ---------------------------------------------------------------------------
# Worker credit
# ---------------------------------------------------------------------------
PROOF_APPROVAL_POINTS   = 100
TASK_BADGE_THRESHOLDS   = (10, 20, 50)
SCORE_BADGE_THRESHOLDS  = (1000, 5000)
