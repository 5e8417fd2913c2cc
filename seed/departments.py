# Seed data: Department directory and department service accounts

from civicdesk.config import DEPARTMENTS, now_utc

# ---------------------------------------------------------------------------
# Service accounts (<id>_dept). Passwords live with the auth provider.
# ---------------------------------------------------------------------------
SERVICE_ACCOUNT_ROLES = {
    "pwd": "manager",
    "water": "officer",
    "swm": "officer",
    "traffic": "officer",
    "health": "manager",
    "environment": "officer",
    "electricity": "officer",
    "disaster": "manager",
    "admin": "admin",
}

SERVICE_ACCOUNTS = [
    {"username": f"{d['id']}_dept", "name": d["name"], "department": d["id"],
     "role": SERVICE_ACCOUNT_ROLES[d["id"]]}
    for d in DEPARTMENTS
]


def import_departments(db) -> int:
    """Insert the department directory and its service accounts."""
    print("\n  Importing departments...")
    for d in DEPARTMENTS:
        db.departments.insert_one({"_id": d["id"], **d, "created_at": now_utc()})
        print(f"    {d['code']:4s} {d['name']}")
    for acct in SERVICE_ACCOUNTS:
        db.staff_accounts.insert_one({"_id": acct["username"], **acct, "created_at": now_utc()})
    db.staff_accounts.create_index("department")
    print(f"  => {len(DEPARTMENTS)} departments, {len(SERVICE_ACCOUNTS)} service accounts")
    return len(DEPARTMENTS)
