# Seed data: Issues, citizen posts and disclosure posts
#
# Coverage matrix:
#   Statuses   : pending (3), assign (3), pending-review (2), resolved (4), reopened (1)
#   Escalation : pending (2), approved (1), rejected (1), with one re-escalation cycle
#   Ratings    : work averages across every band, escalation averages upheld / unfounded
#   Special    : unassigned issue reset to assign by escalation, inactive worker never assigned

from datetime import timedelta

from civicdesk.config import DEPARTMENTS_BY_ID, new_id, now_utc

# ---------------------------------------------------------------------------
# Issue records
# ---------------------------------------------------------------------------
ISSUES = [
    # ======================================================================
    # RESOLVED (4)
    # ======================================================================
    {"title": "Pothole cluster on AB Road near Palasia Square",
     "description": "Three deep potholes in the left lane, two-wheelers swerving into traffic.",
     "location": "AB Road, Palasia", "department": "pwd", "priority": "high",
     "status": "resolved", "worker": "pwd_ravi", "citizen": "citizen1", "days_ago": 20,
     "likes": 14, "work_rating": 4.5},

    {"title": "Overflowing garbage bins at Rajwada market",
     "description": "Bins have not been cleared for four days; stray animals scattering waste.",
     "location": "Rajwada", "department": "swm", "priority": "medium",
     "status": "resolved", "worker": "swm_kavita", "citizen": "citizen2", "days_ago": 12,
     "likes": 22, "work_rating": 3.4},

    {"title": "Streetlights out on Ring Road service lane",
     "description": "Entire stretch from Bhawarkuan to Tower Square is dark at night.",
     "location": "Ring Road", "department": "electricity", "priority": "high",
     "status": "resolved", "worker": "elc_farhan", "citizen": "citizen3", "days_ago": 9,
     "likes": 6, "work_rating": 1.8},

    {"title": "Sewage backflow in Sudama Nagar lane 4",
     "description": "Manhole overflowing into homes after every rain.",
     "location": "Sudama Nagar", "department": "water", "priority": "critical",
     "status": "resolved", "worker": "water_meena", "citizen": "citizen1", "days_ago": 30,
     "likes": 9, "work_rating": 2.6,
     "escalation": {"status": "approved", "reason": "Recurring health hazard, third complaint this month",
                    "escalated_by": "health_dept", "rating": 4.4}},

    # ======================================================================
    # PENDING-REVIEW (2)
    # ======================================================================
    {"title": "Broken divider at Vijay Nagar crossing",
     "description": "Concrete divider cracked and jutting into the lane.",
     "location": "Vijay Nagar", "department": "pwd", "priority": "medium",
     "status": "pending-review", "worker": "pwd_sunil", "citizen": "citizen4", "days_ago": 5,
     "likes": 3},

    {"title": "Mosquito breeding in stagnant water near Bengali Square",
     "description": "Empty plot has stagnant water; several dengue cases reported nearby.",
     "location": "Bengali Square", "department": "health", "priority": "high",
     "status": "pending-review", "worker": "health_pooja", "citizen": "citizen2", "days_ago": 4,
     "likes": 11},

    # ======================================================================
    # ASSIGN (3)
    # ======================================================================
    {"title": "Traffic signal stuck on red at Geeta Bhawan",
     "description": "Signal has shown red on all sides since morning.",
     "location": "Geeta Bhawan Square", "department": "traffic", "priority": "critical",
     "status": "assign", "worker": "traffic_imran", "citizen": "citizen3", "days_ago": 1,
     "likes": 5},

    {"title": "Fallen tree blocking Regional Park footpath",
     "description": "Large neem tree fell during the storm and blocks the walking track.",
     "location": "Regional Park", "department": "environment", "priority": "medium",
     "status": "assign", "worker": "env_nitin", "citizen": "citizen4", "days_ago": 2,
     "likes": 2, "proof_rejected": True},

    # unassigned, put back to assign when its escalation was reviewed
    {"title": "Waterlogging under Kanadia Road bridge",
     "description": "Underpass floods knee-deep; buses rerouted.",
     "location": "Kanadia Road", "department": "disaster", "priority": "high",
     "status": "assign", "worker": None, "citizen": "citizen1", "days_ago": 3,
     "likes": 7,
     "escalation": {"status": "rejected", "reason": "Seasonal issue, handled by ward office",
                    "escalated_by": "admin_dept", "rating": 1.5},
     "history": [{"status": "approved", "reason": "Ambulance route blocked",
                  "escalated_by": "disaster_dept"}]},

    # ======================================================================
    # REOPENED (1)
    # ======================================================================
    {"title": "Low water pressure in Scheme 54",
     "description": "Fixed last week but pressure dropped again within two days.",
     "location": "Scheme 54", "department": "water", "priority": "medium",
     "status": "reopened", "worker": "water_meena", "citizen": "citizen3", "days_ago": 15,
     "likes": 4, "work_rating": 2.2},

    # ======================================================================
    # PENDING (3)
    # ======================================================================
    {"title": "Open drain cover on MG Road",
     "description": "Drain cover missing outside the bank branch, very dangerous at night.",
     "location": "MG Road", "department": "pwd", "priority": "critical",
     "status": "pending", "worker": None, "citizen": "citizen2", "days_ago": 0,
     "likes": 1,
     "escalation": {"status": "pending", "reason": "Child injured here yesterday",
                    "escalated_by": "pwd_dept"}},

    {"title": "Garbage burning behind Annapurna temple",
     "description": "Smoke every evening from waste being burnt in the open.",
     "location": "Annapurna", "department": "swm", "priority": "low",
     "status": "pending", "worker": None, "citizen": "citizen4", "days_ago": 1,
     "likes": 0},

    {"title": "Loose overhead wire on Khajrana main road",
     "description": "Wire hanging low over the road after the storm.",
     "location": "Khajrana", "department": "electricity", "priority": "high",
     "status": "pending", "worker": None, "citizen": "citizen1", "days_ago": 0,
     "likes": 3,
     "escalation": {"status": "pending", "reason": "Electrocution risk near school",
                    "escalated_by": "electricity_dept"}},
]

CITIZENS = {
    "citizen1": "Aarti Sharma",
    "citizen2": "Rohit Jain",
    "citizen3": "Sana Khan",
    "citizen4": "Manoj Patel",
}

PROOF_MEDIA = "https://media.civicdesk.example/proof/{id}.jpg"


# ---------------------------------------------------------------------------
# Document builders
# ---------------------------------------------------------------------------
def _escalation_doc(entry: dict, at) -> dict:
    doc = {"status": entry["status"], "reason": entry["reason"],
           "escalated_by": entry["escalated_by"], "escalated_at": at}
    if entry["status"] == "approved":
        doc.update(approved_by="admin_dept", approved_at=at + timedelta(hours=6))
    elif entry["status"] == "rejected":
        doc.update(rejected_by="admin_dept", rejected_at=at + timedelta(hours=6))
    return doc


def _history(status: str, created, worker: bool) -> list[dict]:
    steps = ["pending"]
    if worker:
        steps.append("assign")
    if status in ("pending-review", "resolved", "reopened"):
        steps.append("pending-review")
    if status in ("resolved", "reopened"):
        steps.append("resolved")
    if status == "reopened":
        steps.append("reopened")
    if status == "assign" and not worker:
        steps.append("assign")
    return [{"status": s, "timestamp": created + timedelta(hours=4 * i), "updated_by": "seed"}
            for i, s in enumerate(steps)]


def build_issue(entry: dict, seq: int, worker_docs: dict[str, dict]) -> tuple[dict, dict]:
    """Return (issue_doc, citizen_post_doc) for one seed record."""
    dept = DEPARTMENTS_BY_ID[entry["department"]]
    created = now_utc() - timedelta(days=entry["days_ago"])
    issue_id, post_id = new_id(), new_id()
    worker = worker_docs.get(entry["worker"]) if entry["worker"] else None
    status = entry["status"]

    post_status = {"pending": "pending", "assign": "assigned", "pending-review": "assigned",
                   "resolved": "resolved", "reopened": "reopened"}[status]
    issue = {
        "_id": issue_id,
        "reference": f"{dept['code']}-{created.year}-{seq:06d}",
        "title": entry["title"], "description": entry["description"],
        "location": entry["location"], "department": entry["department"],
        "priority": entry["priority"], "status": status,
        "assigned_personnel": None, "proof_of_work": [], "proof_status": None,
        "escalation": None, "escalation_history": [], "public_ratings": None,
        "original_post_id": post_id, "reported_by": entry["citizen"],
        "status_history": _history(status, created, worker is not None),
        "created_at": created, "updated_at": created + timedelta(days=1),
    }
    if worker is not None:
        issue["assigned_personnel"] = {"id": worker["_id"], "name": worker["name"],
                                       "department": worker["department"],
                                       "contact": worker["contact"]}
    if status in ("pending-review", "resolved", "reopened") or entry.get("proof_rejected"):
        issue["proof_of_work"].append({
            "media_url": PROOF_MEDIA.format(id=issue_id), "timestamp": created + timedelta(hours=8),
            "location": None, "geo_verified": True, "notes": "Work completed on site."})
    if status == "pending-review":
        issue["proof_status"] = "pending"
    elif status in ("resolved", "reopened"):
        issue.update(proof_status="approved", approved_by=f"{entry['department']}_dept",
                     approved_at=created + timedelta(hours=12))
    elif entry.get("proof_rejected"):
        issue.update(proof_status="rejected", rejected_by=f"{entry['department']}_dept",
                     rejected_at=created + timedelta(hours=12))

    ratings = {}
    if entry.get("work_rating") is not None:
        ratings["work"] = {"average": entry["work_rating"]}
    if entry.get("escalation"):
        issue["escalation"] = _escalation_doc(entry["escalation"], created + timedelta(hours=2))
        if entry["escalation"].get("rating") is not None:
            ratings["escalation"] = {"average": entry["escalation"]["rating"]}
        if issue["escalation"]["status"] == "approved":
            post_status = "escalated-approved"
    for past in entry.get("history", []):
        issue["escalation_history"].append(_escalation_doc(past, created + timedelta(hours=1)))
    if ratings:
        issue["public_ratings"] = ratings

    post = {
        "_id": post_id, "kind": "citizen", "user_id": entry["citizen"],
        "author_name": CITIZENS[entry["citizen"]], "department": entry["department"],
        "issue_id": issue_id, "status": post_status,
        "content": f"{entry['title']}\n\n{entry['description']}",
        "media_url": None, "likes": [f"user-{i}" for i in range(entry["likes"])],
        "is_resolved": status == "resolved", "is_escalated": issue["escalation"] is not None,
        "public_ratings": issue["public_ratings"], "created_at": created,
    }
    return issue, post


def build_disclosures(issue: dict, likes: int) -> list[dict]:
    """Department-authored disclosure posts for resolved and escalation-approved issues."""
    dept = DEPARTMENTS_BY_ID[issue["department"]]
    out = []
    if issue["status"] in ("resolved", "reopened"):
        ratings = {"work": issue["public_ratings"]["work"]} if (issue.get("public_ratings") or {}).get("work") else None
        out.append({
            "_id": new_id(), "kind": "disclosure", "tag": "resolution",
            "author_name": dept["name"], "department": issue["department"],
            "issue_id": issue["_id"], "original_post_id": issue["original_post_id"],
            "status": "resolved",
            "content": f"Resolved: {issue['title']} ({issue['reference']}) has been resolved by {dept['name']}.",
            "media_url": issue["proof_of_work"][-1]["media_url"] if issue["proof_of_work"] else None,
            "likes": [f"user-{i}" for i in range(likes)], "is_resolved": True, "is_escalated": False,
            "public_ratings": ratings, "created_at": issue["approved_at"],
        })
    esc = issue.get("escalation")
    if esc and esc["status"] == "approved":
        ratings = issue.get("public_ratings") or {}
        out.append({
            "_id": new_id(), "kind": "disclosure", "tag": "priority-escalation",
            "author_name": f"{issue['department']}_dept", "department": issue["department"],
            "issue_id": issue["_id"], "original_post_id": issue["original_post_id"],
            "status": "escalated-approved",
            "content": (f"Priority escalation: {issue['title']} ({issue['reference']}) has been "
                        f"escalated for priority handling by {dept['name']}. Reason: {esc['reason']}"),
            "likes": [], "is_resolved": False, "is_escalated": True,
            "public_ratings": {"escalation": ratings["escalation"]} if ratings.get("escalation") else None,
            "created_at": esc["approved_at"],
        })
    return out


# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
def import_issues(db, worker_ids: dict[str, str]) -> list[dict]:
    """Insert seed issues with their citizen and disclosure posts. Returns the issue docs."""
    print("\n  Importing issues...")
    worker_docs = {key: db.workers.find_one({"_id": wid}) for key, wid in worker_ids.items()}
    inserted = []
    seqs: dict[str, int] = {}
    for entry in ISSUES:
        code = DEPARTMENTS_BY_ID[entry["department"]]["code"]
        seqs[code] = seqs.get(code, 0) + 1
        issue, post = build_issue(entry, seqs[code], worker_docs)
        db.issues.insert_one(issue)
        db.posts.insert_one(post)
        for disclosure in build_disclosures(issue, likes=entry["likes"] // 2):
            db.posts.insert_one(disclosure)
        if issue["assigned_personnel"] and issue["status"] in ("assign", "pending-review"):
            db.workers.update_one({"_id": issue["assigned_personnel"]["id"]}, {"$inc": {"active_tasks": 1}})
        inserted.append(issue)
        print(f"    {issue['reference']}  {issue['status']:15s} {entry['title'][:40]}")
    for code, seq in seqs.items():
        db.counters.update_one({"_id": f"issue:{code}"}, {"$set": {"seq": seq}}, upsert=True)
    print(f"  => {len(inserted)} issues created")
    return inserted
