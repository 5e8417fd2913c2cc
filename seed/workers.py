# Seed data: Field workers (two or more per operational department)

from civicdesk.config import new_id

WORKERS = [
    {"key": "pwd_ravi",     "name": "Ravi Choudhary",  "department": "pwd",
     "contact": "9826010001", "civic_score": 1200, "tasks_completed": 12, "earned_badges": 2},
    {"key": "pwd_sunil",    "name": "Sunil Yadav",     "department": "pwd",
     "contact": "9826010002", "civic_score": 400, "tasks_completed": 4},
    {"key": "water_meena",  "name": "Meena Rathore",   "department": "water",
     "contact": "9826010003", "civic_score": 2100, "tasks_completed": 21, "earned_badges": 3},
    {"key": "water_arjun",  "name": "Arjun Patidar",   "department": "water",
     "contact": "9826010004", "active": False},
    {"key": "swm_kavita",   "name": "Kavita Solanki",  "department": "swm",
     "contact": "9826010005", "civic_score": 5200, "tasks_completed": 52, "earned_badges": 5},
    {"key": "swm_deepak",   "name": "Deepak Malviya",  "department": "swm",
     "contact": "9826010006", "civic_score": 900, "tasks_completed": 9},
    {"key": "traffic_imran", "name": "Imran Qureshi",  "department": "traffic",
     "contact": "9826010007", "civic_score": 300, "tasks_completed": 3},
    {"key": "health_pooja", "name": "Pooja Verma",     "department": "health",
     "contact": "9826010008", "civic_score": 1000, "tasks_completed": 10, "earned_badges": 2},
    {"key": "env_nitin",    "name": "Nitin Joshi",     "department": "environment",
     "contact": "9826010009", "civic_score": 600, "tasks_completed": 6},
    {"key": "elc_farhan",   "name": "Farhan Sheikh",   "department": "electricity",
     "contact": "9826010010", "civic_score": 1500, "tasks_completed": 15, "earned_badges": 2},
    {"key": "elc_rekha",    "name": "Rekha Gupta",     "department": "electricity",
     "contact": "9826010011"},
    {"key": "dmg_vikram",   "name": "Vikram Thakur",   "department": "disaster",
     "contact": "9826010012", "civic_score": 200, "tasks_completed": 2},
]


def import_workers(db) -> dict[str, str]:
    """Insert seed workers. Returns {key: _id} mapping."""
    print("\n  Importing workers...")
    worker_ids: dict[str, str] = {}
    for w in WORKERS:
        wid = new_id()
        db.workers.insert_one({
            "_id": wid,
            "name": w["name"],
            "department": w["department"],
            "contact": w["contact"],
            "active": w.get("active", True),
            "civic_score": w.get("civic_score", 0),
            "tasks_completed": w.get("tasks_completed", 0),
            "earned_badges": w.get("earned_badges", 0),
            "active_tasks": 0,
        })
        worker_ids[w["key"]] = wid
        print(f"    {w['name']:18s}  ({w['department']}{'' if w.get('active', True) else ', inactive'})")
    db.workers.create_index("department")
    print(f"  => {len(WORKERS)} workers created")
    return worker_ids
