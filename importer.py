# Civic Desk: Seed Data Importer
# Populates MongoDB with departments, workers, issues and posts
#
# Usage:  python importer.py      (from repo root)

import sys
from pathlib import Path

from pymongo import MongoClient

# Ensure the repo root is importable when running from elsewhere
_root_dir = Path(__file__).resolve().parent
if str(_root_dir) not in sys.path:
    sys.path.insert(0, str(_root_dir))

from civicdesk.config import MONGODB_DB, MONGODB_URL
from civicdesk.mongo_store import MongoStore
from civicdesk.scoring import ScoringEngine
from seed.departments import import_departments, SERVICE_ACCOUNTS
from seed.workers import import_workers, WORKERS
from seed.issues import import_issues

COLLECTIONS = ["issues", "posts", "notifications", "workers", "counters",
               "departments", "staff_accounts"]


def main():
    print("=" * 64)
    print("  Civic Desk: Data Importer")
    print("=" * 64)

    # ------------------------------------------------------------------
    # 1. Connect MongoDB
    # ------------------------------------------------------------------
    print("\n[1/5] Connecting to MongoDB...")
    mongo_client = MongoClient(MONGODB_URL, tz_aware=True)
    db = mongo_client[MONGODB_DB]
    print(f"  Connected: {MONGODB_URL} / {MONGODB_DB}")

    # ------------------------------------------------------------------
    # 2. Reset all collections
    # ------------------------------------------------------------------
    print("\n[2/5] Resetting collections...")
    for coll_name in COLLECTIONS:
        db[coll_name].drop()
    print(f"  MongoDB: {', '.join(COLLECTIONS)}")

    # ------------------------------------------------------------------
    # 3. Seed departments, service accounts and workers
    # ------------------------------------------------------------------
    print("\n[3/5] Departments & Workers")
    n_depts = import_departments(db)
    worker_ids = import_workers(db)

    # ------------------------------------------------------------------
    # 4. Seed issues with citizen and disclosure posts
    # ------------------------------------------------------------------
    print("\n[4/5] Issues")
    issues = import_issues(db, worker_ids)
    store = MongoStore(client=mongo_client, db_name=MONGODB_DB)
    store.ensure_indexes()

    # ------------------------------------------------------------------
    # 5. Leaderboard preview
    # ------------------------------------------------------------------
    print("\n[5/5] Department leaderboard")
    for s in ScoringEngine(store).department_leaderboard():
        print(f"    #{s.rank} {s.name[:40]:40s} {s.score:6d}  ({s.trend_label}) {s.badge or ''}")

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Departments:       {n_depts}")
    print(f"  Service accounts:  {len(SERVICE_ACCOUNTS)}")
    print(f"  Workers:           {len(WORKERS)}")
    print(f"  Issues:            {len(issues)}")
    print()
    print("  Service accounts (tokens issued by the auth provider):")
    for acct in SERVICE_ACCOUNTS[:3]:
        print(f"    {acct['username']:18s} {acct['role']}")
    print("=" * 64)
    mongo_client.close()


if __name__ == "__main__":
    main()
