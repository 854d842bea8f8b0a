import argparse
import csv
import json
import logging
import os
import shutil
import time

import requests

from db import Database
from errors import HoopLogError, NotFoundError
from rest_api import HoopLogAPI
from seed_sample_data import seed

logger = logging.getLogger(__name__)

EXPORT_FIELDS = [
    "session_id",
    "title",
    "type",
    "difficulty",
    "duration",
    "intensity",
    "progress",
    "favorite",
    "subscribed_at",
]


def export_progress(db_path: str, email: str, fmt: str, output_dir: str = ".") -> str:
    """Write the subscribed sessions of ``email`` to a CSV or JSON file."""
    api = HoopLogAPI(db_path=db_path, seed=False)
    user = api.users.find_by_email(email.strip().lower())
    if user is None:
        raise NotFoundError("User not found")
    rows = [
        {
            "session_id": entry.id,
            "title": entry.title,
            "type": entry.type,
            "difficulty": entry.difficulty,
            "duration": entry.duration,
            "intensity": entry.intensity,
            "progress": record.progress,
            "favorite": record.favorite,
            "subscribed_at": record.created_at,
        }
        for entry, record in api.catalog.list_for_user(user.id)
    ]
    out_path = os.path.join(output_dir, f"sessions_{user.id}.{fmt}")
    with open(out_path, "w", encoding="utf-8", newline="") as f:
        if fmt == "csv":
            writer = csv.DictWriter(f, fieldnames=EXPORT_FIELDS)
            writer.writeheader()
            writer.writerows(rows)
        else:
            json.dump(rows, f, indent=2)
    return out_path


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def demo_data(db_path: str, yaml_path: str) -> None:
    """Create a demo user with a few subscriptions if none exists."""
    api = HoopLogAPI(db_path=db_path, yaml_path=yaml_path, seed=True)
    if api.users.find_by_email("demo@hooplog.app") is not None:
        print("Database already contains the demo user")
        return
    user, _ = api.auth.signup(
        {"fullName": "Demo Player", "email": "demo@hooplog.app", "password": "hooplog"}
    )
    prebuilt = api.catalog.list_prebuilt()
    for entry in prebuilt[:3]:
        api.tracking.subscribe(user.id, entry.id)
    if prebuilt:
        api.tracking.update_progress(user.id, prebuilt[0].id, {"progress": 40})
        api.tracking.toggle_favorite(user.id, prebuilt[0].id, True)
    api.catalog.create(
        user.id,
        {
            "title": "Driveway Free Throws",
            "type": "Shooting",
            "difficulty": "Easy",
            "duration": 15,
            "intensity": 3,
            "description": "100 free throws, track makes per 10.",
        },
    )
    print("Demo data inserted")


def serve(host: str, port: int, yaml_path: str, db_path: str = None) -> None:
    import uvicorn

    api = HoopLogAPI(db_path=db_path, yaml_path=yaml_path)
    uvicorn.run(api.app, host=host, port=port, log_level=api.config.log_level.lower())


def main() -> None:
    parser = argparse.ArgumentParser(description="HoopLog server and utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.add_argument("--db", default=None)
    srv.add_argument("--yaml", default="hooplog.yaml")

    sd = sub.add_parser("seed")
    sd.add_argument("--db", default="hooplog.db")

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="hooplog.db")
    exp.add_argument("--email", required=True)
    exp.add_argument("--fmt", choices=["csv", "json"], default="csv")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="hooplog.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="hooplog.db")

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db", default="hooplog.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="hooplog.db")
    demo.add_argument("--yaml", default="hooplog.yaml")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "serve":
            serve(args.host, args.port, args.yaml, args.db)
        elif args.cmd == "seed":
            seed(args.db)
        elif args.cmd == "export":
            print(export_progress(args.db, args.email, args.fmt, args.out))
        elif args.cmd == "backup":
            backup_db(args.db, args.out)
        elif args.cmd == "restore":
            restore_db(args.src, args.db)
        elif args.cmd == "vacuum":
            Database(args.db).vacuum()
        elif args.cmd == "demo":
            demo_data(args.db, args.yaml)
        elif args.cmd == "benchmark":
            benchmark(args.url, args.runs)
    except HoopLogError as exc:
        logger.error("%s failed: %s", args.cmd, exc.message)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
