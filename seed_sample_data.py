import csv
import logging
import os
import sys

from db import QuoteRepository, SessionRepository
from schemas import SessionCreate, parse

logger = logging.getLogger(__name__)

DATA_DIR = os.path.dirname(os.path.abspath(__file__))


def data_path(name: str) -> str:
    """Locate a bundled CSV beside this module or under the install prefix."""
    local = os.path.join(DATA_DIR, name)
    if os.path.exists(local):
        return local
    return os.path.join(sys.prefix, "share", "hooplog", name)


PREBUILT_CSV = data_path("prebuilt_sessions.csv")
QUOTES_CSV = data_path("quotes.csv")


def import_prebuilt_sessions(sessions: SessionRepository, csv_path: str = PREBUILT_CSV) -> int:
    """Insert prebuilt sessions from ``csv_path`` that are not stored yet."""
    if not os.path.exists(csv_path):
        return 0
    with open(csv_path, newline="", encoding="utf-8") as csvfile:
        rows = list(csv.DictReader(csvfile))
    added = 0
    for row in rows:
        fields = parse(
            SessionCreate,
            {
                "title": row["Title"],
                "type": row["Type"],
                "difficulty": row["Difficulty"],
                "duration": row["Duration"],
                "intensity": row["Intensity"],
                "description": row.get("Description", ""),
            },
        )
        if sessions.find_prebuilt_by_title(fields.title) is not None:
            continue
        sessions.add(
            fields.title,
            fields.type.value,
            fields.difficulty.value,
            fields.duration,
            fields.intensity,
            fields.description,
            row.get("Image") or None,
        )
        added += 1
    return added


def import_quotes(quotes: QuoteRepository, csv_path: str = QUOTES_CSV) -> int:
    if not os.path.exists(csv_path):
        return 0
    before = quotes.count()
    with open(csv_path, newline="", encoding="utf-8") as csvfile:
        for row in csv.DictReader(csvfile):
            quotes.add(row["Quote"], row.get("Author", ""))
    return quotes.count() - before


def seed(db_path: str = "hooplog.db") -> None:
    sessions = import_prebuilt_sessions(SessionRepository(db_path))
    quotes = import_quotes(QuoteRepository(db_path))
    logger.info("seeded %s prebuilt sessions and %s quotes", sessions, quotes)
    print(f"Seed data inserted: {sessions} sessions, {quotes} quotes")


if __name__ == "__main__":
    seed(sys.argv[1] if len(sys.argv) > 1 else "hooplog.db")
