import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, SessionRepository


class TestSchemaMigration:
    def test_adds_missing_columns(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE sessions (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT, type TEXT, difficulty TEXT, duration INTEGER, intensity INTEGER, owner_id INTEGER)"
        )
        conn.execute(
            "INSERT INTO sessions (title, type, difficulty, duration, intensity) VALUES ('Mikan Drill', 'Layup', 'Easy', 10, 3)"
        )
        conn.execute("CREATE TABLE sessions_old (id INTEGER)")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='sessions_old'"
        )
        assert cur.fetchone() is None
        cur = conn.execute("PRAGMA table_info(sessions)")
        cols = [row[1] for row in cur.fetchall()]
        assert "created_at" in cols
        assert "description" in cols
        conn.close()

        entry = SessionRepository(str(db_file)).fetch(1)
        assert entry.title == "Mikan Drill"
        assert entry.description == ""
        assert entry.created_at
        assert entry.is_prebuilt

    def test_creates_all_tables(self, tmp_path):
        db_file = tmp_path / "fresh.db"
        Database(str(db_file))
        conn = sqlite3.connect(str(db_file))
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert {"users", "sessions", "session_progress", "user_settings", "quotes"} <= names
