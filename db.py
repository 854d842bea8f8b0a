import sqlite3
import aiosqlite
import datetime
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional

from errors import ConflictError, NotFoundError
from models import (
    CatalogEntry,
    Owner,
    ProgressRecord,
    Quote,
    SYSTEM,
    User,
    UserSettings,
)

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, email, full_name, password_hash, phone, avatar, created_at"
SESSION_COLUMNS = (
    "id, title, type, difficulty, duration, intensity, description, image, owner_id, created_at"
)
PROGRESS_COLUMNS = "id, user_id, session_id, progress, favorite, created_at"


def utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def like_pattern(query: str) -> str:
    """Return a LIKE pattern matching ``query`` anywhere, case-insensitively."""
    escaped = (
        query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    full_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    phone TEXT NOT NULL DEFAULT '',
                    avatar TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "email",
                "full_name",
                "password_hash",
                "phone",
                "avatar",
                "created_at",
            ],
        ),
        "sessions": (
            """CREATE TABLE sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL,
                    difficulty TEXT NOT NULL,
                    duration INTEGER NOT NULL,
                    intensity INTEGER NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    image TEXT,
                    owner_id INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(owner_id) REFERENCES users(id)
                );""",
            [
                "id",
                "title",
                "type",
                "difficulty",
                "duration",
                "intensity",
                "description",
                "image",
                "owner_id",
                "created_at",
            ],
        ),
        "session_progress": (
            """CREATE TABLE session_progress (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    session_id INTEGER NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    favorite INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, session_id),
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(session_id) REFERENCES sessions(id)
                );""",
            ["id", "user_id", "session_id", "progress", "favorite", "created_at"],
        ),
        "user_settings": (
            """CREATE TABLE user_settings (
                    user_id INTEGER PRIMARY KEY,
                    motivational_quotes INTEGER NOT NULL DEFAULT 0,
                    vibration_effects INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY(user_id) REFERENCES users(id)
                );""",
            ["user_id", "motivational_quotes", "vibration_effects"],
        ),
        "quotes": (
            """CREATE TABLE quotes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL UNIQUE,
                    author TEXT NOT NULL DEFAULT ''
                );""",
            ["id", "text", "author"],
        ),
    }

    def __init__(self, db_path: str = "hooplog.db", timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_schema()

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path, timeout=self._timeout)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("progress", "favorite"):
                        return "0"
                    if col in ("motivational_quotes", "vibration_effects"):
                        return "0"
                    if col == "created_at":
                        return "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"
                    if col in ("phone", "avatar", "description", "author"):
                        return "''"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_count(self, query: str, params: Tuple = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path, timeout=self._timeout)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class UserRepository(BaseRepository):
    """Repository for user accounts and their settings record."""

    def create(
        self,
        email: str,
        full_name: str,
        password_hash: str,
        phone: str = "",
        avatar: str = "",
    ) -> int:
        """Insert a user together with default settings in one transaction."""
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (email, full_name, password_hash, phone, avatar, created_at) VALUES (?, ?, ?, ?, ?, ?);",
                    (email, full_name, password_hash, phone, avatar, utc_now()),
                )
                user_id = cursor.lastrowid
                conn.execute(
                    "INSERT INTO user_settings (user_id, motivational_quotes, vibration_effects) VALUES (?, 0, 0);",
                    (user_id,),
                )
        except sqlite3.IntegrityError:
            raise ConflictError("User already exists")
        return user_id

    def fetch(self, user_id: int) -> User:
        rows = self.fetch_all(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ?;", (user_id,)
        )
        if not rows:
            raise NotFoundError("User not found")
        return User.from_row(rows[0])

    def find_by_email(self, email: str) -> Optional[User]:
        rows = self.fetch_all(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = ?;", (email,)
        )
        return User.from_row(rows[0]) if rows else None

    def update_profile(
        self,
        user_id: int,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> User:
        assignments: list[str] = []
        params: list[str | int] = []
        for column, value in (
            ("full_name", full_name),
            ("phone", phone),
            ("avatar", avatar),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        if assignments:
            params.append(user_id)
            self.execute(
                f"UPDATE users SET {', '.join(assignments)} WHERE id = ?;",
                tuple(params),
            )
        return self.fetch(user_id)


class SessionRepository(BaseRepository):
    """Repository for catalog entries (prebuilt and custom sessions)."""

    _UPDATABLE = (
        "title",
        "type",
        "difficulty",
        "duration",
        "intensity",
        "description",
        "image",
    )

    def add(
        self,
        title: str,
        session_type: str,
        difficulty: str,
        duration: int,
        intensity: int,
        description: str = "",
        image: Optional[str] = None,
        owner: Owner = SYSTEM,
    ) -> int:
        return self.execute(
            "INSERT INTO sessions (title, type, difficulty, duration, intensity, description, image, owner_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                title,
                session_type,
                difficulty,
                duration,
                intensity,
                description,
                image,
                owner.to_column(),
                utc_now(),
            ),
        )

    def fetch(self, session_id: int) -> CatalogEntry:
        rows = self.fetch_all(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE id = ?;", (session_id,)
        )
        if not rows:
            raise NotFoundError("Session not found")
        return CatalogEntry.from_row(rows[0])

    def exists(self, session_id: int) -> bool:
        rows = self.fetch_all("SELECT 1 FROM sessions WHERE id = ?;", (session_id,))
        return bool(rows)

    def fetch_prebuilt(
        self,
        title: Optional[str] = None,
        session_type: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> List[CatalogEntry]:
        query = f"SELECT {SESSION_COLUMNS} FROM sessions WHERE owner_id IS NULL"
        params: list[str] = []
        if title:
            query += " AND lower(title) LIKE ? ESCAPE '\\'"
            params.append(like_pattern(title))
        if session_type:
            query += " AND type = ?"
            params.append(session_type)
        if difficulty:
            query += " AND difficulty = ?"
            params.append(difficulty)
        query += " ORDER BY created_at DESC, id DESC;"
        return [CatalogEntry.from_row(r) for r in self.fetch_all(query, tuple(params))]

    def find_prebuilt_by_title(self, title: str) -> Optional[CatalogEntry]:
        rows = self.fetch_all(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE owner_id IS NULL AND title = ?;",
            (title,),
        )
        return CatalogEntry.from_row(rows[0]) if rows else None

    def update(self, session_id: int, fields: dict) -> CatalogEntry:
        columns = [c for c in self._UPDATABLE if c in fields]
        if columns:
            assignments = ", ".join(f"{c} = ?" for c in columns)
            params = tuple(fields[c] for c in columns) + (session_id,)
            self.execute(f"UPDATE sessions SET {assignments} WHERE id = ?;", params)
        return self.fetch(session_id)

    def delete_cascade(self, session_id: int) -> int:
        """Delete ``session_id`` and every progress record that references it.

        Both statements share one transaction, so readers never see the entry
        gone while its progress records remain. Returns the number of progress
        records removed.
        """
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM session_progress WHERE session_id = ?;", (session_id,)
            )
            removed = cursor.rowcount
            cursor = conn.execute("DELETE FROM sessions WHERE id = ?;", (session_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Session not found")
        return removed


class ProgressRepository(BaseRepository):
    """Repository for per-user session progress (the subscription relation)."""

    def fetch(self, user_id: int, session_id: int) -> Optional[ProgressRecord]:
        rows = self.fetch_all(
            f"SELECT {PROGRESS_COLUMNS} FROM session_progress WHERE user_id = ? AND session_id = ?;",
            (user_id, session_id),
        )
        return ProgressRecord.from_row(rows[0]) if rows else None

    def get_or_create(
        self,
        user_id: int,
        session_id: int,
        progress: int = 0,
        favorite: bool = False,
    ) -> Tuple[ProgressRecord, bool]:
        """Return the record for the pair, inserting it with the given values if absent.

        The UNIQUE (user_id, session_id) constraint decides concurrent inserts:
        the loser of the race re-reads the winner's row instead of failing.
        A foreign key failure means the session was deleted meanwhile and is
        reported as ``NotFoundError``.
        """
        existing = self.fetch(user_id, session_id)
        if existing is not None:
            return existing, False
        try:
            self.execute(
                "INSERT INTO session_progress (user_id, session_id, progress, favorite, created_at) VALUES (?, ?, ?, ?, ?);",
                (user_id, session_id, progress, 1 if favorite else 0, utc_now()),
            )
        except sqlite3.IntegrityError:
            existing = self.fetch(user_id, session_id)
            if existing is None:
                logger.info(
                    "session %s vanished before user %s could track it",
                    session_id,
                    user_id,
                )
                raise NotFoundError("Session not found")
            logger.debug(
                "progress for user %s session %s created concurrently",
                user_id,
                session_id,
            )
            return existing, False
        return self.fetch(user_id, session_id), True

    def update(
        self,
        user_id: int,
        session_id: int,
        progress: Optional[int] = None,
        favorite: Optional[bool] = None,
    ) -> ProgressRecord:
        assignments: list[str] = []
        params: list[int] = []
        if progress is not None:
            assignments.append("progress = ?")
            params.append(progress)
        if favorite is not None:
            assignments.append("favorite = ?")
            params.append(1 if favorite else 0)
        if assignments:
            params.extend([user_id, session_id])
            self.execute(
                f"UPDATE session_progress SET {', '.join(assignments)} WHERE user_id = ? AND session_id = ?;",
                tuple(params),
            )
        record = self.fetch(user_id, session_id)
        if record is None:
            raise NotFoundError("Progress not found")
        return record

    def delete(self, user_id: int, session_id: int) -> bool:
        removed = self.execute_count(
            "DELETE FROM session_progress WHERE user_id = ? AND session_id = ?;",
            (user_id, session_id),
        )
        return removed > 0

    def delete_for_user(self, user_id: int) -> int:
        return self.execute_count(
            "DELETE FROM session_progress WHERE user_id = ?;", (user_id,)
        )

    def fetch_for_user(
        self,
        user_id: int,
        title: Optional[str] = None,
        session_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        favorite: Optional[bool] = None,
    ) -> List[Tuple[CatalogEntry, ProgressRecord]]:
        session_cols = ", ".join(f"s.{c.strip()}" for c in SESSION_COLUMNS.split(","))
        progress_cols = ", ".join(f"p.{c.strip()}" for c in PROGRESS_COLUMNS.split(","))
        query = (
            f"SELECT {session_cols}, {progress_cols} FROM session_progress p "
            "JOIN sessions s ON s.id = p.session_id WHERE p.user_id = ?"
        )
        params: list[str | int] = [user_id]
        if title:
            query += " AND lower(s.title) LIKE ? ESCAPE '\\'"
            params.append(like_pattern(title))
        if session_type:
            query += " AND s.type = ?"
            params.append(session_type)
        if difficulty:
            query += " AND s.difficulty = ?"
            params.append(difficulty)
        if favorite is not None:
            query += " AND p.favorite = ?"
            params.append(1 if favorite else 0)
        query += " ORDER BY p.created_at DESC, p.id DESC;"
        rows = self.fetch_all(query, tuple(params))
        return [
            (CatalogEntry.from_row(r[:10]), ProgressRecord.from_row(r[10:]))
            for r in rows
        ]


class SettingsRepository(BaseRepository):
    """Repository for the per-user settings record."""

    def fetch(self, user_id: int) -> UserSettings:
        rows = self.fetch_all(
            "SELECT user_id, motivational_quotes, vibration_effects FROM user_settings WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            raise NotFoundError("Settings not found")
        return UserSettings.from_row(rows[0])

    def update(
        self,
        user_id: int,
        motivational_quotes: Optional[bool] = None,
        vibration_effects: Optional[bool] = None,
    ) -> UserSettings:
        current = self.fetch(user_id)
        if motivational_quotes is None:
            motivational_quotes = current.motivational_quotes
        if vibration_effects is None:
            vibration_effects = current.vibration_effects
        self.execute(
            "UPDATE user_settings SET motivational_quotes = ?, vibration_effects = ? WHERE user_id = ?;",
            (1 if motivational_quotes else 0, 1 if vibration_effects else 0, user_id),
        )
        return self.fetch(user_id)


class QuoteRepository(BaseRepository):
    """Repository for motivational quotes."""

    def add(self, text: str, author: str = "") -> int:
        return self.execute(
            "INSERT OR IGNORE INTO quotes (text, author) VALUES (?, ?);",
            (text, author),
        )

    def count(self) -> int:
        rows = self.fetch_all("SELECT COUNT(*) FROM quotes;")
        return int(rows[0][0])



class AsyncQuoteRepository(AsyncBaseRepository):
    """Async repository used by the random quote endpoint."""

    async def random(self) -> Optional[Quote]:
        rows = await self.fetch_all(
            "SELECT id, text, author FROM quotes ORDER BY RANDOM() LIMIT 1;"
        )
        if not rows:
            return None
        qid, text, author = rows[0]
        return Quote(int(qid), text, author)
