from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("Categories", "Tasks", "TaskTags", "Sessions")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS Categories (
    Id INTEGER PRIMARY KEY AUTOINCREMENT,
    Name TEXT NOT NULL UNIQUE,
    Color TEXT DEFAULT '#FFFFFF'
);

CREATE TABLE IF NOT EXISTS Tasks (
    Id INTEGER PRIMARY KEY AUTOINCREMENT,
    Name TEXT NOT NULL UNIQUE,
    IsComplete INTEGER DEFAULT 0,
    CategoryId INTEGER,
    CreatedAt TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY(CategoryId) REFERENCES Categories(Id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS TaskTags (
    TaskId INTEGER NOT NULL,
    Tag TEXT NOT NULL,
    PRIMARY KEY(TaskId, Tag),
    FOREIGN KEY(TaskId) REFERENCES Tasks(Id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS Sessions (
    Id INTEGER PRIMARY KEY AUTOINCREMENT,
    TaskId INTEGER NOT NULL,
    StartTime TEXT NOT NULL,
    EndTime TEXT,
    Notes TEXT,
    State TEXT DEFAULT 'Stopped',
    FOREIGN KEY(TaskId) REFERENCES Tasks(Id) ON DELETE CASCADE
);
"""

INDEX_SQL = """
CREATE INDEX IF NOT EXISTS IX_Tasks_CategoryId ON Tasks(CategoryId);
CREATE INDEX IF NOT EXISTS IX_Tasks_IsComplete_CreatedAt ON Tasks(IsComplete, CreatedAt);
CREATE INDEX IF NOT EXISTS IX_Sessions_TaskId ON Sessions(TaskId);
CREATE INDEX IF NOT EXISTS IX_Sessions_TaskId_StartTime_EndTime ON Sessions(TaskId, StartTime, EndTime);
CREATE INDEX IF NOT EXISTS IX_TaskTags_TaskId ON TaskTags(TaskId);
"""

DEFAULT_CATEGORIES = (
    ("Work", "#FF5733"),
    ("Personal", "#33FF57"),
    ("Study", "#3357FF"),
)


def apply_pragmas(
    conn: sqlite3.Connection,
    journal_mode: str = "WAL",
    synchronous: str = "NORMAL",
    temp_store: str = "MEMORY",
) -> str:
    """Configure a fresh connection and return the journal mode actually in effect."""
    row = conn.execute(f"PRAGMA journal_mode={journal_mode}").fetchone()
    effective = str(row[0]).upper() if row else journal_mode.upper()
    if effective != journal_mode.upper():
        logger.warning("journal_mode %s rejected, engine kept %s", journal_mode, effective)
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(f"PRAGMA synchronous={synchronous}")
    conn.execute(f"PRAGMA temp_store={temp_store}")
    return effective


def existing_tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {str(row[0]) for row in rows}


def check_integrity(conn: sqlite3.Connection) -> bool:
    """Read the schema and run quick_check; raises sqlite3.DatabaseError on unreadable files."""
    existing_tables(conn)
    row = conn.execute("PRAGMA quick_check").fetchone()
    return row is not None and str(row[0]).lower() == "ok"


def initialize_schema(conn: sqlite3.Connection, seed_categories: bool = False) -> bool:
    """Create every table and index that is missing. Returns True when tables were created."""
    before = existing_tables(conn)
    conn.executescript(SCHEMA_SQL)
    _ensure_session_state_column(conn)
    conn.executescript(INDEX_SQL)
    created = any(name not in before for name in REQUIRED_TABLES)
    if created and seed_categories:
        conn.executemany(
            "INSERT OR IGNORE INTO Categories (Name, Color) VALUES (?, ?)",
            DEFAULT_CATEGORIES,
        )
    if created:
        logger.info("schema created (%s)", ", ".join(REQUIRED_TABLES))
    return created


def _ensure_session_state_column(conn: sqlite3.Connection) -> None:
    # Stores written before the pause/resume states existed lack the column.
    columns = {str(row[1]) for row in conn.execute("PRAGMA table_info(Sessions)").fetchall()}
    if "State" in columns:
        return
    conn.execute("ALTER TABLE Sessions ADD COLUMN State TEXT DEFAULT 'Stopped'")
    conn.execute(
        "UPDATE Sessions SET State = CASE WHEN EndTime IS NULL THEN 'Running' ELSE 'Stopped' END"
    )
    logger.info("added Sessions.State column")
