from __future__ import annotations

import sqlite3
import unittest

import timetrack
from timetrack.config import AppSettings
from timetrack.connection import OpenStatus
from timetrack.models import SessionState
from timetrack.schema import DEFAULT_CATEGORIES, REQUIRED_TABLES
from timetrack.store import TimeTrackStore
from timetrack.tests.test_helpers import local_tmp_dir, open_store

LEGACY_SCHEMA = """
CREATE TABLE Categories (Id INTEGER PRIMARY KEY AUTOINCREMENT, Name TEXT NOT NULL UNIQUE, Color TEXT);
CREATE TABLE Tasks (
    Id INTEGER PRIMARY KEY AUTOINCREMENT,
    Name TEXT NOT NULL UNIQUE,
    IsComplete INTEGER DEFAULT 0,
    CategoryId INTEGER,
    CreatedAt TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE TABLE TaskTags (TaskId INTEGER NOT NULL, Tag TEXT NOT NULL, PRIMARY KEY(TaskId, Tag));
CREATE TABLE Sessions (
    Id INTEGER PRIMARY KEY AUTOINCREMENT,
    TaskId INTEGER NOT NULL,
    StartTime TEXT NOT NULL,
    EndTime TEXT,
    Notes TEXT
);
INSERT INTO Tasks (Name) VALUES ('Legacy task');
INSERT INTO Sessions (TaskId, StartTime, EndTime) VALUES (1, '2026-01-01T08:00:00', '2026-01-01T09:00:00');
INSERT INTO Sessions (TaskId, StartTime, EndTime) VALUES (1, '2026-01-02T08:00:00', NULL);
"""


class TestSchema(unittest.TestCase):
    def test_fresh_store_has_tables_indexes_and_pragmas(self) -> None:
        with open_store() as store:
            self.assertEqual(store.status, OpenStatus.CREATED)

            def inspect(conn: sqlite3.Connection) -> tuple[set[str], set[str], str, int]:
                tables = {
                    row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
                }
                indexes = {
                    row[0]
                    for row in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'IX_%'"
                    )
                }
                journal = conn.execute("PRAGMA journal_mode").fetchone()[0]
                foreign_keys = conn.execute("PRAGMA foreign_keys").fetchone()[0]
                return tables, indexes, journal, foreign_keys

            tables, indexes, journal, foreign_keys = store.executor.execute(inspect)

        self.assertTrue(set(REQUIRED_TABLES) <= tables)
        self.assertEqual(
            indexes,
            {
                "IX_Tasks_CategoryId",
                "IX_Tasks_IsComplete_CreatedAt",
                "IX_Sessions_TaskId",
                "IX_Sessions_TaskId_StartTime_EndTime",
                "IX_TaskTags_TaskId",
            },
        )
        self.assertEqual(str(journal).lower(), "wal")
        self.assertEqual(foreign_keys, 1)

    def test_reopen_existing_store_reports_opened(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "timetrack.sqlite"
            with TimeTrackStore(db_path=db_path) as first:
                self.assertEqual(first.status, OpenStatus.CREATED)
                first.tasks.create("Keep me")
            second = timetrack.open_store(db_path)
            try:
                self.assertEqual(second.status, OpenStatus.OPENED)
                self.assertIsNotNone(second.tasks.get_by_name("Keep me"))
            finally:
                second.close()

    def test_seed_categories_only_when_enabled(self) -> None:
        with open_store(settings=AppSettings(seed_categories=True)) as store:
            seeded = {(item.name, item.color) for item in store.categories.get_all()}
        self.assertEqual(seeded, set(DEFAULT_CATEGORIES))

        with open_store() as store:
            self.assertEqual(store.categories.get_all(), [])

    def test_legacy_sessions_table_gains_state_column(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "legacy.sqlite"
            conn = sqlite3.connect(db_path)
            conn.executescript(LEGACY_SCHEMA)
            conn.commit()
            conn.close()

            with TimeTrackStore(db_path=db_path) as store:
                self.assertEqual(store.status, OpenStatus.OPENED)
                states = [item.state for item in store.sessions.get_all()]
                open_session = store.sessions.get_open()

        self.assertEqual(states, [SessionState.STOPPED, SessionState.RUNNING])
        self.assertIsNotNone(open_session)
        assert open_session is not None
        self.assertIsNone(open_session.end_time)


if __name__ == "__main__":
    unittest.main()
