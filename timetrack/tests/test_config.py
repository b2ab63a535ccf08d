from __future__ import annotations

import io
import json
import logging
import unittest

from timetrack.config import AppSettings, default_db_path, load_settings, save_settings
from timetrack.errors import ValidationError
from timetrack.logging_setup import configure_logging
from timetrack.tests.test_helpers import local_tmp_dir


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = load_settings(environ={})
        self.assertEqual(settings, AppSettings())
        self.assertEqual(settings.resolved_db_path(), default_db_path())
        options = settings.store_options()
        self.assertEqual(options.journal_mode, "WAL")
        self.assertEqual(options.synchronous, "NORMAL")
        self.assertEqual(options.busy_timeout, 1.0)

    def test_file_then_environment_overrides(self) -> None:
        with local_tmp_dir() as tmp:
            path = tmp / "timetrack.json"
            path.write_text(
                json.dumps({"db_path": str(tmp / "a.sqlite"), "max_retries": 5, "seed_categories": "yes"}),
                encoding="utf-8",
            )
            settings = load_settings(
                path,
                environ={
                    "TIMETRACK_DB_PATH": str(tmp / "b.sqlite"),
                    "TIMETRACK_JOURNAL_MODE": "delete",
                    "TIMETRACK_RETRY_DELAY_MS": "250",
                },
            )

            self.assertEqual(settings.resolved_db_path(), tmp / "b.sqlite")
            self.assertEqual(settings.journal_mode, "DELETE")
            self.assertEqual(settings.max_retries, 5)
            self.assertEqual(settings.retry_delay, 0.25)
            self.assertTrue(settings.seed_categories)

    def test_invalid_values(self) -> None:
        with self.assertRaises(ValidationError):
            load_settings(environ={"TIMETRACK_JOURNAL_MODE": "sideways"})
        settings = load_settings(environ={"TIMETRACK_MAX_RETRIES": "lots"})
        self.assertEqual(settings.max_retries, 3)

        with local_tmp_dir() as tmp:
            path = tmp / "timetrack.json"
            path.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ValidationError):
                load_settings(path, environ={})

    def test_malformed_json_is_a_validation_error(self) -> None:
        with local_tmp_dir() as tmp:
            path = tmp / "timetrack.json"
            path.write_text('{"max_retries": 3,', encoding="utf-8")
            with self.assertRaises(ValidationError) as ctx:
                load_settings(path, environ={})
            self.assertIsInstance(ctx.exception.__cause__, json.JSONDecodeError)

    def test_save_and_reload(self) -> None:
        with local_tmp_dir() as tmp:
            original = AppSettings(db_path=str(tmp / "x.sqlite"), synchronous="FULL", retry_delay_ms=20)
            path = save_settings(original, tmp / "nested" / "timetrack.json")
            self.assertEqual(load_settings(path, environ={}), original)
            self.assertEqual([p.name for p in path.parent.iterdir()], ["timetrack.json"])


class TestLogging(unittest.TestCase):
    def test_configure_logging_is_idempotent(self) -> None:
        stream = io.StringIO()
        configure_logging("INFO", stream=stream)
        logger = configure_logging("INFO", stream=stream)
        try:
            tagged = [h for h in logger.handlers if getattr(h, "_timetrack", False)]
            self.assertEqual(len(tagged), 1)
            logging.getLogger("timetrack.store").info("hello")
            self.assertIn("INFO timetrack.store: hello", stream.getvalue())
        finally:
            for handler in tagged:
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)


if __name__ == "__main__":
    unittest.main()
