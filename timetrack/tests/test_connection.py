from __future__ import annotations

from pathlib import Path
import threading
import time
import unittest
from unittest import mock

from timetrack.clock import FakeClock
from timetrack.connection import ConnectionGuard, OpenStatus, StoreLock, StoreOptions, sidecar_paths
from timetrack.errors import ConnectionLost, ErrorKind, PermissionDenied, StorageUnavailable
from timetrack.store import TimeTrackStore
from timetrack.tests.test_helpers import START, local_tmp_dir, open_store


class TestConnectionGuard(unittest.TestCase):
    def test_unwritable_directory_raises_storage_unavailable(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "data" / "timetrack.sqlite"
            guard = ConnectionGuard(db_path)
            with mock.patch.object(Path, "write_bytes", side_effect=PermissionError("denied")):
                with self.assertRaises(PermissionDenied) as ctx:
                    guard.open()

            self.assertIs(PermissionDenied, StorageUnavailable)
            self.assertEqual(ctx.exception.kind, ErrorKind.PERMISSION_DENIED)
            self.assertFalse(db_path.exists())
            self.assertFalse(guard.is_open)

    def test_garbage_primary_file_is_recreated(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "timetrack.sqlite"
            wal_path, shm_path = sidecar_paths(db_path)
            db_path.write_bytes(b"garbage!" * 512)
            wal_path.write_bytes(b"garbage-wal" * 64)
            shm_path.write_bytes(b"garbage-shm" * 64)

            with TimeTrackStore(db_path=db_path, clock=FakeClock(start=START)) as store:
                self.assertEqual(store.status, OpenStatus.DATABASE_RECREATED)
                self.assertTrue(store.recreated)
                self.assertEqual(store.tasks.get_all(), [])
                task_id = store.tasks.create("After recovery")
                self.assertIsNotNone(store.tasks.get(task_id))

            self.assertFalse(db_path.read_bytes().startswith(b"garbage!"))
            for sidecar in (wal_path, shm_path):
                self.assertFalse(sidecar.exists() and sidecar.read_bytes().startswith(b"garbage"))

    def test_orphan_sidecar_without_primary_is_recreated(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "timetrack.sqlite"
            wal_path, _ = sidecar_paths(db_path)
            wal_path.write_bytes(b"stale wal" * 32)

            guard = ConnectionGuard(db_path)
            try:
                self.assertEqual(guard.open(), OpenStatus.DATABASE_RECREATED)
            finally:
                guard.close()
            self.assertTrue(db_path.exists())

    def test_reset_rebuilds_a_healthy_store(self) -> None:
        clock = FakeClock(start=START)
        with local_tmp_dir() as tmp:
            db_path = tmp / "timetrack.sqlite"
            with TimeTrackStore(db_path=db_path, clock=clock) as store:
                category_id = store.categories.create("Work", "#FF5733")
                task_id = store.tasks.create("Before reset", category_id=category_id)
                store.session_machine().start(task_id)
                self.assertEqual(store.status, OpenStatus.CREATED)

                self.assertEqual(store.reset(), OpenStatus.DATABASE_RECREATED)
                self.assertTrue(store.recreated)
                self.assertTrue(store.guard.is_open)
                self.assertEqual(store.tasks.get_all(), [])
                self.assertEqual(store.categories.get_all(), [])
                self.assertEqual(store.sessions.get_all(), [])
                self.assertIsNotNone(store.tasks.get(store.tasks.create("After reset")))

    def test_reset_fails_cleanly_when_files_cannot_be_deleted(self) -> None:
        with local_tmp_dir() as tmp:
            with TimeTrackStore(db_path=tmp / "timetrack.sqlite") as store:
                with mock.patch.object(Path, "unlink", side_effect=PermissionError("denied")):
                    with self.assertRaises(StorageUnavailable):
                        store.reset()
                self.assertFalse(store.guard.is_open)
                with self.assertRaises(ConnectionLost):
                    store.tasks.get_all()

    def test_empty_file_is_initialized_in_place(self) -> None:
        with local_tmp_dir() as tmp:
            db_path = tmp / "timetrack.sqlite"
            db_path.touch()

            guard = ConnectionGuard(db_path)
            try:
                self.assertEqual(guard.open(), OpenStatus.CREATED)
            finally:
                guard.close()

    def test_open_twice_keeps_status(self) -> None:
        with local_tmp_dir() as tmp:
            guard = ConnectionGuard(tmp / "timetrack.sqlite")
            try:
                first = guard.open()
                self.assertEqual(guard.open(), first)
            finally:
                guard.close()
            guard.close()
            self.assertTrue(guard.closed)

    def test_lost_handle_is_reopened_transparently(self) -> None:
        with open_store() as store:
            store.tasks.create("Before drop")
            store.executor.execute(lambda conn: conn.close())

            names = [item.name for item in store.tasks.get_all()]

        self.assertEqual(names, ["Before drop"])

    def test_closed_store_raises_connection_lost_without_retry(self) -> None:
        clock = FakeClock(start=START)
        with open_store(clock=clock) as store:
            store.close()
            with self.assertRaises(ConnectionLost):
                store.tasks.get_all()
        self.assertEqual(clock.sleeps, [])

    def test_invalid_options_rejected(self) -> None:
        with self.assertRaises(ValueError):
            StoreOptions(journal_mode="WAL; DROP TABLE Tasks")
        with self.assertRaises(ValueError):
            StoreOptions(busy_timeout=-1)


class TestStoreLock(unittest.TestCase):
    def test_reentry_is_rejected(self) -> None:
        lock = StoreLock()
        with lock:
            self.assertTrue(lock.held_by_current_thread())
            with self.assertRaises(RuntimeError):
                lock.acquire()
        self.assertFalse(lock.locked)

    def test_waiters_are_served_in_arrival_order(self) -> None:
        lock = StoreLock()
        order: list[int] = []
        threads: list[threading.Thread] = []

        def worker(index: int) -> None:
            with lock:
                order.append(index)

        lock.acquire()
        for index in range(4):
            thread = threading.Thread(target=worker, args=(index,))
            thread.start()
            threads.append(thread)
            deadline = time.monotonic() + 5
            # Wait until this worker holds its ticket before starting the next one.
            while lock._next_ticket < index + 2 and time.monotonic() < deadline:
                time.sleep(0.001)
        lock.release()
        for thread in threads:
            thread.join(timeout=5)

        self.assertEqual(order, [0, 1, 2, 3])


if __name__ == "__main__":
    unittest.main()
