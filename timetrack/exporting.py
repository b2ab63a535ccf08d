from __future__ import annotations

import csv
from pathlib import Path

from .models import SessionRecord
from .store import TimeTrackStore

EXPORT_FILE_NAME = "timetrack-sessions.csv"
EXPORT_FIELDS = ("id", "task_id", "task", "start_time", "end_time", "duration_sec", "state", "notes")


def session_row(item: SessionRecord, task_name: str) -> dict[str, object]:
    duration = item.duration
    return {
        "id": item.id,
        "task_id": item.task_id,
        "task": task_name,
        "start_time": item.start_time.isoformat(),
        "end_time": item.end_time.isoformat() if item.end_time else "",
        # Open sessions have no duration yet.
        "duration_sec": int(round(duration.total_seconds())) if duration is not None else "",
        "state": item.state.value,
        "notes": item.notes or "",
    }


def export_sessions_csv(store: TimeTrackStore, out_dir: Path) -> Path:
    target_dir = Path(out_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    csv_path = target_dir / EXPORT_FILE_NAME

    task_names = {task.id: task.name for task in store.tasks.get_all()}

    with csv_path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.DictWriter(fp, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        for item in store.sessions.get_all():
            writer.writerow(session_row(item, task_names.get(item.task_id, "")))

    return csv_path
