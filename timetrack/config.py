from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping

from .connection import StoreOptions
from .errors import ValidationError

SETTINGS_FILE_NAME = "timetrack.json"
DB_FILE_NAME = "timetrack.sqlite"

ENV_OVERRIDES = {
    "TIMETRACK_DB_PATH": "db_path",
    "TIMETRACK_JOURNAL_MODE": "journal_mode",
    "TIMETRACK_SYNCHRONOUS": "synchronous",
    "TIMETRACK_MAX_RETRIES": "max_retries",
    "TIMETRACK_RETRY_DELAY_MS": "retry_delay_ms",
    "TIMETRACK_LOG_LEVEL": "log_level",
}


def default_db_path() -> Path:
    return Path(__file__).resolve().parent / "data" / DB_FILE_NAME


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off", ""}:
            return False
    return default


def _as_int(value: Any, default: int, minimum: int = 0) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, number)


@dataclass(frozen=True)
class AppSettings:
    db_path: str = ""
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    temp_store: str = "MEMORY"
    busy_timeout_ms: int = 1000
    max_retries: int = 3
    retry_delay_ms: int = 100
    seed_categories: bool = False
    log_level: str = "WARNING"

    @property
    def retry_delay(self) -> float:
        return self.retry_delay_ms / 1000.0

    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser() if self.db_path else default_db_path()

    def store_options(self) -> StoreOptions:
        try:
            return StoreOptions(
                journal_mode=self.journal_mode,
                synchronous=self.synchronous,
                temp_store=self.temp_store,
                busy_timeout=self.busy_timeout_ms / 1000.0,
                seed_categories=self.seed_categories,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "db_path": self.db_path,
            "journal_mode": self.journal_mode,
            "synchronous": self.synchronous,
            "temp_store": self.temp_store,
            "busy_timeout_ms": self.busy_timeout_ms,
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
            "seed_categories": self.seed_categories,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> AppSettings:
        return cls(
            db_path=str(payload.get("db_path", "") or ""),
            journal_mode=str(payload.get("journal_mode", "WAL")).strip().upper() or "WAL",
            synchronous=str(payload.get("synchronous", "NORMAL")).strip().upper() or "NORMAL",
            temp_store=str(payload.get("temp_store", "MEMORY")).strip().upper() or "MEMORY",
            busy_timeout_ms=_as_int(payload.get("busy_timeout_ms", 1000), 1000),
            max_retries=_as_int(payload.get("max_retries", 3), 3),
            retry_delay_ms=_as_int(payload.get("retry_delay_ms", 100), 100),
            seed_categories=_as_bool(payload.get("seed_categories", False), False),
            log_level=str(payload.get("log_level", "WARNING")).strip().upper() or "WARNING",
        )


def load_settings(path: Path | None = None, environ: Mapping[str, str] | None = None) -> AppSettings:
    """Read the JSON settings file (if any) and apply TIMETRACK_* environment overrides."""
    payload: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as fp:
            try:
                content = json.load(fp)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"settings file is not valid JSON: {path} ({exc})") from exc
        if not isinstance(content, dict):
            raise ValidationError(f"settings file must contain a JSON object: {path}")
        payload.update(content)

    env = os.environ if environ is None else environ
    for env_name, key in ENV_OVERRIDES.items():
        raw = (env.get(env_name) or "").strip()
        if raw:
            payload[key] = raw

    settings = AppSettings.from_dict(payload)
    settings.store_options()
    return settings


def save_settings(settings: AppSettings, path: Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_suffix(target.suffix + ".tmp")
    with temp_path.open("w", encoding="utf-8") as fp:
        json.dump(settings.to_dict(), fp, ensure_ascii=False, indent=2)
        fp.write("\n")
    temp_path.replace(target)
    return target
