"""TimeTrack：基于 SQLite 的任务计时、会话记录与恢复。"""

from .cli import main
from .store import TimeTrackStore, open_store

__version__ = "0.1.0"

__all__ = ["main", "TimeTrackStore", "open_store", "__version__"]
