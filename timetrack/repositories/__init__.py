from __future__ import annotations

from .base import Runner
from .categories import CategoryRepository
from .sessions import SessionRepository
from .tasks import TaskRepository

__all__ = ["CategoryRepository", "Runner", "SessionRepository", "TaskRepository"]
