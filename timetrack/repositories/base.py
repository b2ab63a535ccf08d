from __future__ import annotations

import sqlite3
from typing import Any, Callable

# A runner executes one store operation: through the RetryExecutor for
# store-level repositories, or directly on the open transaction otherwise.
Runner = Callable[[Callable[[sqlite3.Connection], Any]], Any]


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "unique" in str(exc).lower()
