"""Determinism mode for reproducible timestamps.

Provides a global determinism flag and a fixed clock for every timestamp
written into actions and receipts. Instance identifiers are never fixed:
each claim gets a fresh one even in determinism mode.

Usage in tests:
    with determinism_mode():
        action = created_action()
        assert action.when == FIXED_TIMESTAMP
"""

from __future__ import annotations

import contextlib
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

# Thread-local state for determinism mode
_state = threading.local()

FIXED_TIMESTAMP = "2025-01-01T00:00:00.000Z"
FIXED_TIMESTAMP_DT = datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC)


def is_deterministic() -> bool:
    """Check if determinism mode is active."""
    return getattr(_state, "deterministic", False)


def set_determinism_mode(enabled: bool = True) -> None:
    """Set determinism mode globally (thread-local)."""
    _state.deterministic = enabled


@contextlib.contextmanager
def determinism_mode() -> Generator[None, None, None]:
    """Context manager to enable determinism mode."""
    prev = getattr(_state, "deterministic", False)
    _state.deterministic = True
    try:
        yield
    finally:
        _state.deterministic = prev


def stable_now() -> datetime:
    """Return current time, or fixed time in determinism mode."""
    if is_deterministic():
        return FIXED_TIMESTAMP_DT
    return datetime.now(UTC)


def stable_timestamp() -> str:
    """Return an ISO 8601 UTC timestamp with millisecond precision.

    Format: 2025-01-01T00:00:00.000Z
    """
    now = stable_now()
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
