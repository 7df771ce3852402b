"""
Exam countdown as a pure function of (now, started_at, allotted).
The display may tick once per second; the authoritative value is always wall-clock elapsed time.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from src.models import ExamAttempt


class TimerState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXPIRED = "expired"
    SUBMITTED = "submitted"


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    return max(0, int((now - started_at).total_seconds()))


def remaining_seconds(started_at: datetime, now: datetime, allotted: int) -> int:
    return max(0, allotted - elapsed_seconds(started_at, now))


def time_taken(started_at: datetime, now: datetime, allotted: int) -> int:
    """Elapsed seconds capped at the allotment (what gets stored at finalization)."""
    return min(elapsed_seconds(started_at, now), allotted)


def timer_state(attempt: Optional[ExamAttempt], now: datetime) -> TimerState:
    if attempt is None:
        return TimerState.NOT_STARTED
    if attempt.is_finalized:
        if attempt.time_taken is not None and attempt.time_taken >= attempt.allotted_seconds:
            return TimerState.EXPIRED
        return TimerState.SUBMITTED
    if remaining_seconds(attempt.started_at, now, attempt.allotted_seconds) <= 0:
        return TimerState.EXPIRED
    return TimerState.RUNNING


def format_clock(seconds: int) -> str:
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m:02d}:{s:02d}"
