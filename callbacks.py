"""
Exam page callbacks. They take the engine and the session mapping as arguments
(st.session_state in the app, a dict in tests) and never raise ExamError to Streamlit.
"""
import logging
from typing import Any, MutableMapping, Optional, Tuple

from src.engine import ExamAttemptEngine
from src.errors import AttemptAlreadyFinalized, ExamError, InvalidAnswerFormat, StoreConflict, StoreUnavailable
from src.models import QuestionType

logger = logging.getLogger(__name__)

ANSWER_ERROR = "answer_error"
SHOW_RESULTS = "show_results"


def widget_answer(kind: str, raw: Any) -> Any:
    """Map a widget value to the stored answer. The MC radio uses -1 for 'no answer'."""
    if kind == QuestionType.MULTIPLE_CHOICE.value:
        return None if raw is None or raw < 0 else raw
    if kind == QuestionType.TRUE_FALSE.value:
        return None if raw is None else raw == "True"
    return raw


def save_answer(
    engine: ExamAttemptEngine,
    state: MutableMapping,
    attempt_id: str,
    question_id: str,
    widget_key: str,
    kind: str,
) -> None:
    value = widget_answer(kind, state.get(widget_key))
    try:
        engine.record_answer(attempt_id, question_id, value)
    except AttemptAlreadyFinalized:
        # Late edit after submit/expiry: send the user to the results
        state[SHOW_RESULTS] = attempt_id
    except InvalidAnswerFormat:
        state[ANSWER_ERROR] = "That answer does not fit this question. Please pick it again."
    except ExamError as e:
        logger.warning(f"Answer for {question_id} on attempt {attempt_id} not saved: {e}")
        state[ANSWER_ERROR] = "Your answer could not be saved. Please check your connection and pick it again."


def clock_tick(engine: ExamAttemptEngine, state: MutableMapping, attempt_id: str) -> Tuple[Optional[int], bool]:
    """
    Remaining seconds for the countdown display.

    Returns (remaining, confirmed). When the store cannot be reached the last confirmed
    value is counted down locally and confirmed is False; remaining is None if there is
    nothing to count down from yet. Only a confirmed 0 means the attempt is closed.
    """
    key = f"clock_{attempt_id}"
    try:
        remaining = engine.get_remaining_time(attempt_id)
    except (StoreUnavailable, StoreConflict) as e:
        logger.debug(f"Clock tick for {attempt_id} failed, counting down locally: {e}")
        last = state.get(key)
        if last is None:
            return None, False
        seconds, seen_at = last
        elapsed = int((engine.clock() - seen_at).total_seconds())
        return max(0, seconds - elapsed), False
    state[key] = (remaining, engine.clock())
    return remaining, True
