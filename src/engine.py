"""
Exam Attempt Engine: attempt creation, answer accumulation, countdown and finalization.
Every mutation goes through AttemptStore.update with a precondition, so two tabs
(or manual submit racing the timer) converge on a single finalized record.
"""
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from engine import ANSWER_WRITE_RETRIES, EXAM_DURATION_SECONDS, MIN_QUESTIONS, QUESTIONS_PER_EXAM
from src.database import AttemptStore, QuestionRepository
from src.errors import (
    AttemptAlreadyFinalized,
    InsufficientQuestions,
    InvalidAnswerFormat,
    QuestionNotFound,
    StoreConflict,
)
from src.models import ExamAttempt, ExamType, Question, QuestionType, format_timestamp, parse_index, utcnow
from src.scoring import order_questions, score_attempt, summarize
from src.timer import remaining_seconds, time_taken

logger = logging.getLogger(__name__)


class ExamAttemptEngine:
    """Orchestrates one exam attempt from start to finalization."""

    def __init__(
        self,
        questions: QuestionRepository,
        attempts: AttemptStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        allotted_seconds: int = EXAM_DURATION_SECONDS,
    ):
        """
        Args:
            questions: read-only question bank
            attempts: persistent attempt store
            rng: random source for the draw (seed it in tests)
            clock: returns the current UTC time
            allotted_seconds: duration stamped on new attempts; running attempts keep their own
        """
        self.questions = questions
        self.attempts = attempts
        self.rng = rng or random.Random()
        self.clock = clock
        self.allotted_seconds = allotted_seconds

    # ============= Start / resume =============

    def start_attempt(self, user_id: str, exam_type: ExamType) -> str:
        """
        Start an exam or resume the one already in progress.

        Returns:
            Attempt id. Calling twice without submitting returns the same id.

        Raises:
            InsufficientQuestions: fewer than MIN_QUESTIONS exist for exam_type
        """
        exam_type = ExamType(exam_type)
        existing = self.attempts.find_in_progress(user_id, exam_type)
        if existing is not None:
            if self.remaining(existing) > 0:
                logger.info(f"Resuming attempt {existing.id} for user {user_id} ({exam_type.value})")
                return existing.id
            # Abandoned past its deadline: close it through the expiry path, then start over
            logger.info(f"Attempt {existing.id} ran out while abandoned; finalizing before a new start")
            self._finalize(existing, reason="expired")

        pool = self.questions.list_questions(exam_type)
        if len(pool) < MIN_QUESTIONS:
            logger.warning(f"Cannot start {exam_type.value}: {len(pool)} questions, need {MIN_QUESTIONS}")
            raise InsufficientQuestions(exam_type.value, len(pool), MIN_QUESTIONS)

        drawn = self.rng.sample(pool, min(len(pool), QUESTIONS_PER_EXAM))

        now = self.clock()
        attempt = ExamAttempt(
            id=str(uuid4()),
            user_id=str(user_id),
            exam_type=exam_type,
            question_ids=[q.id for q in drawn],
            answers={q.id: None for q in drawn},
            started_at=now,
            total_questions=len(drawn),
            allotted_seconds=self.allotted_seconds,
            updated_at=now,
        )
        try:
            attempt_id = self.attempts.create(attempt)
        except StoreConflict:
            # Another tab created the in-progress attempt first
            winner = self.attempts.find_in_progress(user_id, exam_type)
            if winner is None:
                raise
            logger.info(f"Lost start race for user {user_id}; resuming attempt {winner.id}")
            return winner.id

        logger.info(f"Started attempt {attempt_id}: {len(drawn)} {exam_type.value} questions for user {user_id}")
        return attempt_id

    # ============= Answers =============

    def record_answer(self, attempt_id: str, question_id: str, value: Any) -> ExamAttempt:
        """
        Store one answer. Safe to call on every input change.

        The write is conditional on the attempt still being open and unchanged since it
        was read; concurrent writers re-read and merge instead of overwriting each other.

        Raises:
            AttemptAlreadyFinalized: the attempt is completed (or its clock just ran out)
            InvalidAnswerFormat: value does not fit the question type
            QuestionNotFound: question is not part of this attempt
        """
        question_id = str(question_id)
        for _ in range(ANSWER_WRITE_RETRIES):
            attempt = self.attempts.get(attempt_id)
            if attempt.is_finalized:
                logger.warning(f"Rejected late answer for {question_id} on finalized attempt {attempt_id}")
                raise AttemptAlreadyFinalized(attempt_id)
            if self.remaining(attempt) <= 0:
                self._finalize(attempt, reason="expired")
                logger.warning(f"Rejected answer for {question_id}: attempt {attempt_id} expired")
                raise AttemptAlreadyFinalized(attempt_id)
            if question_id not in attempt.question_ids:
                raise QuestionNotFound(question_id, attempt_id)

            stored = self.normalize_answer(self._question(question_id), value)
            updated = attempt.with_answer(question_id, stored)
            try:
                return self.attempts.update(
                    attempt_id,
                    {"answers": updated.answers, "updated_at": self._next_stamp(attempt)},
                    precondition={"completed_at": None, "updated_at": format_timestamp(attempt.updated_at)},
                )
            except StoreConflict:
                logger.debug(f"Concurrent write on attempt {attempt_id}; re-reading")
        raise StoreConflict("exam_attempts", attempt_id, {"answers": question_id})

    @staticmethod
    def normalize_answer(question: Question, value: Any) -> Any:
        """
        Check an answer's shape against its question and return the value to store.
        None clears an answer for any type.
        """
        if value is None:
            return None
        qtype = question.question_type
        if qtype is QuestionType.MULTIPLE_CHOICE:
            idx = parse_index(value)
            if idx is None or not 0 <= idx < len(question.options or []):
                raise InvalidAnswerFormat(question.id, qtype.value, value)
            return idx
        if qtype is QuestionType.TRUE_FALSE:
            if not isinstance(value, bool):
                raise InvalidAnswerFormat(question.id, qtype.value, value)
            return value
        if not isinstance(value, str):
            raise InvalidAnswerFormat(question.id, qtype.value, value)
        return value

    # ============= Submit / expiry =============

    def submit_attempt(self, attempt_id: str) -> ExamAttempt:
        """
        Finalize an attempt (manual submit). Idempotent: a finalized attempt comes back unchanged.
        If the clock already ran out the attempt is closed as expired, capped at the allotment.
        """
        attempt = self.attempts.get(attempt_id)
        if attempt.is_finalized:
            return attempt
        reason = "submitted" if self.remaining(attempt) > 0 else "expired"
        return self._finalize(attempt, reason=reason)

    def expire_if_due(self, attempt_id: str) -> Optional[ExamAttempt]:
        """Timer callback. Returns the finalized attempt once time is up, None while it is still running."""
        attempt = self.attempts.get(attempt_id)
        if attempt.is_finalized:
            return attempt
        if self.remaining(attempt) > 0:
            return None
        return self._finalize(attempt, reason="expired")

    def get_remaining_time(self, attempt_id: str) -> int:
        """Seconds left; 0 for finalized attempts. Hitting zero finalizes through the expiry path."""
        attempt = self.attempts.get(attempt_id)
        if attempt.is_finalized:
            return 0
        left = self.remaining(attempt)
        if left <= 0:
            self._finalize(attempt, reason="expired")
        return left

    def remaining(self, attempt: ExamAttempt) -> int:
        return remaining_seconds(attempt.started_at, self.clock(), attempt.allotted_seconds)

    def _next_stamp(self, attempt: ExamAttempt) -> str:
        """updated_at for the next write; strictly after the one read so the optimistic check can tell writes apart."""
        now = self.clock()
        if attempt.updated_at is not None and now <= attempt.updated_at:
            now = attempt.updated_at + timedelta(microseconds=1)
        return format_timestamp(now)

    def _finalize(self, attempt: ExamAttempt, reason: str) -> ExamAttempt:
        """
        Score and close an attempt exactly once.

        score, completed_at and time_taken go out in one UPDATE guarded by
        completed_at IS NULL and the updated_at that was scored. On conflict the
        attempt is re-read: if someone else finalized it, theirs wins; if an answer
        landed in between, it is rescored.
        """
        for _ in range(ANSWER_WRITE_RETRIES):
            questions = self.questions_for(attempt)
            score = score_attempt(questions, attempt.answers)
            now = self.clock()
            fields = {
                "score": score,
                "completed_at": format_timestamp(now),
                "time_taken": time_taken(attempt.started_at, now, attempt.allotted_seconds),
                "updated_at": self._next_stamp(attempt),
            }
            try:
                finalized = self.attempts.update(
                    attempt.id,
                    fields,
                    precondition={"completed_at": None, "updated_at": format_timestamp(attempt.updated_at)},
                )
            except StoreConflict:
                attempt = self.attempts.get(attempt.id)
                if attempt.is_finalized:
                    logger.info(f"Attempt {attempt.id} already finalized by another caller")
                    return attempt
                continue
            logger.info(
                f"Attempt {finalized.id} {reason}: score={finalized.score}/{finalized.total_questions}, "
                f"time_taken={finalized.time_taken}s"
            )
            return finalized
        raise StoreConflict("exam_attempts", attempt.id, {"completed_at": None})

    # ============= Read models =============

    def get_attempt(self, attempt_id: str) -> ExamAttempt:
        return self.attempts.get(attempt_id)

    def questions_for(self, attempt: ExamAttempt) -> List[Question]:
        """The attempt's questions as they are now in the bank, in drawn order."""
        return order_questions(attempt, self.questions.get_questions_by_ids(attempt.question_ids))

    def summary(self, attempt_id: str) -> Dict:
        attempt = self.attempts.get(attempt_id)
        return summarize(attempt, self.questions_for(attempt))

    def _question(self, question_id: str) -> Question:
        """Fresh copy of one question; answer shapes are checked against the current bank."""
        found = self.questions.get_questions_by_ids([question_id])
        if not found:
            raise QuestionNotFound(question_id)
        return found[0]
