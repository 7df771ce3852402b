"""
Supabase-backed collaborators of the exam engine.
QuestionRepository is read-only; AttemptStore owns exam_attempts and its conditional update.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from src.errors import AttemptNotFound, StoreConflict, StoreUnavailable
from src.models import ExamAttempt, ExamType, Question

logger = logging.getLogger(__name__)

QUESTIONS_TABLE = "questions"
ATTEMPTS_TABLE = "exam_attempts"
PAGE_SIZE = 1000
UNIQUE_VIOLATION = "23505"


def execute(query, what: str):
    """Run a PostgREST query, turning transport and API failures into StoreUnavailable."""
    try:
        return query.execute()
    except (APIError, httpx.HTTPError) as e:
        logger.error(f"Supabase call failed ({what}): {e}")
        raise StoreUnavailable(f"{what}: {e}") from e


def _exam_type_value(exam_type) -> str:
    return exam_type.value if isinstance(exam_type, ExamType) else ExamType(exam_type).value


class QuestionRepository:
    """Read side of the question bank."""

    def __init__(self, client: Client):
        self.client = client

    def list_questions(self, exam_type: ExamType) -> List[Question]:
        """All questions for an exam type, fetched in pages (Supabase caps a response at 1000 rows)."""
        rows: List[Dict] = []
        offset = 0
        while True:
            r = execute(
                self.client.table(QUESTIONS_TABLE)
                .select("*")
                .eq("exam_type", _exam_type_value(exam_type))
                .range(offset, offset + PAGE_SIZE - 1),
                "list questions",
            )
            data = r.data or []
            rows.extend(data)
            if len(data) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return [Question.from_row(row) for row in rows]

    def get_questions_by_ids(self, ids: List[str]) -> List[Question]:
        """Questions for the given ids. No ordering guarantee."""
        if not ids:
            return []
        r = execute(
            self.client.table(QUESTIONS_TABLE).select("*").in_("id", [str(i) for i in ids]),
            "get questions by ids",
        )
        return [Question.from_row(row) for row in (r.data or [])]

    def count_questions(self, exam_type: ExamType) -> int:
        r = execute(
            self.client.table(QUESTIONS_TABLE)
            .select("id", count="exact")
            .eq("exam_type", _exam_type_value(exam_type))
            .limit(0),
            "count questions",
        )
        count = getattr(r, "count", None)
        return count if count is not None else len(r.data or [])


class AttemptStore:
    """Persistent exam attempts. update() supports a precondition evaluated in the same statement."""

    def __init__(self, client: Client):
        self.client = client

    def create(self, attempt: ExamAttempt) -> str:
        """
        Insert a new attempt. A partial unique index on (user_id, exam_type) where
        completed_at IS NULL rejects a second in-progress attempt; that surfaces as StoreConflict.
        """
        query = self.client.table(ATTEMPTS_TABLE).insert(attempt.to_row())
        try:
            r = query.execute()
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise StoreConflict(ATTEMPTS_TABLE, attempt.id, {"completed_at": None}) from e
            logger.error(f"Supabase call failed (create attempt): {e}")
            raise StoreUnavailable(f"create attempt: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase call failed (create attempt): {e}")
            raise StoreUnavailable(f"create attempt: {e}") from e
        if not r.data:
            raise StoreUnavailable(f"create attempt: no row returned for {attempt.id}")
        return str(r.data[0]["id"])

    def _fetch(self, attempt_id: str) -> Optional[Dict]:
        r = execute(
            self.client.table(ATTEMPTS_TABLE).select("*").eq("id", str(attempt_id)).limit(1),
            "get attempt",
        )
        return r.data[0] if r.data else None

    def get(self, attempt_id: str) -> ExamAttempt:
        row = self._fetch(attempt_id)
        if row is None:
            raise AttemptNotFound(attempt_id)
        return ExamAttempt.from_row(row)

    def find_in_progress(self, user_id: str, exam_type: ExamType) -> Optional[ExamAttempt]:
        r = execute(
            self.client.table(ATTEMPTS_TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .eq("exam_type", _exam_type_value(exam_type))
            .is_("completed_at", "null")
            .order("started_at", desc=True)
            .limit(1),
            "find in-progress attempt",
        )
        return ExamAttempt.from_row(r.data[0]) if r.data else None

    def update(
        self,
        attempt_id: str,
        fields: Dict[str, Any],
        precondition: Optional[Dict[str, Any]] = None,
    ) -> ExamAttempt:
        """
        Apply fields to one attempt.

        precondition maps column -> expected value (None means IS NULL). The filter
        is part of the UPDATE itself, so there is no gap between check and write.
        Raises StoreConflict when the row exists but the precondition failed,
        AttemptNotFound when it does not exist.
        """
        query = self.client.table(ATTEMPTS_TABLE).update(fields).eq("id", str(attempt_id))
        for column, expected in (precondition or {}).items():
            if expected is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, expected)
        r = execute(query, "update attempt")
        if r.data:
            return ExamAttempt.from_row(r.data[0])
        if self._fetch(attempt_id) is None:
            raise AttemptNotFound(attempt_id)
        raise StoreConflict(ATTEMPTS_TABLE, str(attempt_id), precondition)

    def list_for_user(self, user_id: str, limit: int = 50) -> List[ExamAttempt]:
        r = execute(
            self.client.table(ATTEMPTS_TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .order("started_at", desc=True)
            .limit(limit),
            "list attempts",
        )
        return [ExamAttempt.from_row(row) for row in (r.data or [])]
