"""
Records shared by the exam engine, the Supabase stores and the report.
Rows come back from Supabase as plain dicts; from_row/to_row translate them.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from engine import EXAM_DURATION_SECONDS
from src.errors import InvalidQuestion


class ExamType(str, Enum):
    SAP = "SAP"
    MANAGEMENT_TRAINEE = "Management Trainee"
    SALES = "Sales"
    QC = "QC"
    PRODUCTION = "Production"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_BLANK = "fill_in_blank"
    ESSAY = "essay"


class Role(str, Enum):
    ADMIN = "admin"
    EXAMINER = "examiner"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a Supabase timestamptz (ISO string, 'Z' allowed). Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_index(value: Any) -> Optional[int]:
    """Option index stored as int or digit string ("2"). Anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


@dataclass(frozen=True)
class Question:
    id: str
    exam_type: ExamType
    question_type: QuestionType
    question_text: str
    options: Optional[List[str]] = None
    correct_answer: Any = None
    image_url: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Question":
        question_type = QuestionType(row["question_type"])
        correct = row.get("correct_answer")
        # correct_answer is JSONB: the admin form stores "2" for an index and true/false for booleans
        if question_type is QuestionType.MULTIPLE_CHOICE:
            correct = parse_index(correct)
        elif question_type is QuestionType.TRUE_FALSE:
            correct = _parse_bool(correct)
        elif correct is not None:
            correct = str(correct)
        options = row.get("options")
        return cls(
            id=str(row["id"]),
            exam_type=ExamType(row["exam_type"]),
            question_type=question_type,
            question_text=row.get("question_text") or "",
            options=list(options) if question_type is QuestionType.MULTIPLE_CHOICE and options else None,
            correct_answer=correct,
            image_url=row.get("image_url") or None,
            created_by=row.get("created_by"),
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_row(self) -> Dict:
        row = {
            "id": self.id,
            "exam_type": self.exam_type.value,
            "question_type": self.question_type.value,
            "question_text": self.question_text,
            "options": self.options if self.question_type is QuestionType.MULTIPLE_CHOICE else None,
            "correct_answer": self.correct_answer,
            "image_url": self.image_url,
        }
        if self.created_by:
            row["created_by"] = self.created_by
        return row

    def validate(self) -> "Question":
        """Authoring rules from the admin question form. Returns self so calls can chain."""
        if not self.question_text.strip():
            raise InvalidQuestion("Question text is required")
        if self.question_type is QuestionType.MULTIPLE_CHOICE:
            options = self.options or []
            if len(options) < 2:
                raise InvalidQuestion("Multiple choice questions need at least two options")
            if any(not (opt or "").strip() for opt in options):
                raise InvalidQuestion("All options must be filled")
            idx = parse_index(self.correct_answer)
            if idx is None or not 0 <= idx < len(options):
                raise InvalidQuestion("Correct answer must be selected")
        elif self.question_type is QuestionType.TRUE_FALSE:
            if not isinstance(self.correct_answer, bool):
                raise InvalidQuestion("True/false questions need a boolean correct answer")
        elif self.question_type is QuestionType.FILL_IN_BLANK:
            if not isinstance(self.correct_answer, str) or not self.correct_answer.strip():
                raise InvalidQuestion("Fill in the blank questions need a correct answer")
        return self


@dataclass(frozen=True)
class ExamAttempt:
    id: str
    user_id: str
    exam_type: ExamType
    question_ids: List[str]
    answers: Dict[str, Any]
    started_at: datetime
    total_questions: int
    allotted_seconds: int
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    time_taken: Optional[int] = None
    updated_at: Optional[datetime] = None

    @property
    def is_finalized(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_row(cls, row: Dict) -> "ExamAttempt":
        answers = dict(row.get("answers") or {})
        question_ids = row.get("question_ids")
        if not question_ids:
            # Older rows only carry the answers map; its keys are the drawn ids
            question_ids = list(answers.keys())
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            exam_type=ExamType(row["exam_type"]),
            question_ids=[str(qid) for qid in question_ids],
            answers=answers,
            started_at=parse_timestamp(row["started_at"]),
            total_questions=int(row.get("total_questions") or len(question_ids)),
            allotted_seconds=int(row.get("allotted_seconds") or EXAM_DURATION_SECONDS),
            completed_at=parse_timestamp(row.get("completed_at")),
            score=row.get("score"),
            time_taken=row.get("time_taken"),
            updated_at=parse_timestamp(row.get("updated_at")),
        )

    def to_row(self) -> Dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "exam_type": self.exam_type.value,
            "question_ids": list(self.question_ids),
            "answers": dict(self.answers),
            "started_at": format_timestamp(self.started_at),
            "total_questions": self.total_questions,
            "allotted_seconds": self.allotted_seconds,
            "completed_at": format_timestamp(self.completed_at),
            "score": self.score,
            "time_taken": self.time_taken,
            "updated_at": format_timestamp(self.updated_at),
        }

    def with_answer(self, question_id: str, value: Any) -> "ExamAttempt":
        answers = dict(self.answers)
        answers[question_id] = value
        return replace(self, answers=answers)
