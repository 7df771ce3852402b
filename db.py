"""Supabase CRUD. Client is cached via Streamlit."""
import logging
import os
from uuid import UUID

import streamlit as st
from dotenv import load_dotenv
from supabase import ClientOptions, create_client, Client

from engine import DEFAULT_SETTINGS_TIME_MINUTES
from src.database import AttemptStore, QuestionRepository, execute
from src.models import ExamAttempt, ExamType, Question, Role

load_dotenv()

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    timeout = int(os.environ.get("SUPABASE_TIMEOUT", DEFAULT_TIMEOUT))
    return create_client(url, key, options=ClientOptions(postgrest_client_timeout=timeout))


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def get_question_repository(client: Client | None = None) -> QuestionRepository:
    return QuestionRepository(client or get_supabase())


def get_attempt_store(client: Client | None = None) -> AttemptStore:
    return AttemptStore(client or get_supabase())


def upsert_questions_bulk(client: Client, rows: list[dict], chunk_size: int = 200):
    """Bulk upsert into questions. Rows must include 'id' (uuid). Dedupes by id so no chunk has duplicates (avoids Postgres ON CONFLICT error)."""
    n_before = len(rows)
    by_id = {r["id"]: r for r in rows}
    rows = list(by_id.values())
    if len(rows) < n_before:
        log.info("Deduped questions by id: %d -> %d", n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        chunk_num = i // chunk_size + 1
        log.info("Upserting chunk %d/%d (%d rows)", chunk_num, n_chunks, len(chunk))
        execute(client.table("questions").upsert(chunk, on_conflict="id"), "upsert questions")


# --- Questions ---

def get_question_by_id(question_id: UUID | str, client: Client | None = None) -> Question | None:
    client = client or get_supabase()
    r = execute(client.table("questions").select("*").eq("id", str(question_id)).limit(1), "get question")
    return Question.from_row(r.data[0]) if r.data else None


def get_questions_by_exam_type(exam_type: ExamType | str, client: Client | None = None) -> list[Question]:
    return get_question_repository(client).list_questions(ExamType(exam_type))


def create_question(question: Question, client: Client | None = None) -> Question:
    """Insert a validated question (admin authoring)."""
    client = client or get_supabase()
    question.validate()
    r = execute(client.table("questions").insert(question.to_row()), "create question")
    log.info("Created %s question %s for %s", question.question_type.value, question.id, question.exam_type.value)
    return Question.from_row(r.data[0]) if r.data else question


def update_question(question: Question, client: Client | None = None) -> Question:
    """Edit a question. Attempts already finalized keep the score they were given."""
    client = client or get_supabase()
    question.validate()
    row = question.to_row()
    row.pop("id")
    r = execute(client.table("questions").update(row).eq("id", question.id), "update question")
    return Question.from_row(r.data[0]) if r.data else question


def delete_question(question_id: UUID | str, client: Client | None = None):
    client = client or get_supabase()
    execute(client.table("questions").delete().eq("id", str(question_id)), "delete question")
    log.info("Deleted question %s", question_id)


def delete_questions_by_exam_type(client: Client, exam_type: ExamType | str):
    """Delete all questions of one exam type (used by importer --replace)."""
    execute(client.table("questions").delete().eq("exam_type", ExamType(exam_type).value), "delete questions")


def get_question_counts(client: Client | None = None) -> dict:
    """Returns {exam_type: count} for every exam type plus 'total' (for the start page)."""
    repo = get_question_repository(client)
    out = {}
    for exam_type in ExamType:
        out[exam_type.value] = repo.count_questions(exam_type)
    out["total"] = sum(out.values())
    return out


# --- Exam settings ---

def get_exam_settings(client: Client | None = None) -> dict:
    """Administrative defaults. default_time is shown to users; it does not change the enforced duration."""
    client = client or get_supabase()
    r = execute(client.table("exam_settings").select("*").limit(1), "get exam settings")
    settings = r.data[0] if r.data else {}
    return {"id": settings.get("id"), "default_time": settings.get("default_time") or DEFAULT_SETTINGS_TIME_MINUTES}


def update_exam_settings(default_time: int, client: Client | None = None) -> dict:
    if int(default_time) < 1:
        raise ValueError("default_time must be at least 1 minute")
    client = client or get_supabase()
    current = get_exam_settings(client)
    row = {"default_time": int(default_time)}
    if current.get("id") is not None:
        row["id"] = current["id"]
    execute(client.table("exam_settings").upsert(row), "update exam settings")
    return {**current, **row}


# --- Users ---

def get_role(user_id: UUID | str, client: Client | None = None) -> Role | None:
    """Admin if listed in admins, examiner if it has an examiner profile, else None."""
    client = client or get_supabase()
    r = execute(client.table("admins").select("id").eq("id", str(user_id)).limit(1), "get admin")
    if r.data:
        return Role.ADMIN
    r = execute(client.table("examiners").select("id").eq("id", str(user_id)).limit(1), "get examiner")
    if r.data:
        return Role.EXAMINER
    return None


def get_examiner(user_id: UUID | str, client: Client | None = None) -> dict | None:
    client = client or get_supabase()
    r = execute(
        client.table("examiners").select("full_name", "designation", "store_area").eq("id", str(user_id)).limit(1),
        "get examiner profile",
    )
    return r.data[0] if r.data else None


def list_examiners(search: str | None = None, client: Client | None = None) -> list[dict]:
    """Examiner profiles ordered by name; search is a case-insensitive substring of full_name."""
    client = client or get_supabase()
    query = client.table("examiners").select("*").order("full_name")
    if search and search.strip():
        query = query.ilike("full_name", f"%{search.strip()}%")
    r = execute(query, "list examiners")
    return r.data or []


def count_examiners(client: Client | None = None) -> int:
    client = client or get_supabase()
    r = execute(client.table("examiners").select("id", count="exact").limit(0), "count examiners")
    return r.count if r.count is not None else len(r.data or [])


# --- Attempts ---

def get_attempts(user_id: UUID | str | None = None, limit: int = 50, client: Client | None = None) -> list[ExamAttempt]:
    """Attempt history, newest first. All users when user_id is None (admin review)."""
    client = client or get_supabase()
    if user_id is not None:
        return get_attempt_store(client).list_for_user(str(user_id), limit=limit)
    r = execute(
        client.table("exam_attempts").select("*").order("started_at", desc=True).limit(limit),
        "list attempts",
    )
    return [ExamAttempt.from_row(row) for row in (r.data or [])]
