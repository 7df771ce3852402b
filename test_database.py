"""AttemptStore / QuestionRepository against the in-memory client."""
from datetime import timedelta

import pytest

from conftest import T0, make_question, seed_questions
from src import database
from src.database import AttemptStore, QuestionRepository
from src.errors import AttemptNotFound, StoreConflict, StoreUnavailable
from src.models import ExamAttempt, ExamType, QuestionType


def _attempt(attempt_id="a1", user_id="u1", exam_type=ExamType.SAP):
    return ExamAttempt(
        id=attempt_id,
        user_id=user_id,
        exam_type=exam_type,
        question_ids=["q1", "q2"],
        answers={"q1": None, "q2": None},
        started_at=T0,
        total_questions=2,
        allotted_seconds=1800,
        updated_at=T0,
    )


def test_create_and_get(supabase):
    store = AttemptStore(supabase)
    assert store.create(_attempt()) == "a1"
    got = store.get("a1")
    assert got == _attempt()
    with pytest.raises(AttemptNotFound):
        store.get("missing")


def test_second_in_progress_attempt_is_a_conflict(supabase):
    store = AttemptStore(supabase)
    store.create(_attempt("a1"))
    with pytest.raises(StoreConflict):
        store.create(_attempt("a2"))
    # other exam type or other user is fine
    store.create(_attempt("a3", exam_type=ExamType.QC))
    store.create(_attempt("a4", user_id="u2"))
    assert len(supabase.tables["exam_attempts"]) == 3


def test_conditional_update_conflict_vs_missing(supabase):
    store = AttemptStore(supabase)
    store.create(_attempt())
    updated = store.update("a1", {"answers": {"q1": 1, "q2": None}}, precondition={"completed_at": None})
    assert updated.answers["q1"] == 1

    store.update("a1", {"completed_at": (T0 + timedelta(minutes=5)).isoformat(), "score": 1})
    with pytest.raises(StoreConflict) as exc:
        store.update("a1", {"score": 2}, precondition={"completed_at": None})
    assert exc.value.precondition == {"completed_at": None}
    assert store.get("a1").score == 1

    with pytest.raises(AttemptNotFound):
        store.update("nope", {"score": 2}, precondition={"completed_at": None})


def test_find_in_progress_ignores_finalized(supabase):
    store = AttemptStore(supabase)
    store.create(_attempt())
    assert store.find_in_progress("u1", ExamType.SAP).id == "a1"
    store.update("a1", {"completed_at": T0.isoformat(), "score": 0})
    assert store.find_in_progress("u1", ExamType.SAP) is None
    assert [a.id for a in store.list_for_user("u1")] == ["a1"]


def test_list_questions_pages_through_large_banks(supabase, monkeypatch):
    monkeypatch.setattr(database, "PAGE_SIZE", 3)
    seed_questions(supabase, [make_question(ExamType.SALES) for _ in range(7)])
    seed_questions(supabase, [make_question(ExamType.QC) for _ in range(2)])
    repo = QuestionRepository(supabase)

    assert len(repo.list_questions(ExamType.SALES)) == 7
    assert sum(1 for table, op in supabase.calls if table == "questions") == 3
    assert repo.count_questions(ExamType.QC) == 2
    assert repo.count_questions(ExamType.PRODUCTION) == 0


def test_get_questions_by_ids_parses_rows(supabase):
    tf = make_question(question_type=QuestionType.TRUE_FALSE, correct_answer=False)
    seed_questions(supabase, [tf, make_question()])
    found = QuestionRepository(supabase).get_questions_by_ids([tf.id])
    assert found == [tf]
    assert QuestionRepository(supabase).get_questions_by_ids([]) == []


def test_transport_failures_become_store_unavailable(supabase):
    supabase.fail_next = 1
    with pytest.raises(StoreUnavailable):
        QuestionRepository(supabase).list_questions(ExamType.SAP)
    supabase.fail_next = 1
    with pytest.raises(StoreUnavailable):
        AttemptStore(supabase).create(_attempt())
