"""Scoring rules: per question type, bounds, determinism, pass threshold."""
import random

from conftest import T0, make_question
from src.models import ExamAttempt, ExamType, QuestionType
from src.scoring import is_correct, is_passed, percentage, score_attempt, summarize


def test_multiple_choice_compares_index_as_integer():
    q = make_question(correct_answer=2)
    assert is_correct(q, 2)
    assert is_correct(q, "2")
    assert not is_correct(q, 1)
    assert not is_correct(q, "two")
    assert not is_correct(q, True)


def test_true_false_needs_boolean():
    q = make_question(question_type=QuestionType.TRUE_FALSE, correct_answer=False)
    assert is_correct(q, False)
    assert not is_correct(q, True)
    assert not is_correct(q, "false")


def test_fill_in_blank_ignores_case_and_surrounding_whitespace():
    q = make_question(question_type=QuestionType.FILL_IN_BLANK, correct_answer="Paris")
    for answer in ("Paris ", "paris", " PARIS"):
        assert is_correct(q, answer), answer
    assert not is_correct(q, "Pariss")


def test_empty_and_missing_answers_never_match():
    fib = make_question(question_type=QuestionType.FILL_IN_BLANK, correct_answer="Paris")
    blank_key = make_question(question_type=QuestionType.FILL_IN_BLANK, correct_answer="")
    assert not is_correct(fib, None)
    assert not is_correct(fib, "")
    assert not is_correct(fib, "   ")
    assert not is_correct(blank_key, "")
    assert not is_correct(make_question(), None)


def test_essay_is_never_auto_scored():
    essays = [make_question(question_type=QuestionType.ESSAY, correct_answer="model answer") for _ in range(4)]
    answers = {q.id: "A long and thoughtful answer" for q in essays}
    assert is_correct(essays[0], "model answer") is None
    assert score_attempt(essays, answers) == 0


def test_score_is_bounded_and_deterministic():
    rng = random.Random(7)
    types = list(QuestionType)
    for _ in range(50):
        questions = [make_question(question_type=rng.choice(types)) for _ in range(rng.randint(0, 12))]
        answers = {}
        for q in questions:
            answers[q.id] = rng.choice([None, "", 0, 1, "1", True, False, "Paris", " paris ", "x"])
        first = score_attempt(questions, answers)
        assert 0 <= first <= len(questions)
        assert score_attempt(questions, answers) == first


def test_pass_threshold_is_seventy_percent():
    assert is_passed(7, 10)
    assert not is_passed(6, 10)
    assert is_passed(6, 8)
    assert not is_passed(0, 0)
    assert percentage(6, 8) == 75


def test_summarize_counts_and_review_in_drawn_order():
    mc = make_question(correct_answer=0)
    tf = make_question(question_type=QuestionType.TRUE_FALSE, correct_answer=True)
    essay = make_question(question_type=QuestionType.ESSAY)
    drawn = [tf, essay, mc]
    attempt = ExamAttempt(
        id="a1",
        user_id="u1",
        exam_type=ExamType.SAP,
        question_ids=[q.id for q in drawn],
        answers={tf.id: True, essay.id: "text", mc.id: None},
        started_at=T0,
        total_questions=3,
        allotted_seconds=1800,
    )
    summary = summarize(attempt, [mc, essay, tf])
    assert summary["score"] == 1
    assert summary["finalized"] is False
    assert [row["question_id"] for row in summary["review"]] == [tf.id, essay.id, mc.id]
    assert summary["correct_count"] == 1
    assert summary["unanswered_count"] == 1
    assert summary["review"][1]["correct_answer"] is None
    assert summary["review"][2]["your_answer"] == "No answer provided"
    assert summary["review"][0]["your_answer"] == "True"


def test_finalized_score_stands_when_review_disagrees():
    q = make_question(correct_answer=0)
    attempt = ExamAttempt(
        id="a1",
        user_id="u1",
        exam_type=ExamType.SAP,
        question_ids=[q.id],
        answers={q.id: 0},
        started_at=T0,
        total_questions=1,
        allotted_seconds=1800,
        completed_at=T0,
        score=1,
        time_taken=60,
    )
    assert summarize(attempt, [q])["review_matches_score"]

    rekeyed = make_question(id=q.id, correct_answer=2)
    summary = summarize(attempt, [rekeyed])
    assert summary["score"] == 1
    assert summary["review_score"] == 0
    assert summary["review_matches_score"] is False
    assert summary["review"][0]["is_correct"] is False
