"""
Scoring: pure functions over questions and an answers map. No I/O.
Correct +1, incorrect 0, unanswered 0, essay never auto-scored.
"""
from typing import Any, Dict, List, Optional

from engine import PASS_THRESHOLD
from src.models import ExamAttempt, Question, QuestionType, parse_index


def _is_blank(answer: Any) -> bool:
    return answer is None or (isinstance(answer, str) and not answer.strip())


def is_correct(question: Question, answer: Any) -> Optional[bool]:
    """
    Judge one answer against its question.

    Returns None for essays (manual grading), otherwise True/False.
    Unanswered and empty-string answers are never correct.
    """
    if question.question_type is QuestionType.ESSAY:
        return None
    if _is_blank(answer):
        return False

    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        chosen = parse_index(answer)
        return chosen is not None and chosen == parse_index(question.correct_answer)

    if question.question_type is QuestionType.TRUE_FALSE:
        return isinstance(answer, bool) and isinstance(question.correct_answer, bool) and answer == question.correct_answer

    if question.question_type is QuestionType.FILL_IN_BLANK:
        key = question.correct_answer
        if not isinstance(answer, str) or not isinstance(key, str) or not key.strip():
            return False
        return answer.strip().lower() == key.strip().lower()

    return False


def score_attempt(questions: List[Question], answers: Dict[str, Any]) -> int:
    """Sum of points over the given questions. Always in [0, len(questions)]."""
    return sum(1 for q in questions if is_correct(q, answers.get(q.id)))


def is_passed(score: int, total_questions: int) -> bool:
    if total_questions <= 0:
        return False
    return score / total_questions >= PASS_THRESHOLD


def percentage(score: int, total_questions: int) -> int:
    if total_questions <= 0:
        return 0
    return round(score / total_questions * 100)


def order_questions(attempt: ExamAttempt, questions: List[Question]) -> List[Question]:
    """Put fetched questions back in the attempt's drawn order; ids no longer in the bank are dropped."""
    by_id = {q.id: q for q in questions}
    return [by_id[qid] for qid in attempt.question_ids if qid in by_id]


def describe_answer(question: Question, answer: Any) -> str:
    if _is_blank(answer):
        return "No answer provided"
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        idx = parse_index(answer)
        options = question.options or []
        if idx is None or not 0 <= idx < len(options):
            return "Invalid option"
        return options[idx]
    if question.question_type is QuestionType.TRUE_FALSE:
        return "True" if answer is True else "False"
    return str(answer)


def describe_correct_answer(question: Question) -> Optional[str]:
    if question.question_type is QuestionType.ESSAY:
        return None
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        return describe_answer(question, question.correct_answer)
    if question.question_type is QuestionType.TRUE_FALSE:
        return "True" if question.correct_answer else "False"
    return question.correct_answer or ""


def summarize(attempt: ExamAttempt, questions: List[Question]) -> Dict:
    """
    Results view of an attempt: the stored score for finalized attempts,
    a preview score for in-progress ones, plus per-question review rows.

    Review rows are judged against the questions passed in (the bank as it is now).
    A finalized score is never recomputed, so after a question edit the rows can
    disagree with it; review_score and review_matches_score report that.
    """
    ordered = order_questions(attempt, questions)
    review_score = score_attempt(ordered, attempt.answers)
    score = attempt.score if attempt.is_finalized else review_score
    total = attempt.total_questions

    review = []
    correct = incorrect = unanswered = 0
    for i, q in enumerate(ordered, start=1):
        answer = attempt.answers.get(q.id)
        verdict = is_correct(q, answer)
        if _is_blank(answer):
            unanswered += 1
        elif verdict is True:
            correct += 1
        elif verdict is False:
            incorrect += 1
        review.append({
            "number": i,
            "question_id": q.id,
            "question_type": q.question_type.value,
            "question_text": q.question_text,
            "image_url": q.image_url,
            "your_answer": describe_answer(q, answer),
            "correct_answer": describe_correct_answer(q),
            "is_correct": verdict,
        })

    return {
        "attempt_id": attempt.id,
        "exam_type": attempt.exam_type.value,
        "score": score,
        "total_questions": total,
        "percentage": percentage(score, total),
        "passed": is_passed(score, total),
        "finalized": attempt.is_finalized,
        "correct_count": correct,
        "incorrect_count": incorrect,
        "unanswered_count": unanswered,
        "review_score": review_score,
        "review_matches_score": review_score == score,
        "time_taken": attempt.time_taken,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "review": review,
    }
