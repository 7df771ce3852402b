"""Ingest a question bank .jsonl: validate each question, bulk UPSERT into questions."""
import json
import argparse
import logging
from pathlib import Path
from uuid import uuid5, NAMESPACE_DNS

from db import delete_questions_by_exam_type, get_supabase_uncached, upsert_questions_bulk
from src.errors import InvalidQuestion
from src.models import ExamType, Question, QuestionType

log = logging.getLogger(__name__)

# Accept the labels people actually type in spreadsheets
EXAM_TYPE_ALIASES = {
    "mt": ExamType.MANAGEMENT_TRAINEE,
    "management_trainee": ExamType.MANAGEMENT_TRAINEE,
    "managementtrainee": ExamType.MANAGEMENT_TRAINEE,
}
QUESTION_TYPE_ALIASES = {
    "mcq": QuestionType.MULTIPLE_CHOICE,
    "multiplechoice": QuestionType.MULTIPLE_CHOICE,
    "truefalse": QuestionType.TRUE_FALSE,
    "tf": QuestionType.TRUE_FALSE,
    "fillinblank": QuestionType.FILL_IN_BLANK,
    "fill_in_the_blank": QuestionType.FILL_IN_BLANK,
}


def parse_exam_type(value: str) -> ExamType:
    raw = (value or "").strip()
    for exam_type in ExamType:
        if raw.lower() == exam_type.value.lower():
            return exam_type
    key = raw.lower().replace(" ", "_").replace("-", "_")
    if key in EXAM_TYPE_ALIASES:
        return EXAM_TYPE_ALIASES[key]
    raise InvalidQuestion(f"Unknown exam type: {value!r}")


def parse_question_type(value: str) -> QuestionType:
    key = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return QuestionType(key)
    except ValueError:
        pass
    alias = QUESTION_TYPE_ALIASES.get(key) or QUESTION_TYPE_ALIASES.get(key.replace("_", ""))
    if alias is None:
        raise InvalidQuestion(f"Unknown question type: {value!r}")
    return alias


def question_id_for(exam_type: ExamType, text: str) -> str:
    """Stable id so re-importing the same file updates rows instead of duplicating them."""
    return str(uuid5(NAMESPACE_DNS, f"{exam_type.value}:{text.strip()}"))


def parse_line(line: str) -> Question | None:
    """Parse one JSONL line into a validated Question. Returns None for blank lines; raises on invalid ones."""
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as e:
        raise InvalidQuestion(f"Not JSON: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidQuestion("Each line must be a JSON object")

    exam_type = parse_exam_type(raw.get("exam_type", ""))
    question_type = parse_question_type(raw.get("question_type", "multiple_choice"))
    text = (raw.get("question_text") or raw.get("text") or "").strip()
    options = raw.get("options") if question_type is QuestionType.MULTIPLE_CHOICE else None
    if options is not None and not isinstance(options, list):
        raise InvalidQuestion("options must be a list")

    question = Question.from_row({
        "id": raw.get("id") or question_id_for(exam_type, text),
        "exam_type": exam_type.value,
        "question_type": question_type.value,
        "question_text": text,
        "options": options,
        "correct_answer": raw.get("correct_answer"),
        "image_url": raw.get("image_url"),
    })
    return question.validate()


def load_and_transform(path: Path):
    """Read JSONL; returns (questions, skipped) where skipped lists (line_no, reason)."""
    questions, skipped = [], []
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            try:
                question = parse_line(line)
            except InvalidQuestion as e:
                skipped.append((line_no, str(e)))
                continue
            if question:
                questions.append(question)
    return questions, skipped


def run_import(jsonl_path: Path, chunk_size: int = 200, dry_run: bool = False, replace: str | None = None):
    if not jsonl_path.exists():
        raise FileNotFoundError(f"JSONL not found: {jsonl_path}")
    questions, skipped = load_and_transform(jsonl_path)
    for line_no, reason in skipped:
        log.warning("Skipped line %d: %s", line_no, reason)
    rows = [q.to_row() for q in questions]
    if dry_run:
        print(f"Dry run: would upsert {len(rows)} questions from {jsonl_path} ({len(skipped)} skipped)")
        if rows:
            print("Sample row:", rows[0])
        return len(rows), len(skipped)
    client = get_supabase_uncached()
    if replace:
        delete_questions_by_exam_type(client, parse_exam_type(replace))
        print(f"Deleted existing {replace} questions")
    upsert_questions_bulk(client, rows, chunk_size=chunk_size)
    print(f"Upserted {len(rows)} questions from {jsonl_path} ({len(skipped)} skipped)")
    return len(rows), len(skipped)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import a question bank JSONL into Supabase questions.")
    parser.add_argument("jsonl", help="Path to .jsonl (one question object per line)")
    parser.add_argument("--chunk-size", type=int, default=200, help="Upsert chunk size (default 200)")
    parser.add_argument("--dry-run", action="store_true", help="Parse and validate only, do not upsert")
    parser.add_argument("--replace", metavar="EXAM_TYPE", default=None, help="Delete existing questions of this exam type first")
    args = parser.parse_args()
    run_import(jsonl_path=Path(args.jsonl), chunk_size=args.chunk_size, dry_run=args.dry_run, replace=args.replace)
