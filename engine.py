"""Exam policy constants. No UI, no I/O."""
# Draw: up to 20 questions per attempt, exam unavailable below 5 in the pool
# Pass: score / total >= 0.70

QUESTIONS_PER_EXAM = 20
MIN_QUESTIONS = 5
EXAM_DURATION_MINUTES = 30
EXAM_DURATION_SECONDS = EXAM_DURATION_MINUTES * 60
PASS_THRESHOLD = 0.70
ANSWER_WRITE_RETRIES = 3
DEFAULT_SETTINGS_TIME_MINUTES = 60
