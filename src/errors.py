"""Error taxonomy for the exam attempt engine and its collaborators."""


class ExamError(Exception):
    """Base class for every error raised by the exam portal."""


class InsufficientQuestions(ExamError):
    def __init__(self, exam_type: str, available: int, required: int):
        self.exam_type = exam_type
        self.available = available
        self.required = required
        super().__init__(
            f"Not enough questions for {exam_type}: {available} available, {required} required"
        )


class AttemptAlreadyFinalized(ExamError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} is already finalized")


class AttemptNotFinalized(ExamError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} is still in progress")


class InvalidAnswerFormat(ExamError):
    def __init__(self, question_id: str, question_type: str, value):
        self.question_id = question_id
        self.question_type = question_type
        self.value = value
        super().__init__(f"Answer {value!r} does not fit {question_type} question {question_id}")


class InvalidQuestion(ExamError):
    """Question fails the authoring rules (blank text, bad options, missing key)."""


class NotFound(ExamError):
    pass


class AttemptNotFound(NotFound):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} not found")


class QuestionNotFound(NotFound):
    def __init__(self, question_id: str, attempt_id: str | None = None):
        self.question_id = question_id
        self.attempt_id = attempt_id
        where = f" in attempt {attempt_id}" if attempt_id else ""
        super().__init__(f"Question {question_id} not found{where}")


class StoreUnavailable(ExamError):
    """Transient infrastructure failure talking to Supabase."""


class StoreConflict(ExamError):
    """A conditional write matched no row: the precondition no longer holds."""

    def __init__(self, table: str, row_id: str, precondition: dict | None = None):
        self.table = table
        self.row_id = row_id
        self.precondition = precondition or {}
        super().__init__(f"Conditional update on {table}/{row_id} failed: {self.precondition}")


class PermissionDenied(ExamError):
    pass
