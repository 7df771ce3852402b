"""
PDF score report for a finalized attempt (reportlab canvas).
Sections: Exam Information, Score Summary, Question Review. A4, footer on every page.
"""
import logging
from io import BytesIO
from typing import Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from src.errors import AttemptNotFinalized
from src.models import ExamAttempt, Question
from src.scoring import summarize

logger = logging.getLogger(__name__)

MARGIN = 50
HEADER_HEIGHT = 100
FOOTER_HEIGHT = 50
LINE_SPACING = 20
SECTION_SPACING = 30
TITLE_SIZE = 16
HEADING_SIZE = 14
BODY_SIZE = 11
FOOTER_SIZE = 9
GREEN = colors.Color(0, 0.5, 0)
RED = colors.Color(0.8, 0, 0)
FOOTER_TEXT = "Employee Examination Portal"
FONT = "Times-Roman"
FONT_BOLD = "Times-Bold"


class _Page:
    """Tracks the cursor and starts a new page when the body runs into the footer."""

    def __init__(self, c: canvas.Canvas, title: str):
        self.c = c
        self.title = title
        self.width, self.height = A4
        self.y = 0
        self._start(first=True)

    def _start(self, first: bool = False):
        c = self.c
        if first:
            c.setFont(FONT_BOLD, TITLE_SIZE)
            c.drawString(MARGIN, self.height - 60, self.title)
            c.setStrokeColor(GREEN)
            c.line(MARGIN, self.height - HEADER_HEIGHT, self.width - MARGIN, self.height - HEADER_HEIGHT)
            self.y = self.height - HEADER_HEIGHT - SECTION_SPACING
        else:
            self.y = self.height - MARGIN
        self._footer()

    def _footer(self):
        c = self.c
        c.setStrokeColor(GREEN)
        c.line(MARGIN, FOOTER_HEIGHT, self.width - MARGIN, FOOTER_HEIGHT)
        c.setFillColor(colors.black)
        c.setFont(FONT, FOOTER_SIZE)
        c.drawCentredString(self.width / 2, 25, f"{FOOTER_TEXT} - page {c.getPageNumber()}")

    def ensure(self, needed: float):
        if self.y - needed < FOOTER_HEIGHT + 20:
            self.c.showPage()
            self._start()

    def heading(self, text: str):
        self.ensure(LINE_SPACING * 2)
        self.c.setFillColor(colors.black)
        self.c.setFont(FONT_BOLD, HEADING_SIZE)
        self.c.drawString(MARGIN, self.y, text)
        self.y -= LINE_SPACING

    def text(self, text: str, bold: bool = False, color=colors.black, indent: float = 0):
        font = FONT_BOLD if bold else FONT
        lines = simpleSplit(text, font, BODY_SIZE, self.width - 2 * MARGIN - indent) or [""]
        for line in lines:
            self.ensure(LINE_SPACING)
            self.c.setFillColor(color)
            self.c.setFont(font, BODY_SIZE)
            self.c.drawString(MARGIN + indent, self.y, line)
            self.y -= LINE_SPACING

    def gap(self, amount: float = SECTION_SPACING):
        self.y -= amount


def _format_duration(seconds: Optional[int]) -> str:
    m, s = divmod(int(seconds or 0), 60)
    return f"{m}m {s}s"


def build_score_report(
    attempt: ExamAttempt,
    questions: List[Question],
    examiner: Optional[Dict] = None,
) -> bytes:
    """
    Render the score report PDF.

    Args:
        attempt: finalized attempt
        questions: the attempt's questions (any order; drawn order is restored)
        examiner: examiners row (full_name, designation, store_area) or None

    Returns:
        PDF bytes
    """
    if not attempt.is_finalized:
        raise AttemptNotFinalized(attempt.id)

    summary = summarize(attempt, questions)
    examiner = examiner or {}

    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"{attempt.exam_type.value} exam report")
    page = _Page(c, f"{attempt.exam_type.value} Exam Report")

    page.heading("Exam Information")
    page.text(f"Examiner: {examiner.get('full_name') or 'N/A'}")
    page.text(f"Designation: {examiner.get('designation') or 'N/A'}")
    page.text(f"Store Area: {examiner.get('store_area') or 'N/A'}")
    page.text(f"Exam Type: {attempt.exam_type.value}")
    taken_on = attempt.completed_at or attempt.started_at
    page.text(f"Date Taken: {taken_on.strftime('%Y-%m-%d')}")
    page.text(f"Time Taken: {_format_duration(attempt.time_taken)}")
    page.gap()

    page.heading("Score Summary")
    page.text(f"Score: {summary['score']}/{summary['total_questions']}")
    page.text(f"Percentage: {summary['percentage']}%")
    page.text(
        "PASSED" if summary["passed"] else "FAILED",
        bold=True,
        color=GREEN if summary["passed"] else RED,
    )
    page.gap()

    page.heading("Question Review")
    if not summary["review_matches_score"]:
        page.text(
            "Some questions were edited after this exam was scored. The review below reflects the current "
            f"questions ({summary['review_score']}/{summary['total_questions']}); the recorded score stands.",
            color=colors.grey,
        )
    for row in summary["review"]:
        page.ensure(LINE_SPACING * 3)
        page.text(f"Question {row['number']}: {row['question_text']}", bold=True)
        page.text(f"Your Answer: {row['your_answer']}", indent=10)
        if row["correct_answer"] is not None:
            verdict = "Correct" if row["is_correct"] else "Incorrect"
            page.text(
                f"Correct Answer: {row['correct_answer']} ({verdict})",
                indent=10,
                color=GREEN if row["is_correct"] else RED,
            )
        page.gap(10)

    c.showPage()
    c.save()
    logger.info(f"Rendered report for attempt {attempt.id} ({len(summary['review'])} questions)")
    return buf.getvalue()
