"""Employee examination portal: take a timed exam, review results, download the PDF report."""
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from callbacks import ANSWER_ERROR, SHOW_RESULTS, clock_tick, save_answer
from db import (
    count_examiners,
    get_attempt_store,
    get_attempts,
    get_exam_settings,
    get_examiner,
    get_question_counts,
    get_question_repository,
    get_role,
    list_examiners,
    update_exam_settings,
)
from engine import EXAM_DURATION_MINUTES, MIN_QUESTIONS, PASS_THRESHOLD, QUESTIONS_PER_EXAM
from src.access import Viewer, can_view_attempt, require_admin
from src.engine import ExamAttemptEngine
from src.errors import ExamError, InsufficientQuestions, NotFound
from src.models import ExamType, QuestionType
from src.report import build_score_report
from src.timer import format_clock

OPTION_LABELS = "ABCDEFGHIJ"


@st.cache_resource
def get_engine() -> ExamAttemptEngine:
    return ExamAttemptEngine(get_question_repository(), get_attempt_store())


def resolve_viewer(user_id: str) -> Viewer:
    """Role lookup happens once per session; pages only read the Viewer."""
    cached = st.session_state.get("viewer")
    if cached is not None and cached.user_id == user_id:
        return cached
    viewer = Viewer(user_id=user_id, role=get_role(user_id))
    st.session_state["viewer"] = viewer
    return viewer


def on_answer_change(attempt_id: str, question_id: str, widget_key: str, kind: str):
    save_answer(get_engine(), st.session_state, attempt_id, question_id, widget_key, kind)


def render_results(attempt_id: str, viewer: Viewer):
    engine = get_engine()
    attempt = engine.get_attempt(attempt_id)
    if not can_view_attempt(viewer, attempt):
        st.error("You are not allowed to view this result.")
        return
    questions = engine.questions_for(attempt)
    summary = engine.summary(attempt_id)

    st.subheader(f"{attempt.exam_type.value} Exam Results")
    col1, col2, col3 = st.columns(3)
    col1.metric("Score", f"{summary['score']}/{summary['total_questions']}")
    col2.metric("Percentage", f"{summary['percentage']}%")
    col3.metric("Time taken", format_clock(summary["time_taken"] or 0))
    if summary["passed"]:
        st.success(f"PASSED (pass mark {int(PASS_THRESHOLD * 100)}%)")
    else:
        st.error(f"FAILED (pass mark {int(PASS_THRESHOLD * 100)}%)")

    if attempt.is_finalized:
        pdf = build_score_report(attempt, questions, get_examiner(attempt.user_id))
        st.download_button("Download PDF", pdf, file_name=f"exam-{attempt.id}.pdf", mime="application/pdf")

    st.divider()
    st.subheader("Question Review")
    if not summary["review_matches_score"]:
        st.caption(
            "Some questions were edited after this exam was scored. The review reflects the current "
            f"questions ({summary['review_score']}/{summary['total_questions']}); the recorded score stands."
        )
    for row in summary["review"]:
        with st.container(border=True):
            badge = {True: " :green[Correct]", False: " :red[Incorrect]", None: ""}[row["is_correct"]]
            st.markdown(f"**Question {row['number']}**{badge}")
            st.write(row["question_text"])
            if row["image_url"]:
                st.image(row["image_url"], width=320)
            st.caption("Your answer")
            st.write(row["your_answer"])
            if row["correct_answer"] is not None:
                st.caption("Correct answer")
                st.write(row["correct_answer"])


@st.fragment(run_every="1s")
def render_clock(attempt_id: str):
    try:
        remaining, confirmed = clock_tick(get_engine(), st.session_state, attempt_id)
    except ExamError as e:
        st.error(f"Timer unavailable: {e}")
        return
    st.metric("Time left", "--:--" if remaining is None else format_clock(remaining))
    if not confirmed:
        st.caption("Reconnecting...")
    elif remaining <= 0:
        st.session_state[SHOW_RESULTS] = attempt_id
        st.rerun(scope="app")


def render_exam(attempt_id: str):
    engine = get_engine()
    attempt = engine.get_attempt(attempt_id)
    if attempt.is_finalized:
        st.session_state["show_results"] = attempt_id
        st.rerun()
    questions = engine.questions_for(attempt)
    n = len(questions)
    if n == 0:
        st.error("The questions for this exam are no longer available. Submit to close it.")
        if st.button("Submit exam", type="primary"):
            engine.submit_attempt(attempt_id)
            st.session_state["show_results"] = attempt_id
            st.rerun()
        return

    with st.sidebar:
        render_clock(attempt_id)
        answered = sum(1 for q in questions if attempt.answers.get(q.id) not in (None, ""))
        st.progress(answered / n if n else 0)
        st.caption(f"{answered}/{n} answered")

    answer_error = st.session_state.pop(ANSWER_ERROR, None)
    if answer_error:
        st.warning(answer_error)

    idx = min(st.session_state.get("current_q", 0), n - 1)
    q = questions[idx]
    stored = attempt.answers.get(q.id)
    key = f"{attempt_id}_{q.id}"
    args = (attempt_id, q.id, key, q.question_type.value)

    st.subheader(f"Question {idx + 1} of {n}")
    st.write(q.question_text)
    if q.image_url:
        st.image(q.image_url, width=420)

    if q.question_type is QuestionType.MULTIPLE_CHOICE:
        options = (q.options or [])[:len(OPTION_LABELS)]
        choices = [-1] + list(range(len(options)))
        labels = ["(no answer)"] + [f"{OPTION_LABELS[i]}. {opt}" for i, opt in enumerate(options)]
        st.radio(
            "Choose one:",
            choices,
            index=choices.index(stored) if stored in choices else 0,
            format_func=lambda i: labels[i + 1],
            key=key,
            on_change=on_answer_change,
            args=args,
        )
    elif q.question_type is QuestionType.TRUE_FALSE:
        st.radio(
            "True or false?",
            ["True", "False"],
            index=None if stored is None else (0 if stored else 1),
            key=key,
            on_change=on_answer_change,
            args=args,
        )
    elif q.question_type is QuestionType.FILL_IN_BLANK:
        st.text_input("Your answer", value=stored or "", key=key, on_change=on_answer_change, args=args)
    else:
        st.text_area("Your answer", value=stored or "", height=200, key=key, on_change=on_answer_change, args=args)

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("Previous", disabled=idx == 0):
            st.session_state["current_q"] = idx - 1
            st.rerun()
    with col2:
        if st.button("Next", disabled=idx >= n - 1):
            st.session_state["current_q"] = idx + 1
            st.rerun()
    with col3:
        if st.button("Submit exam", type="primary"):
            engine.submit_attempt(attempt_id)
            st.session_state["show_results"] = attempt_id
            st.rerun()


def render_admin():
    st.header("Administration")
    counts = get_question_counts()
    col1, col2 = st.columns(2)
    col1.metric("Examiners", count_examiners())
    col2.metric("Questions", counts["total"])

    st.subheader("Exam settings")
    settings = get_exam_settings()
    st.caption(f"Exams are timed at {EXAM_DURATION_MINUTES} minutes; the default time below is informational and does not change exam length.")
    default_time = st.number_input("Default time (minutes)", min_value=1, value=int(settings["default_time"]), step=5)
    if st.button("Save settings"):
        update_exam_settings(int(default_time))
        st.success("Settings saved.")

    st.subheader("Examiners")
    search = st.text_input("Search examiners", placeholder="Name")
    examiners = list_examiners(search)
    if not examiners:
        st.info("No examiners found.")
    else:
        st.dataframe(
            [{k: e.get(k) for k in ("full_name", "designation", "store_area")} for e in examiners],
            hide_index=True,
        )


st.set_page_config(page_title="Exam Portal", layout="wide")
st.sidebar.title("Exam Portal")
user_id = st.sidebar.text_input("Employee ID", value=st.query_params.get("user", ""))
if not user_id:
    st.info("Enter your employee ID in the sidebar to continue.")
    st.stop()

try:
    viewer = resolve_viewer(user_id)
except (ExamError, ValueError) as e:
    st.error(f"Could not reach the database. Check .env (SUPABASE_URL, SUPABASE_KEY). {e}")
    st.stop()
if viewer.role is None:
    st.error("This account has no examiner or admin profile.")
    st.stop()

pages = ["Take Exam", "My Results"] + (["Admin"] if viewer.is_admin else [])
page = st.sidebar.radio("Navigate", pages, label_visibility="collapsed")

try:
    # ----- Results -----
    if st.session_state.get("show_results"):
        render_results(st.session_state["show_results"], viewer)
        if st.button("Back"):
            st.session_state.pop("show_results", None)
            st.session_state.pop("attempt_id", None)
            st.session_state["current_q"] = 0
            st.rerun()

    # ----- Take Exam -----
    elif page == "Take Exam":
        if st.session_state.get("attempt_id"):
            render_exam(st.session_state["attempt_id"])
            st.stop()

        st.header("Take Exam")
        st.caption(f"Up to {QUESTIONS_PER_EXAM} questions · {EXAM_DURATION_MINUTES} minutes · pass mark {int(PASS_THRESHOLD * 100)}%")
        counts = get_question_counts()
        exam_type = st.selectbox(
            "Exam type",
            [t.value for t in ExamType],
            format_func=lambda t: f"{t} ({counts.get(t, 0)} questions)",
        )
        if counts.get(exam_type, 0) < MIN_QUESTIONS:
            st.warning(f"There are not enough questions available for the {exam_type} exam.")
        st.markdown(
            "- Your answers are saved automatically\n"
            "- The exam is submitted automatically when time runs out\n"
            "- An unfinished exam is resumed where you left off"
        )
        if st.button("Start / continue exam", type="primary"):
            try:
                st.session_state["attempt_id"] = get_engine().start_attempt(viewer.user_id, ExamType(exam_type))
                st.session_state["current_q"] = 0
                st.rerun()
            except InsufficientQuestions as e:
                st.error(f"Exam not available: {e}")

    # ----- Admin -----
    elif page == "Admin":
        require_admin(viewer)
        render_admin()

    # ----- My Results -----
    else:
        st.header("My Results" if not viewer.is_admin else "All Results")
        history = get_attempts(None if viewer.is_admin else viewer.user_id)
        if not history:
            st.info("No exams taken yet.")
        for attempt in history:
            status = f"{attempt.score}/{attempt.total_questions}" if attempt.is_finalized else "in progress"
            label = f"{attempt.exam_type.value} · {attempt.started_at:%Y-%m-%d %H:%M} · {status}"
            if st.button(label, key=f"open_{attempt.id}", disabled=not attempt.is_finalized):
                st.session_state["show_results"] = attempt.id
                st.rerun()

except NotFound as e:
    st.error(f"{e}. Returning to the start page.")
    st.session_state.pop("attempt_id", None)
    st.session_state.pop("show_results", None)
except ExamError as e:
    st.error(f"Something went wrong talking to the exam service: {e}")
