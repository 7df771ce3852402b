import pytest

from conftest import T0
from src.access import Viewer, can_view_attempt, require_admin, require_view
from src.errors import PermissionDenied
from src.models import ExamAttempt, ExamType, Role


ATTEMPT = ExamAttempt(
    id="a1",
    user_id="emp-1",
    exam_type=ExamType.SAP,
    question_ids=[],
    answers={},
    started_at=T0,
    total_questions=0,
    allotted_seconds=1800,
)


def test_owner_and_admin_can_view():
    assert can_view_attempt(Viewer("emp-1", Role.EXAMINER), ATTEMPT)
    assert can_view_attempt(Viewer("hr", Role.ADMIN), ATTEMPT)
    assert not can_view_attempt(Viewer("emp-2", Role.EXAMINER), ATTEMPT)


def test_require_helpers_raise():
    require_view(Viewer("emp-1", Role.EXAMINER), ATTEMPT)
    require_admin(Viewer("hr", Role.ADMIN))
    with pytest.raises(PermissionDenied):
        require_view(Viewer("emp-2"), ATTEMPT)
    with pytest.raises(PermissionDenied):
        require_admin(Viewer("emp-1", Role.EXAMINER))
