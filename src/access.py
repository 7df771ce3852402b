"""Role resolved once per session and passed around as a Viewer."""
from dataclasses import dataclass
from typing import Optional

from src.errors import PermissionDenied
from src.models import ExamAttempt, Role


@dataclass(frozen=True)
class Viewer:
    user_id: str
    role: Optional[Role] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_examiner(self) -> bool:
        return self.role is Role.EXAMINER


def can_view_attempt(viewer: Viewer, attempt: ExamAttempt) -> bool:
    """Owners see their own attempts; admins see everyone's."""
    return viewer.is_admin or attempt.user_id == viewer.user_id


def require_view(viewer: Viewer, attempt: ExamAttempt) -> None:
    if not can_view_attempt(viewer, attempt):
        raise PermissionDenied(f"User {viewer.user_id} may not view attempt {attempt.id}")


def require_admin(viewer: Viewer) -> None:
    if not viewer.is_admin:
        raise PermissionDenied(f"User {viewer.user_id} is not an admin")
