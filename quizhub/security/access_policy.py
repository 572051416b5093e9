"""
Role-based access policy.

``can_access`` is a pure decision over (actor, action, resource). It is
total: every role, action and resource type combination either matches a
rule below or falls through to DENY.
"""
from dataclasses import dataclass
from enum import Enum

from quizhub.auth.models import User
from quizhub.quiz.models import Quiz, QuizAttempt


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ_ANALYTICS = "read_analytics"
    START_ATTEMPT = "start_attempt"
    SUBMIT_ATTEMPT = "submit_attempt"
    ABANDON_ATTEMPT = "abandon_attempt"
    GRADE = "grade"
    MANAGE_USERS = "manage_users"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, supplied by the authentication layer."""
    id: int | None
    role: str | None

    @classmethod
    def from_user(cls, user) -> "Actor":
        if user is None or not getattr(user, "is_authenticated", False):
            return cls(id=None, role=None)
        return cls(id=user.id, role=user.role)

    @property
    def is_authenticated(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class AnalyticsScope:
    """
    Analytics being requested.

    ``user_id`` names whose analytics are read (None = every user);
    ``quiz`` narrows the scope to one quiz (None = across quizzes).
    """
    user_id: int | None
    quiz: Quiz | None = None

    def describe(self) -> str:
        quiz_part = f"quiz {self.quiz.id}" if self.quiz is not None else "all quizzes"
        user_part = f"user {self.user_id}" if self.user_id is not None else "all users"
        return f"analytics({user_part}, {quiz_part})"


def _is_quiz_staff(actor: Actor, quiz: Quiz) -> bool:
    return quiz.owner_id == actor.id or actor.id in quiz.collaborator_ids


def _student_can_see(actor: Actor, quiz: Quiz) -> bool:
    if quiz.status != 'published':
        return False
    assigned = quiz.assigned_ids
    return not assigned or actor.id in assigned


def _own_account(actor: Actor, action: Action, user: User) -> bool:
    # Everyone manages their own profile; roles and other accounts are admin only
    return action in (Action.READ, Action.UPDATE, Action.DELETE) and user.id == actor.id


def _teacher_decision(actor: Actor, action: Action, resource) -> bool:
    if resource is None:
        return action == Action.CREATE
    if isinstance(resource, User):
        return _own_account(actor, action, resource)
    if isinstance(resource, Quiz):
        if action == Action.READ:
            return True
        if action in (Action.CREATE, Action.UPDATE, Action.DELETE, Action.READ_ANALYTICS, Action.GRADE):
            return _is_quiz_staff(actor, resource)
        return False
    if isinstance(resource, QuizAttempt):
        if action in (Action.READ, Action.GRADE):
            return _is_quiz_staff(actor, resource.quiz)
        return False
    if isinstance(resource, AnalyticsScope):
        if action != Action.READ_ANALYTICS:
            return False
        if resource.quiz is not None:
            return _is_quiz_staff(actor, resource.quiz)
        return resource.user_id == actor.id
    return False


def _student_decision(actor: Actor, action: Action, resource) -> bool:
    if resource is None:
        return False
    if isinstance(resource, User):
        return _own_account(actor, action, resource)
    if isinstance(resource, Quiz):
        if action in (Action.READ, Action.START_ATTEMPT):
            return _student_can_see(actor, resource)
        return False
    if isinstance(resource, QuizAttempt):
        if action in (Action.READ, Action.SUBMIT_ATTEMPT, Action.ABANDON_ATTEMPT):
            return resource.user_id == actor.id
        return False
    if isinstance(resource, AnalyticsScope):
        return action == Action.READ_ANALYTICS and resource.user_id == actor.id
    return False


_ROLE_RULES = {
    'admin': lambda actor, action, resource: True,
    'teacher': _teacher_decision,
    'student': _student_decision,
}


def can_access(actor: Actor, action: Action, resource) -> Decision:
    """
    Decide whether ``actor`` may perform ``action`` on ``resource``.

    ``resource`` is a Quiz, a QuizAttempt, an AnalyticsScope, a User
    account, or None for creating a new quiz and for listing users.
    """
    if actor is None or not actor.is_authenticated:
        return Decision.DENY
    rule = _ROLE_RULES.get(actor.role)
    if rule is None:
        return Decision.DENY
    return Decision.ALLOW if rule(actor, Action(action), resource) else Decision.DENY


def is_allowed(actor: Actor, action: Action, resource) -> bool:
    return can_access(actor, action, resource) is Decision.ALLOW
