"""
costsheets/security.py

Access control helpers for the Cost Sheets service.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Workflow operations receive an explicit Actor (actor_id, actor_role) and check
  permissions themselves. The helpers here only bridge the Flask-Login session to
  that Actor and give routes cheap role gates.
- Estimator: authors cost sheets (create/edit/submit).
- Admin: approves/rejects items, may delete items and sheets at any time.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Tuple

from flask import jsonify
from flask_login import current_user

from .models import Role


@dataclass(frozen=True)
class Actor:
    """Who is performing a workflow operation."""

    actor_id: int | None
    actor_role: Role | None

    @property
    def is_admin(self) -> bool:
        return self.actor_role == Role.ADMIN

    @property
    def is_estimator(self) -> bool:
        return self.actor_role == Role.ESTIMATOR


def actor_for(user: Any) -> Actor:
    """Build an Actor from a User row (or anything with id/role)."""
    return Actor(actor_id=getattr(user, "id", None), actor_role=getattr(user, "role", None))


def current_actor() -> Actor:
    """Actor for the logged-in user (anonymous -> no id, no role)."""
    if not current_user.is_authenticated:
        return Actor(actor_id=None, actor_role=None)
    return actor_for(current_user)


def _forbidden() -> Tuple[Any, int]:
    """Consistent 403 body."""
    return jsonify({"error": "You do not have permission to perform this action.", "code": "forbidden"}), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def is_estimator() -> bool:
    return bool(current_user.is_authenticated and getattr(current_user, "is_estimator", False))


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def estimator_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: estimator-only (authoring actions)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_estimator():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def role_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any user holding a role (estimator or admin)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not (is_admin() or is_estimator()):
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
