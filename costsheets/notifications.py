"""
costsheets/notifications.py

Per-user notification inbox.

Workflow transitions call notify_admins()/notify_user(); those only ADD rows to the
current session so the notification lands in the same transaction as the transition.
After the caller commits it hands the rows to publish_created() so live watchers hear
about them.

Read-side helpers (list/unread/mark read) commit on their own.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from .errors import NotFound, PermissionDenied, StoreError
from .events import INSERT, UPDATE, ChangeEvent
from .extensions import db, event_bus
from .models import Notification, Role, UserRole

logger = logging.getLogger(__name__)

TYPE_APPROVAL_REQUEST = "approval_request"
TYPE_APPROVAL = "approval"
TYPE_REJECTION = "rejection"

TITLE_APPROVAL_REQUEST = "New Cost Sheet Awaiting Approval"
TITLE_APPROVED = "Item Approved"
TITLE_REJECTED = "Item Rejected"

DEFAULT_LIMIT = 50


def admin_user_ids() -> List[int]:
    rows = UserRole.query.filter_by(role=Role.ADMIN).order_by(UserRole.user_id.asc()).all()
    return [r.user_id for r in rows]


def notify_user(user_id: int, title: str, message: str, type_: str) -> Notification:
    notification = Notification(user_id=user_id, title=title, message=message, type=type_, read=False)
    db.session.add(notification)
    return notification


def notify_admins(title: str, message: str, type_: str) -> List[Notification]:
    """One notification per user holding the admin role."""
    return [notify_user(uid, title, message, type_) for uid in admin_user_ids()]


def publish_created(notifications: Iterable[Notification]) -> None:
    """Emit INSERT change events; call only after the rows are committed."""
    for n in notifications:
        event_bus.publish(
            ChangeEvent(
                table="notifications",
                action=INSERT,
                row_id=n.id,
                payload=n.to_dict(),
                user_id=n.user_id,
            )
        )


# ---------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------
def list_for_user(user_id: int, limit: int = DEFAULT_LIMIT) -> List[Notification]:
    """Newest first."""
    return (
        Notification.query.filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(user_id: int) -> int:
    return Notification.query.filter_by(user_id=user_id, read=False).count()


def mark_read(actor, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.user_id != actor.actor_id:
        raise PermissionDenied("You can only mark your own notifications as read")

    if notification.read:
        return notification

    notification.read = True
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to mark notification %s read: %s", notification_id, exc)
        raise StoreError("Failed to update notification") from exc

    event_bus.publish(
        ChangeEvent(table="notifications", action=UPDATE, row_id=notification.id,
                    payload=notification.to_dict(), user_id=notification.user_id)
    )
    return notification


def mark_all_read(actor) -> int:
    """Flip every unread notification of the actor; returns how many changed."""
    try:
        changed = (
            Notification.query.filter_by(user_id=actor.actor_id, read=False)
            .update({Notification.read: True}, synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to mark notifications read for user %s: %s", actor.actor_id, exc)
        raise StoreError("Failed to update notifications") from exc
    return changed
