"""
Notification Routes (current user's inbox only)

- GET  /notifications                 newest first, at most 50
- GET  /notifications/unread-count
- POST /notifications/<id>/read
- POST /notifications/read-all
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ... import notifications
from ...security import current_actor

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.route("", methods=["GET"])
@login_required
def list_notifications():
    rows = notifications.list_for_user(current_user.id)
    return jsonify(
        {
            "notifications": [n.to_dict() for n in rows],
            "unread": notifications.unread_count(current_user.id),
        }
    )


@notifications_bp.route("/unread-count", methods=["GET"])
@login_required
def unread_count():
    return jsonify({"unread": notifications.unread_count(current_user.id)})


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id: int):
    notification = notifications.mark_read(current_actor(), notification_id)
    return jsonify({"notification": notification.to_dict()})


@notifications_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    return jsonify({"updated": notifications.mark_all_read(current_actor())})
