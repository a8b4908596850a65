"""
Authentication Routes

Provides:
- /auth/login   POST {"email", "password"}
- /auth/logout  POST
- /auth/me      GET

Rules:
- Only active users may log in.
- A user without a role may log in but every workflow operation refuses them.
"""

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from ...models import User
from ...utils import json_body, user_dict

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate with email + password (credentials checked via password hash)."""
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        logger.warning("Failed login for %s", email or "<empty>")
        return jsonify({"error": "Invalid email or password", "code": "invalid_credentials"}), 401

    if not user.is_active:
        return jsonify({"error": "Account is inactive", "code": "inactive"}), 403

    login_user(user)
    return jsonify({"user": user_dict(user)})


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"ok": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": user_dict(current_user)})
