"""
Utility functions shared across the blueprints. This includes:
- json_body: the request's JSON object (empty dict when absent or malformed).
- optional_text: read an optional string field.
- user_dict: the JSON shape of a login user.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import request

from .errors import ValidationError


def json_body() -> dict:
    """Return the JSON object sent with the request; anything else counts as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def user_dict(user) -> dict:
    role = user.role
    return {"id": user.id, "email": user.email, "role": role.value if role else None}
