"""
Auth blueprint package.

This file just exposes the Blueprint object to be imported in costsheets.__init__.
The actual routes are in routes.py.
"""

from .routes import auth_bp  # noqa: F401
