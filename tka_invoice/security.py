"""
tka_invoice/security.py

Access control helpers.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Admin: full access.
- Viewer: read-only, may print and export.

viewer_readonly_guard() blocks POST/PUT/PATCH/DELETE for viewers and is wired
via app.before_request in the app factory. Routes still declare their own
requirements with admin_required.

Decorators use functools.wraps to avoid Flask endpoint collisions.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import render_template, request
from flask_login import current_user

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Mutating endpoints a viewer may still call
VIEWER_ALLOWED_ENDPOINTS = {"auth.logout"}


def _forbidden() -> Tuple[str, int]:
    """Render a consistent 403 page."""
    return render_template("errors/403.html"), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def viewer_readonly_guard() -> Optional[Tuple[str, int]]:
    """Global guard: viewers cannot mutate data."""
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if is_admin():
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in VIEWER_ALLOWED_ENDPOINTS:
        return None

    return _forbidden()


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def export_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any role allowed to export (admin, viewer)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not (current_user.is_authenticated and getattr(current_user, "can_export", False)):
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
