"""
tka_invoice/blueprints/auth/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import auth_bp  # noqa: F401
