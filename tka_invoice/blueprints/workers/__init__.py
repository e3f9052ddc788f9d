"""
tka_invoice/blueprints/workers/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import workers_bp  # noqa: F401
