"""
tka_invoice/blueprints/companies/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import companies_bp  # noqa: F401
