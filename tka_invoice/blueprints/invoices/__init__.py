"""
tka_invoice/blueprints/invoices/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import invoices_bp  # noqa: F401
