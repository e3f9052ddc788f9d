"""
tka_invoice/seed.py

Seed default business settings and the first administrator.

Rules:
- Safe to run multiple times (idempotent).
- Existing settings keep the value an admin gave them; only missing keys are
  added, and descriptions / type / system flag are kept in sync.
"""

from __future__ import annotations

import logging

from .errors import DuplicateRecord
from .extensions import db
from .models import ROLE_ADMIN, Setting, User
from .settings_store import DEFAULT_SETTINGS
from .validation import ensure_valid, validate_user

logger = logging.getLogger(__name__)


def seed_default_settings() -> int:
    """Insert missing default settings. Returns the number of rows added."""
    added = 0
    for key, value, type_, description, is_system in DEFAULT_SETTINGS:
        exists = Setting.query.filter_by(setting_key=key).first()
        if exists:
            exists.description = description
            exists.setting_type = type_
            exists.is_system = is_system
            continue

        db.session.add(
            Setting(
                setting_key=key,
                setting_value=value,
                setting_type=type_,
                description=description,
                is_system=is_system,
            )
        )
        added += 1

    db.session.commit()
    if added:
        logger.info("Seeded %s default settings", added)
    return added


def create_admin_user(username: str, password: str, full_name: str = "Administrator") -> User:
    """Create an active admin account; refuses duplicate usernames."""
    username = (username or "").strip()
    ensure_valid(validate_user(username, full_name, password, ROLE_ADMIN))
    if not password:
        ensure_valid(["Password tidak boleh kosong"])

    if User.query.filter_by(username=username).first():
        raise DuplicateRecord(f"Username {username} sudah digunakan")

    user = User(username=username, full_name=full_name, role=ROLE_ADMIN, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    logger.info("Created admin user %s", username)
    return user
