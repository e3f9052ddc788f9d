"""
tka_invoice/audit.py

Audit logging helpers.

- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store a username snapshot to preserve identity even if the username changes later.
- Store the client IP when the action happens inside a request.

IMPORTANT:
- log_action ADDS an AuditLog entry to the current session.
  The calling service controls the transaction (flush -> log_action -> commit).
- Services also run from CLI commands and Excel imports; there is no
  request or logged-in user there, so both are optional.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog


def _safe_str(value: Any) -> Optional[str]:
    """Stable string for JSON snapshots (Decimal, date, datetime, ...)."""
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Snapshot of a model's column values, as strings.

    Only scalar columns are captured, not relationships.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def _acting_user():
    if not has_request_context():
        return None
    if current_user and current_user.is_authenticated:
        return current_user
    return None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    user_id: int | None = None,
) -> AuditLog:
    """
    Add an AuditLog entry to the current db session.

    entity must already have an id (flush first). user_id overrides the
    logged-in user (CLI commands, imports run on behalf of a user).
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    user = _acting_user()
    entry = AuditLog(
        user_id=user_id if user_id is not None else (user.id if user else None),
        username_snapshot=user.username if user else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
