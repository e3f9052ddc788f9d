"""
tka_invoice/settings_store.py

Typed access to the settings table, plus bank account management.

Settings are stored as text with a declared type; get_setting() converts on
read and falls back to the built-in default when a key is missing or its
stored value cannot be converted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .audit import log_action, serialize_model
from .errors import InvalidArgument, NotFound
from .extensions import db
from .models import BankAccount, Setting
from .validation import clean, ensure_valid, validate_bank_account

logger = logging.getLogger(__name__)

SETTING_TYPES = ("string", "integer", "decimal", "boolean", "json", "datetime")

# key, value, type, description, is_system
DEFAULT_SETTINGS = [
    ("company_name", "PT. FORTUNA SADA NIOGA", "string", "Nama perusahaan untuk header invoice", False),
    ("company_tagline", "Spirit of Services", "string", "Tagline perusahaan", False),
    ("company_address", "Jakarta", "string", "Alamat kantor", False),
    ("company_phone", "", "string", "Nomor telepon utama", False),
    ("company_phone2", "", "string", "Nomor telepon kedua", False),
    ("default_vat_percentage", "11.00", "decimal", "Persentase PPN default", False),
    ("invoice_number_prefix", "FSN", "string", "Prefix nomor invoice", False),
    ("invoice_place", "Jakarta", "string", "Tempat untuk tanggal invoice", False),
    ("default_bank_id", "", "integer", "Rekening bank default untuk invoice", False),
    ("show_bank_last_page_only", "true", "boolean", "Tampilkan info bank hanya di halaman terakhir", False),
    ("default_page_size", "50", "integer", "Jumlah record per halaman default", False),
    ("database_version", "1.0.0", "string", "Versi database", True),
    ("maintenance_mode", "false", "boolean", "Mode maintenance", True),
]

_DEFAULTS = {key: (value, type_) for key, value, type_, _desc, _sys in DEFAULT_SETTINGS}


def _convert(raw: str, type_: str) -> Any:
    if type_ == "integer":
        return int(raw) if raw.strip() else None
    if type_ == "decimal":
        return Decimal(raw)
    if type_ == "boolean":
        return raw.strip().lower() in ("true", "1", "yes", "ya")
    if type_ == "json":
        return json.loads(raw) if raw.strip() else None
    if type_ == "datetime":
        return datetime.fromisoformat(raw) if raw.strip() else None
    return raw


def _to_text(value: Any, type_: str) -> str:
    if value is None:
        return ""
    if type_ == "boolean":
        return "true" if value in (True, "true", "1", "on", "yes") else "false"
    if type_ == "json":
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    if type_ == "datetime" and isinstance(value, datetime):
        return value.isoformat()
    return str(value).strip()


def get_setting(key: str, default: Any = None) -> Any:
    """Typed value of a setting; built-in default when missing or unreadable."""
    row = Setting.query.filter_by(setting_key=key).first()
    if row is not None:
        try:
            return _convert(row.setting_value or "", row.setting_type)
        except (ValueError, InvalidOperation):
            logger.warning("Setting %s holds an unreadable %s value: %r", key, row.setting_type, row.setting_value)

    if key in _DEFAULTS:
        raw, type_ = _DEFAULTS[key]
        return _convert(raw, type_)
    return default


def set_setting(key: str, value: Any, setting_type: str | None = None, user_id: int | None = None) -> Setting:
    """Create or update a setting; validates the value against its type."""
    row = Setting.query.filter_by(setting_key=key).first()
    type_ = setting_type or (row.setting_type if row else _DEFAULTS.get(key, ("", "string"))[1])
    if type_ not in SETTING_TYPES:
        raise InvalidArgument(f"Unknown setting type {type_!r}")
    if row is not None and row.is_system:
        raise InvalidArgument(f"Setting {key} is read-only")

    text = _to_text(value, type_)
    try:
        _convert(text, type_)
    except (ValueError, InvalidOperation) as exc:
        raise InvalidArgument(f"Nilai {text!r} tidak valid untuk {key} ({type_})") from exc

    if key == "default_vat_percentage":
        pct = Decimal(text)
        if pct < 0 or pct > 100:
            raise InvalidArgument("PPN harus antara 0 dan 100")
    if key == "invoice_number_prefix":
        from .sequencer import validate_prefix

        validate_prefix(text)

    before = serialize_model(row) if row else None
    if row is None:
        row = Setting(setting_key=key, setting_type=type_)
        db.session.add(row)
    row.setting_value = text
    row.setting_type = type_
    row.updated_by = user_id
    db.session.flush()
    log_action(row, "UPDATE" if before else "CREATE", before=before, after=serialize_model(row), user_id=user_id)
    return row


def all_settings() -> list[Setting]:
    return Setting.query.order_by(Setting.setting_key.asc()).all()


def invoice_prefix() -> str:
    return get_setting("invoice_number_prefix") or "FSN"


def default_vat_percentage() -> Decimal:
    value = get_setting("default_vat_percentage")
    return Decimal(str(value)) if value is not None else Decimal("11.00")


@dataclass
class Letterhead:
    company_name: str
    company_tagline: str
    company_address: str
    company_phone: str
    company_phone2: str
    invoice_place: str
    show_bank_last_page_only: bool


def letterhead() -> Letterhead:
    """Company block printed at the top of every invoice."""
    return Letterhead(
        company_name=get_setting("company_name") or "",
        company_tagline=get_setting("company_tagline") or "",
        company_address=get_setting("company_address") or "",
        company_phone=get_setting("company_phone") or "",
        company_phone2=get_setting("company_phone2") or "",
        invoice_place=get_setting("invoice_place") or "",
        show_bank_last_page_only=bool(get_setting("show_bank_last_page_only")),
    )


# ---------------------------------------------------------------------
# Bank accounts
# ---------------------------------------------------------------------
def list_bank_accounts(include_inactive: bool = False) -> list[BankAccount]:
    q = BankAccount.query
    if not include_inactive:
        q = q.filter(BankAccount.is_active.is_(True))
    return q.order_by(BankAccount.sort_order.asc(), BankAccount.bank_name.asc()).all()


def get_bank_account(bank_id: int) -> BankAccount:
    bank = db.session.get(BankAccount, bank_id)
    if bank is None:
        raise NotFound(f"Rekening bank {bank_id} tidak ditemukan")
    return bank


def default_bank_account() -> BankAccount | None:
    """Flagged default account, else the default_bank_id setting, else None."""
    bank = BankAccount.query.filter_by(is_default=True, is_active=True).first()
    if bank is not None:
        return bank
    bank_id = get_setting("default_bank_id")
    if bank_id:
        bank = db.session.get(BankAccount, bank_id)
        if bank is not None and bank.is_active:
            return bank
    return None


def _clear_default(except_id: int | None = None) -> None:
    q = BankAccount.query.filter(BankAccount.is_default.is_(True))
    if except_id is not None:
        q = q.filter(BankAccount.id != except_id)
    for other in q.all():
        other.is_default = False


def save_bank_account(
    bank_name: str,
    account_number: str,
    account_name: str,
    is_default: bool = False,
    sort_order: int = 0,
    bank_id: int | None = None,
) -> BankAccount:
    """Create (bank_id None) or update a bank account. At most one account is the default."""
    ensure_valid(validate_bank_account(bank_name, account_number, account_name))

    if bank_id is None:
        bank = BankAccount()
        db.session.add(bank)
        before = None
    else:
        bank = get_bank_account(bank_id)
        before = serialize_model(bank)

    bank.bank_name = clean(bank_name)
    bank.account_number = clean(account_number)
    bank.account_name = clean(account_name)
    bank.sort_order = sort_order or 0
    bank.is_default = bool(is_default)
    db.session.flush()

    if bank.is_default:
        _clear_default(except_id=bank.id)

    log_action(bank, "UPDATE" if before else "CREATE", before=before, after=serialize_model(bank))
    db.session.commit()
    return bank


def deactivate_bank_account(bank_id: int) -> BankAccount:
    bank = get_bank_account(bank_id)
    before = serialize_model(bank)
    bank.is_active = False
    bank.is_default = False
    db.session.flush()
    log_action(bank, "DELETE", before=before, after=serialize_model(bank))
    db.session.commit()
    return bank
