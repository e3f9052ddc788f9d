"""
tka_invoice/validation.py

Server-side field validation. Each validate_* helper returns a list of
human-readable messages (empty when valid); ensure_valid() turns a non-empty
list into InvalidArgument.

Messages are in Indonesian because they are flashed to end users as-is.
"""

from __future__ import annotations

import re
from decimal import Decimal

from .errors import InvalidArgument

PASSPORT_RE = re.compile(r"^[A-Z0-9]{6,12}$")
NPWP_RE = re.compile(r"^[\d.\-]{15,20}$")
INVOICE_NUMBER_RE = re.compile(r"^[A-Z]{2,5}/\d{2}/\d{2}/\d{3,4}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
PREFIX_RE = re.compile(r"^[A-Z]{2,5}$")

GENDERS = ("Laki-laki", "Perempuan")


def clean(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def to_proper_case(value: str | None) -> str:
    """'jOHN   doe' -> 'John Doe'."""
    words = clean(value).lower().split()
    return " ".join(w[0].upper() + w[1:] for w in words)


def normalize_passport(passport: str | None) -> str:
    return clean(passport).replace(" ", "").replace("-", "").upper()


def _required(value, field: str) -> list[str]:
    return [f"{field} tidak boleh kosong"] if not clean(value) else []


def _length(value, field: str, min_len: int = 0, max_len: int | None = None) -> list[str]:
    text = clean(value)
    if not text:
        return []
    if len(text) < min_len:
        return [f"{field} minimal {min_len} karakter"]
    if max_len is not None and len(text) > max_len:
        return [f"{field} maksimal {max_len} karakter"]
    return []


def is_valid_passport(passport: str | None) -> bool:
    return bool(PASSPORT_RE.match(normalize_passport(passport)))


def is_valid_invoice_number(number: str | None) -> bool:
    return bool(INVOICE_NUMBER_RE.match(clean(number)))


def validate_username(username: str | None) -> list[str]:
    text = clean(username)
    if not text:
        return []
    if not USERNAME_RE.match(text):
        return ["Username hanya boleh huruf, angka, dan underscore (3-20 karakter)"]
    if text.startswith("_") or text.endswith("_"):
        return ["Username tidak boleh diawali atau diakhiri dengan underscore"]
    return []


def validate_password(password: str | None, min_length: int = 6) -> list[str]:
    if not password:
        return []
    if len(password) < min_length:
        return [f"Password minimal {min_length} karakter"]
    if not (any(c.isalpha() for c in password) and any(c.isdigit() for c in password)):
        return ["Password harus mengandung huruf dan angka"]
    return []


def validate_worker(nama, passport, divisi=None) -> list[str]:
    errors = _required(nama, "Nama") + _length(nama, "Nama", 2, 100)
    errors += _required(passport, "Passport")
    if clean(passport) and not is_valid_passport(passport):
        errors.append("Format passport tidak valid (6-12 karakter, huruf dan angka)")
    errors += _length(divisi, "Divisi", 1, 100)
    return errors


def validate_family_member(nama, passport, relationship) -> list[str]:
    from .models import FAMILY_RELATIONSHIPS

    errors = validate_worker(nama, passport)
    if relationship not in FAMILY_RELATIONSHIPS:
        errors.append("Hubungan keluarga tidak valid")
    return errors


def validate_company(company_name, npwp, idtku, address) -> list[str]:
    errors = _required(company_name, "Nama Perusahaan") + _length(company_name, "Nama Perusahaan", 2, 200)
    errors += _required(npwp, "NPWP")
    if clean(npwp) and not NPWP_RE.match(clean(npwp)):
        errors.append("Format NPWP tidak valid")
    errors += _required(idtku, "IDTKU") + _length(idtku, "IDTKU", 1, 20)
    errors += _required(address, "Alamat")
    return errors


def validate_job(job_name, job_description, price) -> list[str]:
    errors = _required(job_name, "Job Name") + _length(job_name, "Job Name", 2, 200)
    errors += _required(job_description, "Job Description")
    if price is None or Decimal(str(price)) < 0:
        errors.append("Harga tidak boleh kurang dari 0")
    return errors


def validate_user(username, full_name, password, role) -> list[str]:
    from .models import ROLES

    errors = _required(username, "Username") + validate_username(username)
    errors += _required(full_name, "Nama Lengkap") + _length(full_name, "Nama Lengkap", 2, 100)
    errors += validate_password(password)
    if role not in ROLES:
        errors.append("Role tidak valid")
    return errors


def validate_bank_account(bank_name, account_number, account_name) -> list[str]:
    errors = _required(bank_name, "Nama Bank") + _length(bank_name, "Nama Bank", 2, 100)
    errors += _required(account_number, "Nomor Rekening") + _length(account_number, "Nomor Rekening", 8, 50)
    errors += _required(account_name, "Nama Pemilik Rekening")
    errors += _length(account_name, "Nama Pemilik Rekening", 2, 100)
    return errors


def ensure_valid(errors: list[str]) -> None:
    if errors:
        raise InvalidArgument("; ".join(errors))
