"""
tka_invoice/workers.py

Foreign workers (TKA) and their family members.

- Passports are normalized (no spaces/dashes, upper case) and unique across
  workers AND family members.
- Workers used on invoice lines cannot be deactivated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, or_

from .audit import log_action, serialize_model
from .cache import get_query_cache
from .errors import DuplicateRecord, InvalidArgument, NotFound
from .extensions import db
from .models import GENDER_MALE, Invoice, InvoiceLine, TkaFamily, TkaWorker
from .validation import (
    GENDERS,
    clean,
    ensure_valid,
    normalize_passport,
    to_proper_case,
    validate_family_member,
    validate_worker,
)

logger = logging.getLogger(__name__)

CACHE_PREFIX = "tka"


@dataclass
class ImportResult:
    processed: int = 0
    success: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    batch_id: str | None = None

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def message(self) -> str:
        return (
            f"Import selesai: {self.success} berhasil, {self.error_count} error, {self.skipped} dilewati"
        )


def _invalidate_cache() -> None:
    get_query_cache().invalidate_prefix(CACHE_PREFIX)


def _gender(value: str | None) -> str:
    value = clean(value)
    if not value:
        return GENDER_MALE
    if value not in GENDERS:
        raise InvalidArgument("Jenis kelamin harus 'Laki-laki' atau 'Perempuan'")
    return value


def passport_exists(passport: str, exclude_worker_id: int | None = None, exclude_family_id: int | None = None) -> bool:
    """True if a worker or family member other than the excluded ones holds this passport."""
    passport = normalize_passport(passport)

    wq = TkaWorker.query.filter(TkaWorker.passport == passport)
    if exclude_worker_id is not None:
        wq = wq.filter(TkaWorker.id != exclude_worker_id)
    if wq.first() is not None:
        return True

    fq = TkaFamily.query.filter(TkaFamily.passport == passport)
    if exclude_family_id is not None:
        fq = fq.filter(TkaFamily.id != exclude_family_id)
    return fq.first() is not None


# ---------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------
def get_worker(worker_id: int) -> TkaWorker:
    worker = db.session.get(TkaWorker, worker_id)
    if worker is None:
        raise NotFound(f"TKA {worker_id} tidak ditemukan")
    return worker


def find_worker_by_name(nama: str) -> TkaWorker | None:
    text = clean(nama)
    if not text:
        return None
    return TkaWorker.query.filter(
        func.lower(TkaWorker.nama) == text.lower(), TkaWorker.is_active.is_(True)
    ).first()


def search_workers(
    term: str | None = None,
    company_id: int | None = None,
    include_inactive: bool = False,
) -> list[TkaWorker]:
    """
    Name / passport / divisi search. With company_id, only workers that
    already appear on that company's invoices.
    """
    q = TkaWorker.query
    if not include_inactive:
        q = q.filter(TkaWorker.is_active.is_(True))

    if company_id:
        used = (
            db.session.query(InvoiceLine.tka_id)
            .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
            .filter(Invoice.company_id == company_id)
        )
        q = q.filter(TkaWorker.id.in_(used))

    text = clean(term)
    if text:
        like = f"%{text}%"
        q = q.filter(or_(TkaWorker.nama.ilike(like), TkaWorker.passport.ilike(like), TkaWorker.divisi.ilike(like)))

    return q.order_by(TkaWorker.nama.asc()).all()


def create_worker(nama: str, passport: str, divisi: str | None = None, jenis_kelamin: str | None = None) -> TkaWorker:
    ensure_valid(validate_worker(nama, passport, divisi))
    passport = normalize_passport(passport)
    if passport_exists(passport):
        raise DuplicateRecord(f"Passport {passport} sudah terdaftar")

    worker = TkaWorker(
        nama=clean(nama),
        passport=passport,
        divisi=clean(divisi) or None,
        jenis_kelamin=_gender(jenis_kelamin),
    )
    db.session.add(worker)
    db.session.flush()
    log_action(worker, "CREATE", before=None, after=serialize_model(worker))
    db.session.commit()
    _invalidate_cache()
    logger.info("Created TKA worker %s", worker.passport)
    return worker


def update_worker(
    worker_id: int, nama: str, passport: str, divisi: str | None = None, jenis_kelamin: str | None = None
) -> TkaWorker:
    worker = get_worker(worker_id)
    ensure_valid(validate_worker(nama, passport, divisi))
    passport = normalize_passport(passport)
    if passport_exists(passport, exclude_worker_id=worker.id):
        raise DuplicateRecord(f"Passport {passport} sudah terdaftar")

    before = serialize_model(worker)
    worker.nama = clean(nama)
    worker.passport = passport
    worker.divisi = clean(divisi) or None
    worker.jenis_kelamin = _gender(jenis_kelamin)
    db.session.flush()
    log_action(worker, "UPDATE", before=before, after=serialize_model(worker))
    db.session.commit()
    _invalidate_cache()
    return worker


def deactivate_worker(worker_id: int) -> TkaWorker:
    """Soft delete worker and family. Refused once the worker is on an invoice."""
    worker = get_worker(worker_id)
    used = db.session.query(InvoiceLine.id).filter(InvoiceLine.tka_id == worker.id).first() is not None
    if used:
        raise InvalidArgument("Tidak dapat menghapus TKA yang sudah digunakan dalam invoice")

    before = serialize_model(worker)
    worker.is_active = False
    for member in worker.family_members:
        member.is_active = False
    db.session.flush()
    log_action(worker, "DELETE", before=before, after=serialize_model(worker))
    db.session.commit()
    _invalidate_cache()
    return worker


def restore_worker(worker_id: int) -> TkaWorker:
    worker = get_worker(worker_id)
    before = serialize_model(worker)
    worker.is_active = True
    for member in worker.family_members:
        member.is_active = True
    db.session.flush()
    log_action(worker, "RESTORE", before=before, after=serialize_model(worker))
    db.session.commit()
    _invalidate_cache()
    return worker


def bulk_import_workers(rows: list[dict], skip_duplicates: bool = True) -> ImportResult:
    """
    rows: dicts with nama, passport, divisi, jenis_kelamin.

    Names and divisions are proper-cased, passports normalized. Duplicate
    passports (in the database or earlier in the batch) are skipped, or
    reported as errors when skip_duplicates is False.
    """
    result = ImportResult()
    taken = {p for (p,) in db.session.query(TkaWorker.passport).all()}
    taken |= {p for (p,) in db.session.query(TkaFamily.passport).all()}

    for index, row in enumerate(rows, start=1):
        label = row.get("row", index)
        result.processed += 1
        nama = to_proper_case(row.get("nama"))
        passport = normalize_passport(row.get("passport"))
        divisi = to_proper_case(row.get("divisi")) or None

        errors = validate_worker(nama, passport, divisi)
        if errors:
            result.errors.append(f"Row {label}: {', '.join(errors)}")
            continue

        if passport in taken:
            if skip_duplicates:
                result.skipped += 1
            else:
                result.errors.append(f"Row {label}: Passport {passport} sudah terdaftar")
            continue

        gender = clean(row.get("jenis_kelamin"))
        worker = TkaWorker(
            nama=nama,
            passport=passport,
            divisi=divisi,
            jenis_kelamin=gender if gender in GENDERS else GENDER_MALE,
        )
        db.session.add(worker)
        taken.add(passport)
        result.success += 1

    if result.success:
        db.session.flush()
        db.session.commit()
        _invalidate_cache()
    logger.info(result.message)
    return result


# ---------------------------------------------------------------------
# Family members
# ---------------------------------------------------------------------
def get_family_member(member_id: int) -> TkaFamily:
    member = db.session.get(TkaFamily, member_id)
    if member is None:
        raise NotFound(f"Anggota keluarga {member_id} tidak ditemukan")
    return member


def add_family_member(
    worker_id: int, nama: str, passport: str, relationship: str, jenis_kelamin: str | None = None
) -> TkaFamily:
    worker = get_worker(worker_id)
    ensure_valid(validate_family_member(nama, passport, relationship))
    passport = normalize_passport(passport)
    if passport_exists(passport):
        raise DuplicateRecord(f"Passport {passport} sudah terdaftar")

    member = TkaFamily(
        worker=worker,
        nama=clean(nama),
        passport=passport,
        relationship=relationship,
        jenis_kelamin=_gender(jenis_kelamin),
    )
    db.session.add(member)
    db.session.flush()
    log_action(member, "CREATE", before=None, after=serialize_model(member))
    db.session.commit()
    _invalidate_cache()
    return member


def update_family_member(
    member_id: int, nama: str, passport: str, relationship: str, jenis_kelamin: str | None = None
) -> TkaFamily:
    member = get_family_member(member_id)
    ensure_valid(validate_family_member(nama, passport, relationship))
    passport = normalize_passport(passport)
    if passport_exists(passport, exclude_family_id=member.id):
        raise DuplicateRecord(f"Passport {passport} sudah terdaftar")

    before = serialize_model(member)
    member.nama = clean(nama)
    member.passport = passport
    member.relationship = relationship
    member.jenis_kelamin = _gender(jenis_kelamin)
    db.session.flush()
    log_action(member, "UPDATE", before=before, after=serialize_model(member))
    db.session.commit()
    _invalidate_cache()
    return member


def delete_family_member(member_id: int) -> None:
    member = get_family_member(member_id)
    before = serialize_model(member)
    db.session.delete(member)
    db.session.flush()
    log_action(member, "DELETE", before=before, after=None)
    db.session.commit()
    _invalidate_cache()
