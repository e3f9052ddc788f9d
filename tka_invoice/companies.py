"""
tka_invoice/companies.py

Client companies and their job/price catalogue.

- Company names and NPWP numbers are unique among companies.
- A company with invoices cannot be deactivated; deactivating one also
  deactivates its jobs. restore_company() reverses both.
- Jobs referenced by invoice lines are deactivated instead of deleted.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, or_

from .audit import log_action, serialize_model
from .cache import get_query_cache
from .errors import DuplicateRecord, InvalidArgument, NotFound
from .extensions import db
from .models import Company, Invoice, InvoiceLine, JobDescription, STATUS_CANCELLED, STATUS_PAID
from .money import money, to_decimal
from .validation import clean, ensure_valid, validate_company, validate_job

logger = logging.getLogger(__name__)

CACHE_PREFIX = "company"


def _invalidate_cache() -> None:
    get_query_cache().invalidate_prefix(CACHE_PREFIX)


# ---------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------
def get_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFound(f"Perusahaan {company_id} tidak ditemukan")
    return company


def list_companies(include_inactive: bool = False) -> list[Company]:
    q = Company.query
    if not include_inactive:
        q = q.filter(Company.is_active.is_(True))
    return q.order_by(Company.company_name.asc()).all()


def search_companies(term: str | None, include_inactive: bool = False) -> list[Company]:
    """Match on name, NPWP or IDTKU (case-insensitive)."""
    text = clean(term)
    q = Company.query
    if not include_inactive:
        q = q.filter(Company.is_active.is_(True))
    if text:
        like = f"%{text}%"
        q = q.filter(or_(Company.company_name.ilike(like), Company.npwp.ilike(like), Company.idtku.ilike(like)))
    return q.order_by(Company.company_name.asc()).all()


def find_company_by_name(name: str) -> Company | None:
    """Exact, case-insensitive match among active companies."""
    text = clean(name)
    if not text:
        return None
    return (
        Company.query.filter(func.lower(Company.company_name) == text.lower(), Company.is_active.is_(True))
        .first()
    )


def _check_duplicates(company_name: str, npwp: str, exclude_id: int | None = None) -> None:
    q = Company.query.filter(
        or_(func.lower(Company.company_name) == company_name.lower(), Company.npwp == npwp)
    )
    if exclude_id is not None:
        q = q.filter(Company.id != exclude_id)
    existing = q.first()
    if existing is not None:
        if existing.npwp == npwp:
            raise DuplicateRecord(f"NPWP {npwp} sudah terdaftar untuk {existing.company_name}")
        raise DuplicateRecord(f"Perusahaan {company_name} sudah terdaftar")


def create_company(company_name: str, npwp: str, idtku: str, address: str) -> Company:
    ensure_valid(validate_company(company_name, npwp, idtku, address))
    company_name, npwp = clean(company_name), clean(npwp)
    _check_duplicates(company_name, npwp)

    company = Company(company_name=company_name, npwp=npwp, idtku=clean(idtku), address=clean(address))
    db.session.add(company)
    db.session.flush()
    log_action(company, "CREATE", before=None, after=serialize_model(company))
    db.session.commit()
    _invalidate_cache()
    logger.info("Created company %s", company_name)
    return company


def update_company(company_id: int, company_name: str, npwp: str, idtku: str, address: str) -> Company:
    company = get_company(company_id)
    ensure_valid(validate_company(company_name, npwp, idtku, address))
    company_name, npwp = clean(company_name), clean(npwp)
    _check_duplicates(company_name, npwp, exclude_id=company.id)

    before = serialize_model(company)
    company.company_name = company_name
    company.npwp = npwp
    company.idtku = clean(idtku)
    company.address = clean(address)
    db.session.flush()
    log_action(company, "UPDATE", before=before, after=serialize_model(company))
    db.session.commit()
    _invalidate_cache()
    return company


def deactivate_company(company_id: int) -> Company:
    """Soft delete. Refused while the company has invoices."""
    company = get_company(company_id)
    invoice_count = company.invoices.count()
    if invoice_count:
        raise InvalidArgument(
            f"Perusahaan {company.company_name} memiliki {invoice_count} invoice dan tidak dapat dihapus"
        )

    before = serialize_model(company)
    company.is_active = False
    for job in company.jobs:
        job.is_active = False
    db.session.flush()
    log_action(company, "DELETE", before=before, after=serialize_model(company))
    db.session.commit()
    _invalidate_cache()
    logger.info("Deactivated company %s", company.company_name)
    return company


def restore_company(company_id: int) -> Company:
    company = get_company(company_id)
    before = serialize_model(company)
    company.is_active = True
    for job in company.jobs:
        job.is_active = True
    db.session.flush()
    log_action(company, "RESTORE", before=before, after=serialize_model(company))
    db.session.commit()
    _invalidate_cache()
    return company


def company_stats(company_id: int) -> dict:
    """Invoice count, revenue (excluding cancelled), paid revenue and active jobs."""
    cache = get_query_cache()
    key = f"{CACHE_PREFIX}_stats:{company_id}"
    cached = cache.get(key)
    if cached is not None:
        return cached

    company = get_company(company_id)
    rows = db.session.query(Invoice.status, Invoice.total_amount).filter(Invoice.company_id == company.id).all()
    revenue = sum((to_decimal(t) for s, t in rows if s != STATUS_CANCELLED), Decimal("0"))
    paid = sum((to_decimal(t) for s, t in rows if s == STATUS_PAID), Decimal("0"))

    stats = {
        "invoice_count": len(rows),
        "total_revenue": revenue,
        "paid_revenue": paid,
        "active_jobs": sum(1 for job in company.jobs if job.is_active),
    }
    cache.set(key, stats)
    return stats


# ---------------------------------------------------------------------
# Job catalogue
# ---------------------------------------------------------------------
def get_job(job_id: int) -> JobDescription:
    job = db.session.get(JobDescription, job_id)
    if job is None:
        raise NotFound(f"Job {job_id} tidak ditemukan")
    return job


def jobs_for_company(company_id: int, include_inactive: bool = False) -> list[JobDescription]:
    q = JobDescription.query.filter(JobDescription.company_id == company_id)
    if not include_inactive:
        q = q.filter(JobDescription.is_active.is_(True))
    return q.order_by(JobDescription.sort_order.asc(), JobDescription.job_name.asc()).all()


def find_job(company_id: int, job_name: str) -> JobDescription | None:
    text = clean(job_name)
    return JobDescription.query.filter(
        JobDescription.company_id == company_id,
        func.lower(JobDescription.job_name) == text.lower(),
    ).first()


def _parse_price(price) -> Decimal:
    value = to_decimal(price)
    if value < 0:
        raise InvalidArgument("Harga tidak boleh negatif")
    return money(value)


def create_job(
    company_id: int,
    job_name: str,
    job_description: str,
    price,
    sort_order: int | None = None,
    commit: bool = True,
) -> JobDescription:
    company = get_company(company_id)
    price = _parse_price(price)
    ensure_valid(validate_job(job_name, job_description, price))

    if sort_order is None:
        sort_order = max((j.sort_order for j in company.jobs), default=0) + 1

    job = JobDescription(
        company=company,
        job_name=clean(job_name),
        job_description=clean(job_description),
        price=price,
        sort_order=int(sort_order),
    )
    db.session.add(job)
    db.session.flush()
    log_action(job, "CREATE", before=None, after=serialize_model(job))
    if commit:
        db.session.commit()
        _invalidate_cache()
    return job


def update_job(job_id: int, job_name: str, job_description: str, price, sort_order: int | None = None) -> JobDescription:
    """Existing invoice lines keep their stored unit prices."""
    job = get_job(job_id)
    price = _parse_price(price)
    ensure_valid(validate_job(job_name, job_description, price))

    before = serialize_model(job)
    job.job_name = clean(job_name)
    job.job_description = clean(job_description)
    job.price = price
    if sort_order is not None:
        job.sort_order = int(sort_order)
    db.session.flush()
    log_action(job, "UPDATE", before=before, after=serialize_model(job))
    db.session.commit()
    _invalidate_cache()
    return job


def delete_job(job_id: int) -> bool:
    """Hard delete when unused; otherwise deactivate. Returns True if deleted."""
    job = get_job(job_id)
    before = serialize_model(job)
    in_use = db.session.query(InvoiceLine.id).filter(InvoiceLine.job_description_id == job.id).first() is not None

    if in_use:
        job.is_active = False
        db.session.flush()
        log_action(job, "UPDATE", before=before, after=serialize_model(job))
    else:
        db.session.delete(job)
        db.session.flush()
        log_action(job, "DELETE", before=before, after=None)

    db.session.commit()
    _invalidate_cache()
    return not in_use


def reorder_jobs(company_id: int, job_ids: list[int]) -> list[JobDescription]:
    """Assign sort_order 1..n following job_ids."""
    company = get_company(company_id)
    by_id = {job.id: job for job in company.jobs}
    for position, job_id in enumerate(job_ids, start=1):
        job = by_id.get(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} bukan milik {company.company_name}")
        job.sort_order = position
    db.session.commit()
    _invalidate_cache()
    return jobs_for_company(company_id, include_inactive=True)
