"""
tka_invoice/invoicing.py

Invoice service: creation (with number issuing), line editing, lifecycle
transitions, cloning, printing counters and statistics.

Lifecycle:
    draft -> finalized -> paid
    draft | finalized -> cancelled

Lines can only be added, changed or removed while the invoice is a draft.
Every mutation recomputes the header totals through Invoice.recalc_totals()
and writes an AuditLog entry in the same transaction.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from .audit import log_action, serialize_model
from .cache import get_query_cache
from .errors import DuplicateRecord, InvalidArgument, InvalidStateTransition, NotFound
from .extensions import db
from .models import (
    Company,
    Invoice,
    InvoiceLine,
    JobDescription,
    TkaWorker,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_FINALIZED,
    STATUS_PAID,
    INVOICE_STATUSES,
)
from .money import money, to_decimal, validate_vat_percentage
from .sequencer import InvoiceNumberSequencer
from .settings_store import default_bank_account, default_vat_percentage, invoice_prefix
from .validation import clean, is_valid_invoice_number

logger = logging.getLogger(__name__)

CACHE_PREFIX = "invoice"

LINE_FIELDS = {
    "tka_id",
    "job_description_id",
    "quantity",
    "baris",
    "line_order",
    "custom_job_name",
    "custom_job_description",
    "custom_price",
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _invalidate_cache() -> None:
    cache = get_query_cache()
    cache.invalidate_prefix(CACHE_PREFIX)
    # company_stats sums invoice totals
    cache.invalidate_prefix("company")


def _positive_int(value, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"{field} harus berupa angka") from exc
    if number <= 0:
        raise InvalidArgument(f"{field} harus lebih dari 0")
    return number


def _optional_price(value) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    price = to_decimal(value)
    if price < 0:
        raise InvalidArgument("Harga tidak boleh negatif")
    return money(price)


def _require_draft(invoice: Invoice) -> None:
    if invoice.status != STATUS_DRAFT:
        raise InvalidStateTransition(
            f"Invoice {invoice.invoice_number} berstatus {invoice.status_display}; hanya draft yang dapat diubah"
        )


def _get_worker(tka_id) -> TkaWorker:
    worker = db.session.get(TkaWorker, tka_id)
    if worker is None:
        raise NotFound(f"TKA {tka_id} tidak ditemukan")
    return worker


def _get_job(job_description_id, company_id: int) -> JobDescription:
    job = db.session.get(JobDescription, job_description_id)
    if job is None:
        raise NotFound(f"Job {job_description_id} tidak ditemukan")
    if job.company_id != company_id:
        raise InvalidArgument(f"Job {job.job_name} bukan milik perusahaan invoice ini")
    return job


def _next_baris(invoice: Invoice) -> int:
    return max((line.baris for line in invoice.lines), default=0) + 1


def _next_line_order(invoice: Invoice, baris: int) -> int:
    return max((line.line_order for line in invoice.lines if line.baris == baris), default=0) + 1


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} tidak ditemukan")
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = Invoice.query.filter_by(invoice_number=clean(invoice_number)).first()
    if invoice is None:
        raise NotFound(f"Invoice {invoice_number} tidak ditemukan")
    return invoice


def _filtered_query(company_id=None, status=None, date_from=None, date_to=None, search=None):
    q = Invoice.query.options(joinedload(Invoice.company))

    if company_id:
        q = q.filter(Invoice.company_id == company_id)
    if status:
        q = q.filter(Invoice.status == status)
    if date_from:
        q = q.filter(Invoice.invoice_date >= date_from)
    if date_to:
        q = q.filter(Invoice.invoice_date <= date_to)

    term = clean(search)
    if term:
        q = q.join(Company, Invoice.company_id == Company.id).filter(
            or_(Invoice.invoice_number.ilike(f"%{term}%"), Company.company_name.ilike(f"%{term}%"))
        )
    return q.order_by(Invoice.invoice_date.desc(), Invoice.id.desc())


def list_invoices(
    page: int = 1,
    per_page: int = 50,
    company_id: int | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
) -> tuple[list[Invoice], int]:
    """Newest first. Returns (page items, total matching)."""
    q = _filtered_query(company_id, status, date_from, date_to, search)
    total = q.count()
    page = max(1, int(page or 1))
    items = (
        q.offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return items, total


def all_invoices(**filters) -> list[Invoice]:
    """Every invoice matching the list filters, lines loaded (exports)."""
    return _filtered_query(**filters).options(selectinload(Invoice.lines)).all()


def preview_next_number(invoice_date: date | None = None, prefix: str | None = None) -> str:
    sequencer = InvoiceNumberSequencer.from_config(db.session)
    return sequencer.peek(invoice_date or date.today(), prefix or invoice_prefix())


# ---------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------
def create_invoice(
    company_id: int,
    invoice_date: date | None = None,
    created_by: int | None = None,
    vat_percentage=None,
    notes: str | None = None,
    bank_account_id: int | None = None,
    invoice_number: str | None = None,
    prefix: str | None = None,
    imported_from: str | None = None,
    import_batch_id: str | None = None,
    commit: bool = True,
) -> Invoice:
    """
    Create a draft invoice.

    A blank invoice_number is issued by the sequencer; an explicit one must
    match PREFIX/YY/MM/NNN and be unused.
    """
    invoice_date = invoice_date or date.today()

    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFound(f"Perusahaan {company_id} tidak ditemukan")
    if not company.is_active:
        raise InvalidArgument(f"Perusahaan {company.company_name} tidak aktif")

    pct = validate_vat_percentage(
        vat_percentage if vat_percentage not in (None, "") else default_vat_percentage()
    )

    if bank_account_id is None:
        bank = default_bank_account()
        bank_account_id = bank.id if bank else None

    number = clean(invoice_number)
    if number:
        if not is_valid_invoice_number(number):
            raise InvalidArgument(f"Format nomor invoice tidak valid: {number} (contoh: FSN/24/01/001)")
        if Invoice.query.filter_by(invoice_number=number).first():
            raise DuplicateRecord(f"Nomor invoice {number} sudah digunakan")
    else:
        sequencer = InvoiceNumberSequencer.from_config(db.session)
        number = sequencer.next(invoice_date, prefix or invoice_prefix())

    invoice = Invoice(
        invoice_number=number,
        company_id=company_id,
        invoice_date=invoice_date,
        vat_percentage=money(pct),
        notes=clean(notes) or None,
        bank_account_id=bank_account_id,
        status=STATUS_DRAFT,
        created_by=created_by,
        imported_from=imported_from,
        import_batch_id=import_batch_id,
    )
    db.session.add(invoice)
    invoice.recalc_totals()

    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateRecord(f"Nomor invoice {number} sudah digunakan") from exc

    log_action(invoice, "CREATE", before=None, after=serialize_model(invoice), user_id=created_by)
    if commit:
        db.session.commit()
        _invalidate_cache()

    logger.info("Created invoice %s for company %s", number, company_id)
    return invoice


def update_invoice(
    invoice_id: int,
    invoice_date: date | None = None,
    vat_percentage=None,
    notes: str | None = None,
    bank_account_id: int | None = None,
    company_id: int | None = None,
) -> Invoice:
    """Draft only. The invoice number is never changed."""
    invoice = get_invoice(invoice_id)
    _require_draft(invoice)
    before = serialize_model(invoice)

    if company_id is not None and company_id != invoice.company_id:
        if invoice.lines:
            raise InvalidArgument("Perusahaan tidak dapat diganti selama invoice masih memiliki baris")
        company = db.session.get(Company, company_id)
        if company is None or not company.is_active:
            raise NotFound(f"Perusahaan {company_id} tidak ditemukan")
        invoice.company_id = company_id

    if invoice_date is not None:
        invoice.invoice_date = invoice_date
    if vat_percentage not in (None, ""):
        invoice.vat_percentage = money(validate_vat_percentage(vat_percentage))
    if notes is not None:
        invoice.notes = clean(notes) or None
    if bank_account_id is not None:
        invoice.bank_account_id = bank_account_id or None

    invoice.recalc_totals()
    db.session.flush()
    log_action(invoice, "UPDATE", before=before, after=serialize_model(invoice))
    db.session.commit()
    _invalidate_cache()
    return invoice


def delete_invoice(invoice_id: int, force: bool = False) -> None:
    """Drafts and cancelled invoices can be deleted; finalized/paid only with force."""
    invoice = get_invoice(invoice_id)
    if invoice.status in (STATUS_FINALIZED, STATUS_PAID) and not force:
        raise InvalidStateTransition(
            f"Invoice {invoice.invoice_number} berstatus {invoice.status_display} dan tidak dapat dihapus"
        )
    before = serialize_model(invoice)

    db.session.delete(invoice)
    db.session.flush()
    log_action(invoice, "DELETE", before=before, after=None)
    db.session.commit()
    _invalidate_cache()
    logger.info("Deleted invoice %s", before["invoice_number"])


# ---------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------
def add_line(
    invoice_id: int,
    tka_id: int,
    job_description_id: int,
    quantity=1,
    baris=None,
    line_order=None,
    custom_job_name: str | None = None,
    custom_job_description: str | None = None,
    custom_price=None,
) -> InvoiceLine:
    """
    Add a line to a draft invoice.

    baris defaults to a new row after the last one; line_order defaults to
    the end of its row. The unit price is the custom price if given, else
    the job's catalogue price.
    """
    invoice = get_invoice(invoice_id)
    _require_draft(invoice)

    worker = _get_worker(tka_id)
    job = _get_job(job_description_id, invoice.company_id)
    quantity = _positive_int(quantity, "Quantity")
    baris = _next_baris(invoice) if baris in (None, "") else _positive_int(baris, "Baris")
    line_order = _next_line_order(invoice, baris) if line_order in (None, "") else _positive_int(line_order, "Urutan")

    line = InvoiceLine(
        invoice=invoice,
        worker=worker,
        job=job,
        baris=baris,
        line_order=line_order,
        quantity=quantity,
        custom_job_name=clean(custom_job_name) or None,
        custom_job_description=clean(custom_job_description) or None,
        custom_price=_optional_price(custom_price),
    )
    db.session.add(line)
    line.recalc()
    invoice.recalc_totals()

    db.session.flush()
    log_action(line, "CREATE", before=None, after=serialize_model(line))
    db.session.commit()
    _invalidate_cache()
    return line


def _get_line(line_id: int) -> InvoiceLine:
    line = db.session.get(InvoiceLine, line_id)
    if line is None:
        raise NotFound(f"Baris invoice {line_id} tidak ditemukan")
    return line


def update_line(line_id: int, **changes) -> InvoiceLine:
    """Change any of LINE_FIELDS on a draft invoice's line."""
    unknown = set(changes) - LINE_FIELDS
    if unknown:
        raise InvalidArgument(f"Unknown line fields: {', '.join(sorted(unknown))}")

    line = _get_line(line_id)
    invoice = line.invoice
    _require_draft(invoice)
    before = serialize_model(line)

    if "tka_id" in changes:
        line.worker = _get_worker(changes["tka_id"])
    if "job_description_id" in changes:
        line.job = _get_job(changes["job_description_id"], invoice.company_id)
    if "quantity" in changes:
        line.quantity = _positive_int(changes["quantity"], "Quantity")
    if "baris" in changes:
        line.baris = _positive_int(changes["baris"], "Baris")
    if "line_order" in changes:
        line.line_order = _positive_int(changes["line_order"], "Urutan")
    if "custom_job_name" in changes:
        line.custom_job_name = clean(changes["custom_job_name"]) or None
    if "custom_job_description" in changes:
        line.custom_job_description = clean(changes["custom_job_description"]) or None
    if "custom_price" in changes:
        line.custom_price = _optional_price(changes["custom_price"])

    line.recalc()
    invoice.recalc_totals()
    db.session.flush()
    log_action(line, "UPDATE", before=before, after=serialize_model(line))
    db.session.commit()
    _invalidate_cache()
    return line


def delete_line(line_id: int) -> None:
    line = _get_line(line_id)
    invoice = line.invoice
    _require_draft(invoice)
    before = serialize_model(line)

    invoice.lines.remove(line)
    invoice.recalc_totals()
    db.session.flush()
    log_action(line, "DELETE", before=before, after=None)
    db.session.commit()
    _invalidate_cache()


def duplicate_line(line_id: int) -> InvoiceLine:
    """Copy a line to the end of the same row."""
    line = _get_line(line_id)
    return add_line(
        line.invoice_id,
        tka_id=line.tka_id,
        job_description_id=line.job_description_id,
        quantity=line.quantity,
        baris=line.baris,
        custom_job_name=line.custom_job_name,
        custom_job_description=line.custom_job_description,
        custom_price=line.custom_price,
    )


def reorder_lines(invoice_id: int, positions: list[tuple[int, int, int]]) -> Invoice:
    """positions: (line_id, baris, line_order) for lines of this invoice."""
    invoice = get_invoice(invoice_id)
    _require_draft(invoice)
    by_id = {line.id: line for line in invoice.lines}

    for line_id, baris, line_order in positions:
        line = by_id.get(line_id)
        if line is None:
            raise NotFound(f"Baris {line_id} bukan milik invoice {invoice.invoice_number}")
        line.baris = _positive_int(baris, "Baris")
        line.line_order = _positive_int(line_order, "Urutan")

    db.session.flush()
    log_action(invoice, "REORDER", before=None, after={"positions": [list(p) for p in positions]})
    db.session.commit()
    return invoice


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------
def _finalize(invoice: Invoice) -> None:
    if invoice.status != STATUS_DRAFT:
        raise InvalidStateTransition(f"Hanya invoice draft yang dapat difinalisasi ({invoice.invoice_number})")
    if not invoice.lines:
        raise InvalidStateTransition(f"Invoice {invoice.invoice_number} belum memiliki baris")
    validate_vat_percentage(invoice.vat_percentage)
    invoice.recalc_totals()
    invoice.status = STATUS_FINALIZED


def _mark_paid(invoice: Invoice) -> None:
    if invoice.status != STATUS_FINALIZED:
        raise InvalidStateTransition(f"Hanya invoice finalized yang dapat ditandai lunas ({invoice.invoice_number})")
    invoice.status = STATUS_PAID


def _cancel(invoice: Invoice) -> None:
    if invoice.status in (STATUS_PAID, STATUS_CANCELLED):
        raise InvalidStateTransition(
            f"Invoice {invoice.invoice_number} berstatus {invoice.status_display} dan tidak dapat dibatalkan"
        )
    invoice.status = STATUS_CANCELLED


_TRANSITIONS = {
    STATUS_FINALIZED: _finalize,
    STATUS_PAID: _mark_paid,
    STATUS_CANCELLED: _cancel,
}


def _transition(invoice_id: int, target: str) -> Invoice:
    invoice = get_invoice(invoice_id)
    before = serialize_model(invoice)
    _TRANSITIONS[target](invoice)
    db.session.flush()
    log_action(invoice, target.upper(), before=before, after=serialize_model(invoice))
    db.session.commit()
    _invalidate_cache()
    logger.info("Invoice %s -> %s", invoice.invoice_number, target)
    return invoice


def finalize_invoice(invoice_id: int) -> Invoice:
    return _transition(invoice_id, STATUS_FINALIZED)


def mark_paid(invoice_id: int) -> Invoice:
    return _transition(invoice_id, STATUS_PAID)


def cancel_invoice(invoice_id: int) -> Invoice:
    return _transition(invoice_id, STATUS_CANCELLED)


def bulk_update_status(invoice_ids: list[int], status: str) -> int:
    """Apply one transition to many invoices; returns how many were valid and applied."""
    if status not in _TRANSITIONS:
        raise InvalidArgument(f"Status tujuan tidak valid: {status}")

    updated = 0
    for invoice_id in invoice_ids:
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            continue
        before = serialize_model(invoice)
        try:
            _TRANSITIONS[status](invoice)
        except InvalidStateTransition as exc:
            logger.warning("Bulk status update skipped: %s", exc)
            continue
        db.session.flush()
        log_action(invoice, status.upper(), before=before, after=serialize_model(invoice))
        updated += 1

    db.session.commit()
    _invalidate_cache()
    return updated


def clone_invoice(invoice_id: int, created_by: int | None = None) -> Invoice:
    """New draft dated today with a fresh number and copies of all lines."""
    source = get_invoice(invoice_id)
    source_id = source.id
    company_id = source.company_id

    clone = create_invoice(
        company_id=company_id,
        invoice_date=date.today(),
        created_by=created_by,
        vat_percentage=source.vat_percentage,
        notes=source.notes,
        bank_account_id=source.bank_account_id,
        commit=False,
    )

    # create_invoice may have rolled back and retried; reload the source
    source = get_invoice(source_id)
    for line in source.lines:
        copy = InvoiceLine(
            invoice=clone,
            worker=line.worker,
            job=line.job,
            baris=line.baris,
            line_order=line.line_order,
            quantity=line.quantity,
            custom_job_name=line.custom_job_name,
            custom_job_description=line.custom_job_description,
            custom_price=line.custom_price,
        )
        db.session.add(copy)
        copy.recalc()

    clone.recalc_totals()
    db.session.flush()
    log_action(clone, "CLONE", before={"source_invoice_id": source_id}, after=serialize_model(clone))
    db.session.commit()
    _invalidate_cache()
    logger.info("Cloned invoice %s into %s", source.invoice_number, clone.invoice_number)
    return clone


def record_print(invoice_id: int) -> Invoice:
    """Finalized and paid invoices only."""
    invoice = get_invoice(invoice_id)
    if not invoice.can_print:
        raise InvalidStateTransition(f"Invoice {invoice.invoice_number} belum difinalisasi")
    invoice.printed_count = (invoice.printed_count or 0) + 1
    invoice.last_printed_at = datetime.utcnow()
    db.session.commit()
    return invoice


# ---------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------
def invoice_stats(
    company_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    """
    Counts per status plus revenue figures. Cancelled invoices are counted
    but excluded from revenue, average and the monthly breakdown.
    """
    cache = get_query_cache()
    key = f"{CACHE_PREFIX}_stats:{company_id}:{date_from}:{date_to}"
    cached = cache.get(key)
    if cached is not None:
        return cached

    q = db.session.query(Invoice.status, Invoice.total_amount, Invoice.invoice_date)
    if company_id:
        q = q.filter(Invoice.company_id == company_id)
    if date_from:
        q = q.filter(Invoice.invoice_date >= date_from)
    if date_to:
        q = q.filter(Invoice.invoice_date <= date_to)

    counts = {status: 0 for status in INVOICE_STATUSES}
    revenue = Decimal("0")
    paid_revenue = Decimal("0")
    billed = 0
    monthly: "OrderedDict[str, dict]" = OrderedDict()

    for status, total_amount, invoice_date in q.order_by(Invoice.invoice_date.asc()).all():
        counts[status] = counts.get(status, 0) + 1
        if status == STATUS_CANCELLED:
            continue
        amount = to_decimal(total_amount)
        revenue += amount
        billed += 1
        if status == STATUS_PAID:
            paid_revenue += amount
        month_key = f"{invoice_date.year}-{invoice_date.month:02d}"
        bucket = monthly.setdefault(month_key, {"month": month_key, "count": 0, "total": Decimal("0")})
        bucket["count"] += 1
        bucket["total"] += amount

    stats = {
        "total_invoices": sum(counts.values()),
        "counts": counts,
        "total_revenue": revenue,
        "paid_revenue": paid_revenue,
        "average_invoice": money(revenue / billed) if billed else Decimal("0.00"),
        "monthly": list(monthly.values()),
    }
    cache.set(key, stats)
    return stats
