"""
tka_invoice/blueprints/invoices/routes.py

Invoice routes.

Includes:
- List with server-side filters and pagination
- Create / edit header, line editing, reorder
- Lifecycle: finalize, pay, cancel, clone, delete, bulk status
- Print view and PDF download

IMPORTANT:
- UI is never trusted. Every mutation is admin_required and the service
  layer re-checks the invoice status.
- Viewers may open, print and download invoices.
"""

from __future__ import annotations

import math
from datetime import date
from io import BytesIO

from flask import Blueprint, flash, jsonify, redirect, render_template, request, send_file, url_for
from flask_login import current_user, login_required

from ... import invoicing
from ...aggregation import group_for_display
from ...companies import jobs_for_company, list_companies
from ...documents import build_batch_pdf, build_document, build_invoice_pdf
from ...errors import InvoiceAppError
from ...models import INVOICE_STATUSES, Invoice
from ...security import admin_required
from ...settings_store import default_vat_percentage, get_setting, list_bank_accounts
from ...workers import search_workers
from ..forms import (
    flash_error,
    form_text,
    parse_date,
    parse_decimal,
    parse_id_list,
    parse_optional_int,
    safe_next_url,
)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")


def _pdf_filename(invoice: Invoice) -> str:
    return f"invoice_{invoice.invoice_number.replace('/', '-')}.pdf"


def _line_form() -> dict:
    """Line fields from the posted form; custom fields blank means "use the job"."""
    return {
        "tka_id": parse_optional_int(request.form.get("tka_id")),
        "job_description_id": parse_optional_int(request.form.get("job_description_id")),
        "quantity": parse_optional_int(request.form.get("quantity")) or 1,
        "baris": parse_optional_int(request.form.get("baris")),
        "custom_job_name": form_text("custom_job_name") or None,
        "custom_job_description": form_text("custom_job_description") or None,
        "custom_price": parse_decimal(request.form.get("custom_price")),
    }


# ---------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------
@invoices_bp.route("/")
@login_required
def list_invoices():
    page = parse_optional_int(request.args.get("page")) or 1
    per_page = parse_optional_int(request.args.get("per_page")) or get_setting("default_page_size") or 50
    filters = {
        "company_id": parse_optional_int(request.args.get("company_id")),
        "status": (request.args.get("status") or "").strip() or None,
        "date_from": parse_date(request.args.get("date_from")),
        "date_to": parse_date(request.args.get("date_to")),
        "search": (request.args.get("q") or "").strip() or None,
    }

    items, total = invoicing.list_invoices(page=page, per_page=per_page, **filters)

    return render_template(
        "invoices/list.html",
        invoices=items,
        total=total,
        page=page,
        pages=max(1, math.ceil(total / per_page)),
        companies=list_companies(include_inactive=True),
        statuses=INVOICE_STATUSES,
        filters=filters,
    )


@invoices_bp.route("/next-number")
@login_required
def next_number():
    """Preview of the next number for a date (not reserved)."""
    invoice_date = parse_date(request.args.get("date")) or date.today()
    try:
        return jsonify({"invoice_number": invoicing.preview_next_number(invoice_date)})
    except InvoiceAppError as exc:
        return jsonify({"error": str(exc)}), 400


# ---------------------------------------------------------------------
# Create / edit header
# ---------------------------------------------------------------------
@invoices_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_invoice():
    companies = list_companies()
    banks = list_bank_accounts()

    if request.method == "POST":
        company_id = parse_optional_int(request.form.get("company_id"))
        if not company_id:
            flash("Pilih perusahaan.", "danger")
            return redirect(url_for("invoices.create_invoice"))

        try:
            invoice = invoicing.create_invoice(
                company_id=company_id,
                invoice_date=parse_date(request.form.get("invoice_date")) or date.today(),
                created_by=current_user.id,
                vat_percentage=parse_decimal(request.form.get("vat_percentage")),
                notes=form_text("notes"),
                bank_account_id=parse_optional_int(request.form.get("bank_account_id")),
                invoice_number=form_text("invoice_number") or None,
            )
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template(
                "invoices/form.html",
                invoice=None,
                companies=companies,
                banks=banks,
                form=request.form,
                default_vat=default_vat_percentage(),
                today=date.today(),
            )

        flash(f"Invoice {invoice.invoice_number} dibuat.", "success")
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice.id))

    return render_template(
        "invoices/form.html",
        invoice=None,
        companies=companies,
        banks=banks,
        form={},
        default_vat=default_vat_percentage(),
        today=date.today(),
    )


@invoices_bp.route("/<int:invoice_id>")
@login_required
def view_invoice(invoice_id: int):
    invoice = invoicing.get_invoice(invoice_id)
    return render_template(
        "invoices/detail.html",
        invoice=invoice,
        rows=group_for_display(invoice.lines),
        jobs=jobs_for_company(invoice.company_id) if invoice.can_edit else [],
        workers=search_workers() if invoice.can_edit else [],
        banks=list_bank_accounts(),
    )


@invoices_bp.route("/<int:invoice_id>/edit", methods=["POST"])
@login_required
@admin_required
def edit_invoice(invoice_id: int):
    try:
        invoicing.update_invoice(
            invoice_id,
            invoice_date=parse_date(request.form.get("invoice_date")),
            vat_percentage=parse_decimal(request.form.get("vat_percentage")),
            notes=request.form.get("notes"),
            bank_account_id=parse_optional_int(request.form.get("bank_account_id")),
        )
        flash("Invoice diperbarui.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))


# ---------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/lines", methods=["POST"])
@login_required
@admin_required
def add_line(invoice_id: int):
    data = _line_form()
    if not data["tka_id"] or not data["job_description_id"]:
        flash("Pilih TKA dan pekerjaan.", "danger")
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))

    try:
        invoicing.add_line(invoice_id, **data)
        flash("Baris ditambahkan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))


@invoices_bp.route("/lines/<int:line_id>/edit", methods=["POST"])
@login_required
@admin_required
def edit_line(line_id: int):
    data = {k: v for k, v in _line_form().items() if v is not None or k.startswith("custom_")}
    invoice_id = parse_optional_int(request.form.get("invoice_id"))
    try:
        line = invoicing.update_line(line_id, **data)
        invoice_id = line.invoice_id
        flash("Baris diperbarui.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    if invoice_id:
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))
    return redirect(url_for("invoices.list_invoices"))


@invoices_bp.route("/lines/<int:line_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_line(line_id: int):
    invoice_id = parse_optional_int(request.form.get("invoice_id"))
    try:
        invoicing.delete_line(line_id)
        flash("Baris dihapus.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    if invoice_id:
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))
    return redirect(url_for("invoices.list_invoices"))


@invoices_bp.route("/lines/<int:line_id>/duplicate", methods=["POST"])
@login_required
@admin_required
def duplicate_line(line_id: int):
    try:
        line = invoicing.duplicate_line(line_id)
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("invoices.list_invoices"))
    flash("Baris diduplikasi.", "success")
    return redirect(url_for("invoices.view_invoice", invoice_id=line.invoice_id))


@invoices_bp.route("/<int:invoice_id>/reorder", methods=["POST"])
@login_required
@admin_required
def reorder_lines(invoice_id: int):
    line_ids = request.form.getlist("line_id")
    baris = request.form.getlist("baris")
    orders = request.form.getlist("line_order")

    positions = []
    for raw_id, raw_baris, raw_order in zip(line_ids, baris, orders):
        line_id = parse_optional_int(raw_id)
        if line_id is None:
            continue
        positions.append((line_id, parse_optional_int(raw_baris), parse_optional_int(raw_order)))

    try:
        invoicing.reorder_lines(invoice_id, positions)
        flash("Urutan baris disimpan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------
_ACTIONS = {
    "finalize": (invoicing.finalize_invoice, "Invoice {} difinalisasi."),
    "pay": (invoicing.mark_paid, "Invoice {} ditandai lunas."),
    "cancel": (invoicing.cancel_invoice, "Invoice {} dibatalkan."),
}


@invoices_bp.route("/<int:invoice_id>/<any(finalize, pay, cancel):action>", methods=["POST"])
@login_required
@admin_required
def change_status(invoice_id: int, action: str):
    func, message = _ACTIONS[action]
    try:
        invoice = func(invoice_id)
        flash(message.format(invoice.invoice_number), "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(safe_next_url("invoices.view_invoice", invoice_id=invoice_id))


@invoices_bp.route("/bulk-status", methods=["POST"])
@login_required
@admin_required
def bulk_status():
    ids = parse_id_list(request.form.getlist("invoice_ids"))
    status = form_text("status")
    if not ids:
        flash("Tidak ada invoice yang dipilih.", "warning")
        return redirect(url_for("invoices.list_invoices"))

    try:
        updated = invoicing.bulk_update_status(ids, status)
        flash(f"{updated} dari {len(ids)} invoice diperbarui.", "success" if updated else "warning")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(safe_next_url("invoices.list_invoices"))


@invoices_bp.route("/<int:invoice_id>/clone", methods=["POST"])
@login_required
@admin_required
def clone_invoice(invoice_id: int):
    try:
        clone = invoicing.clone_invoice(invoice_id, created_by=current_user.id)
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))
    flash(f"Invoice disalin menjadi {clone.invoice_number}.", "success")
    return redirect(url_for("invoices.view_invoice", invoice_id=clone.id))


@invoices_bp.route("/<int:invoice_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_invoice(invoice_id: int):
    try:
        invoicing.delete_invoice(invoice_id, force=bool(request.form.get("force")))
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))
    flash("Invoice dihapus.", "success")
    return redirect(url_for("invoices.list_invoices"))


# ---------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/print")
@login_required
def print_invoice(invoice_id: int):
    """Printable page; counts as one print."""
    try:
        invoice = invoicing.record_print(invoice_id)
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice_id))
    return render_template("invoices/print.html", doc=build_document(invoice), invoice=invoice)


@invoices_bp.route("/<int:invoice_id>/pdf")
@login_required
def invoice_pdf(invoice_id: int):
    invoice = invoicing.get_invoice(invoice_id)
    data = build_invoice_pdf(invoice)
    return send_file(
        BytesIO(data),
        mimetype="application/pdf",
        as_attachment=bool(request.args.get("download")),
        download_name=_pdf_filename(invoice),
    )


@invoices_bp.route("/batch-pdf")
@login_required
def batch_pdf():
    ids = parse_id_list(request.args.getlist("invoice_ids"))
    invoices = [invoicing.get_invoice(invoice_id) for invoice_id in ids]
    try:
        data = build_batch_pdf(invoices)
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("invoices.list_invoices"))
    return send_file(
        BytesIO(data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=f"invoices_{date.today():%Y%m%d}.pdf",
    )
