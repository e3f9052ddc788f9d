"""
tka_invoice/blueprints/reports/routes.py

Dashboard statistics, Excel exports/templates and Excel imports.

SECURITY:
- Dashboard: any logged-in user.
- Exports and templates: export_required (admin, viewer).
- Imports: admin_required.
"""

from __future__ import annotations

from io import BytesIO

from flask import Blueprint, flash, redirect, render_template, request, send_file, url_for
from flask_login import current_user, login_required

from ... import excel
from ...companies import get_company, list_companies
from ...errors import InvoiceAppError
from ...invoicing import all_invoices, invoice_stats
from ...models import INVOICE_STATUSES
from ...security import admin_required, export_required
from ...workers import search_workers
from ..forms import flash_error, parse_date, parse_optional_int

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")

IMPORT_KINDS = {
    "workers": "Data TKA",
    "invoices": "Invoice",
    "job_prices": "Daftar Harga",
}


def _filters() -> dict:
    return {
        "company_id": parse_optional_int(request.args.get("company_id")),
        "status": request.args.get("status") or None,
        "date_from": parse_date(request.args.get("date_from")),
        "date_to": parse_date(request.args.get("date_to")),
        "search": (request.args.get("q") or "").strip() or None,
    }


def _send(result: excel.ExportResult):
    return send_file(
        BytesIO(result.content),
        mimetype=result.mimetype,
        as_attachment=True,
        download_name=result.filename,
    )


# ----------------------------------------------------------------------
# DASHBOARD
# ----------------------------------------------------------------------
@reports_bp.route("/")
@login_required
def dashboard():
    filters = _filters()
    stats = invoice_stats(
        company_id=filters["company_id"],
        date_from=filters["date_from"],
        date_to=filters["date_to"],
    )
    return render_template(
        "reports/dashboard.html",
        stats=stats,
        statuses=INVOICE_STATUSES,
        companies=list_companies(include_inactive=True),
        filters=filters,
    )


# ----------------------------------------------------------------------
# EXPORTS
# ----------------------------------------------------------------------
@reports_bp.route("/export/invoices")
@login_required
@export_required
def export_invoices():
    """Invoices matching the list filters (?company_id, status, date_from, date_to, q)."""
    return _send(excel.export_invoices(all_invoices(**_filters())))


@reports_bp.route("/export/workers")
@login_required
@export_required
def export_workers():
    workers = search_workers(
        request.args.get("q"),
        company_id=parse_optional_int(request.args.get("company_id")),
        include_inactive=bool(request.args.get("inactive")),
    )
    return _send(excel.export_workers(workers, include_family=bool(request.args.get("family"))))


@reports_bp.route("/templates/<any(workers,invoices,job_prices):kind>")
@login_required
@export_required
def download_template(kind: str):
    if kind == "workers":
        return _send(excel.worker_template())
    if kind == "invoices":
        return _send(excel.invoice_template())

    company_id = parse_optional_int(request.args.get("company_id"))
    company = get_company(company_id) if company_id else None
    return _send(excel.job_price_template(company))


# ----------------------------------------------------------------------
# IMPORTS
# ----------------------------------------------------------------------
@reports_bp.route("/import", methods=["GET", "POST"])
@login_required
@admin_required
def import_data():
    if request.method == "POST":
        kind = request.form.get("kind")
        upload = request.files.get("file")

        if kind not in IMPORT_KINDS:
            flash("Jenis import tidak valid.", "danger")
            return redirect(url_for("reports.import_data"))
        if upload is None or not upload.filename:
            flash("Pilih file Excel terlebih dahulu.", "danger")
            return redirect(url_for("reports.import_data"))
        if not upload.filename.lower().endswith(".xlsx"):
            flash("Hanya file .xlsx yang didukung.", "danger")
            return redirect(url_for("reports.import_data"))

        content = upload.read()
        try:
            if kind == "workers":
                result = excel.import_workers(content, skip_duplicates=not request.form.get("strict"))
            elif kind == "job_prices":
                result = excel.import_job_prices(content)
            else:
                result = excel.import_invoices(content, filename=upload.filename, created_by=current_user.id)
        except InvoiceAppError as exc:
            flash_error(exc)
            return redirect(url_for("reports.import_data"))

        flash(result.message, "success" if not result.errors else "warning")
        return render_template("reports/import.html", kinds=IMPORT_KINDS, result=result, kind=kind)

    return render_template("reports/import.html", kinds=IMPORT_KINDS, result=None, kind=None)
