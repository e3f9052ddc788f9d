"""
tka_invoice/blueprints/workers/routes.py

Foreign workers (TKA) and family members.

SECURITY:
- Lists, detail and the JSON search: any logged-in user.
- Every mutation: admin_required.
"""

from __future__ import annotations

from flask import Blueprint, flash, jsonify, redirect, render_template, request, url_for
from flask_login import login_required

from ... import workers as service
from ...companies import list_companies
from ...errors import InvoiceAppError
from ...models import FAMILY_RELATIONSHIPS
from ...security import admin_required
from ...validation import GENDERS
from ..forms import flash_error, form_text, parse_optional_int

workers_bp = Blueprint("workers", __name__, url_prefix="/workers")


def _worker_form() -> dict:
    return {
        "nama": form_text("nama"),
        "passport": form_text("passport"),
        "divisi": form_text("divisi"),
        "jenis_kelamin": form_text("jenis_kelamin"),
    }


def _family_form() -> dict:
    return {
        "nama": form_text("nama"),
        "passport": form_text("passport"),
        "relationship": form_text("relationship"),
        "jenis_kelamin": form_text("jenis_kelamin"),
    }


def _form_context(**extra) -> dict:
    return {"genders": GENDERS, "relationships": FAMILY_RELATIONSHIPS, **extra}


# ---------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------
@workers_bp.route("/")
@login_required
def list_workers():
    term = (request.args.get("q") or "").strip()
    company_id = parse_optional_int(request.args.get("company_id"))
    include_inactive = bool(request.args.get("inactive"))
    return render_template(
        "workers/list.html",
        workers=service.search_workers(term, company_id=company_id, include_inactive=include_inactive),
        companies=list_companies(include_inactive=True),
        q=term,
        company_id=company_id,
        include_inactive=include_inactive,
    )


@workers_bp.route("/search.json")
@login_required
def search_json():
    """Autocomplete for invoice lines: ?q=...&company_id=..."""
    workers = service.search_workers(
        request.args.get("q"), company_id=parse_optional_int(request.args.get("company_id"))
    )
    return jsonify(
        [{"id": w.id, "nama": w.nama, "passport": w.passport, "divisi": w.divisi or ""} for w in workers[:50]]
    )


@workers_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_worker():
    if request.method == "POST":
        data = _worker_form()
        try:
            worker = service.create_worker(**data)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("workers/form.html", **_form_context(worker=None, form=data))
        flash(f"TKA {worker.nama} ditambahkan.", "success")
        return redirect(url_for("workers.view_worker", worker_id=worker.id))

    return render_template("workers/form.html", **_form_context(worker=None, form={}))


@workers_bp.route("/<int:worker_id>")
@login_required
def view_worker(worker_id: int):
    worker = service.get_worker(worker_id)
    return render_template("workers/detail.html", **_form_context(worker=worker))


@workers_bp.route("/<int:worker_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_worker(worker_id: int):
    worker = service.get_worker(worker_id)

    if request.method == "POST":
        data = _worker_form()
        try:
            service.update_worker(worker.id, **data)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("workers/form.html", **_form_context(worker=worker, form=data))
        flash("Data TKA diperbarui.", "success")
        return redirect(url_for("workers.view_worker", worker_id=worker.id))

    return render_template("workers/form.html", **_form_context(worker=worker, form={}))


@workers_bp.route("/<int:worker_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_worker(worker_id: int):
    try:
        service.deactivate_worker(worker_id)
        flash("TKA dinonaktifkan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
        return redirect(url_for("workers.view_worker", worker_id=worker_id))
    return redirect(url_for("workers.list_workers"))


@workers_bp.route("/<int:worker_id>/restore", methods=["POST"])
@login_required
@admin_required
def restore_worker(worker_id: int):
    service.restore_worker(worker_id)
    flash("TKA diaktifkan kembali.", "success")
    return redirect(url_for("workers.view_worker", worker_id=worker_id))


# ---------------------------------------------------------------------
# Family members
# ---------------------------------------------------------------------
@workers_bp.route("/<int:worker_id>/family", methods=["POST"])
@login_required
@admin_required
def add_family(worker_id: int):
    try:
        member = service.add_family_member(worker_id, **_family_form())
        flash(f"Anggota keluarga {member.nama} ditambahkan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("workers.view_worker", worker_id=worker_id))


@workers_bp.route("/family/<int:member_id>/edit", methods=["POST"])
@login_required
@admin_required
def edit_family(member_id: int):
    member = service.get_family_member(member_id)
    try:
        service.update_family_member(member.id, **_family_form())
        flash("Anggota keluarga diperbarui.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("workers.view_worker", worker_id=member.tka_id))


@workers_bp.route("/family/<int:member_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_family(member_id: int):
    member = service.get_family_member(member_id)
    worker_id = member.tka_id
    service.delete_family_member(member.id)
    flash("Anggota keluarga dihapus.", "success")
    return redirect(url_for("workers.view_worker", worker_id=worker_id))
