"""
tka_invoice/blueprints/companies/routes.py

Client companies and their job/price catalogue.

SECURITY:
- Lists and detail pages: any logged-in user.
- Every mutation: admin_required (the global viewer guard is only a net).
"""

from __future__ import annotations

from flask import Blueprint, flash, jsonify, redirect, render_template, request, url_for
from flask_login import login_required

from ... import companies as service
from ...errors import InvoiceAppError
from ...security import admin_required
from ..forms import flash_error, form_text, parse_decimal, parse_id_list, parse_optional_int

companies_bp = Blueprint("companies", __name__, url_prefix="/companies")


def _company_form() -> dict:
    return {
        "company_name": form_text("company_name"),
        "npwp": form_text("npwp"),
        "idtku": form_text("idtku"),
        "address": form_text("address"),
    }


def _job_form() -> dict:
    return {
        "job_name": form_text("job_name"),
        "job_description": form_text("job_description"),
        "price": parse_decimal(request.form.get("price")),
        "sort_order": parse_optional_int(request.form.get("sort_order")),
    }


# ---------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------
@companies_bp.route("/")
@login_required
def list_companies():
    term = (request.args.get("q") or "").strip()
    include_inactive = bool(request.args.get("inactive"))
    return render_template(
        "companies/list.html",
        companies=service.search_companies(term, include_inactive=include_inactive),
        q=term,
        include_inactive=include_inactive,
    )


@companies_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_company():
    if request.method == "POST":
        data = _company_form()
        try:
            company = service.create_company(**data)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("companies/form.html", company=None, form=data)
        flash(f"Perusahaan {company.company_name} ditambahkan.", "success")
        return redirect(url_for("companies.view_company", company_id=company.id))

    return render_template("companies/form.html", company=None, form={})


@companies_bp.route("/<int:company_id>")
@login_required
def view_company(company_id: int):
    company = service.get_company(company_id)
    return render_template(
        "companies/detail.html",
        company=company,
        jobs=service.jobs_for_company(company.id, include_inactive=True),
        stats=service.company_stats(company.id),
    )


@companies_bp.route("/<int:company_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_company(company_id: int):
    company = service.get_company(company_id)

    if request.method == "POST":
        data = _company_form()
        try:
            service.update_company(company.id, **data)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("companies/form.html", company=company, form=data)
        flash("Perusahaan diperbarui.", "success")
        return redirect(url_for("companies.view_company", company_id=company.id))

    return render_template("companies/form.html", company=company, form={})


@companies_bp.route("/<int:company_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_company(company_id: int):
    try:
        service.deactivate_company(company_id)
        flash("Perusahaan dinonaktifkan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("companies.list_companies"))


@companies_bp.route("/<int:company_id>/restore", methods=["POST"])
@login_required
@admin_required
def restore_company(company_id: int):
    service.restore_company(company_id)
    flash("Perusahaan diaktifkan kembali.", "success")
    return redirect(url_for("companies.view_company", company_id=company_id))


# ---------------------------------------------------------------------
# Job catalogue
# ---------------------------------------------------------------------
@companies_bp.route("/<int:company_id>/jobs.json")
@login_required
def jobs_json(company_id: int):
    """Active jobs for the invoice line form."""
    return jsonify(
        [
            {"id": job.id, "job_name": job.job_name, "job_description": job.job_description, "price": str(job.price)}
            for job in service.jobs_for_company(company_id)
        ]
    )


@companies_bp.route("/<int:company_id>/jobs", methods=["POST"])
@login_required
@admin_required
def create_job(company_id: int):
    data = _job_form()
    try:
        job = service.create_job(company_id, **data)
        flash(f"Job {job.job_name} ditambahkan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("companies.view_company", company_id=company_id))


@companies_bp.route("/jobs/<int:job_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_job(job_id: int):
    job = service.get_job(job_id)

    if request.method == "POST":
        data = _job_form()
        try:
            service.update_job(job.id, **data)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("companies/job_form.html", job=job, form=data)
        flash("Job diperbarui.", "success")
        return redirect(url_for("companies.view_company", company_id=job.company_id))

    return render_template("companies/job_form.html", job=job, form={})


@companies_bp.route("/jobs/<int:job_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_job(job_id: int):
    job = service.get_job(job_id)
    company_id = job.company_id
    if service.delete_job(job_id):
        flash("Job dihapus.", "success")
    else:
        flash("Job sudah dipakai di invoice dan hanya dinonaktifkan.", "warning")
    return redirect(url_for("companies.view_company", company_id=company_id))


@companies_bp.route("/<int:company_id>/jobs/reorder", methods=["POST"])
@login_required
@admin_required
def reorder_jobs(company_id: int):
    try:
        service.reorder_jobs(company_id, parse_id_list(request.form.getlist("job_id")))
        flash("Urutan job disimpan.", "success")
    except InvoiceAppError as exc:
        flash_error(exc)
    return redirect(url_for("companies.view_company", company_id=company_id))
