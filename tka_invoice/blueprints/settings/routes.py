"""
tka_invoice/blueprints/settings/routes.py

Business settings and bank accounts (admin-only).

Scope:
- Letterhead, invoice prefix, default VAT, invoice place, default bank.
- Bank account CRUD (deactivate instead of delete; invoices keep their bank).

AUDIT:
- Every setting change and bank account change is audited by the store.
"""

from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from ...errors import InvoiceAppError
from ...extensions import db
from ...security import admin_required
from ...settings_store import (
    DEFAULT_SETTINGS,
    deactivate_bank_account,
    get_bank_account,
    get_setting,
    list_bank_accounts,
    save_bank_account,
    set_setting,
)
from ..forms import flash_error, form_text, parse_optional_int

settings_bp = Blueprint("settings", __name__, url_prefix="/settings")

# (key, type, description) of settings an admin may edit
EDITABLE_SETTINGS = [
    (key, type_, description)
    for key, _value, type_, description, is_system in DEFAULT_SETTINGS
    if not is_system
]


def _bank_form() -> dict:
    return {
        "bank_name": form_text("bank_name"),
        "account_number": form_text("account_number"),
        "account_name": form_text("account_name"),
        "is_default": bool(request.form.get("is_default")),
        "sort_order": parse_optional_int(request.form.get("sort_order")) or 0,
    }


# ----------------------------------------------------------------------
# BUSINESS SETTINGS
# ----------------------------------------------------------------------
@settings_bp.route("/", methods=["GET", "POST"])
@login_required
@admin_required
def edit_settings():
    """All editable settings on one form; saved in a single transaction."""
    if request.method == "POST":
        try:
            for key, type_, _description in EDITABLE_SETTINGS:
                if type_ == "boolean":
                    value = bool(request.form.get(key))
                else:
                    value = form_text(key)
                set_setting(key, value, user_id=current_user.id)
            db.session.commit()
        except InvoiceAppError as exc:
            db.session.rollback()
            flash_error(exc)
            return redirect(url_for("settings.edit_settings"))

        flash("Pengaturan disimpan.", "success")
        return redirect(url_for("settings.edit_settings"))

    values = {key: get_setting(key) for key, _type, _description in EDITABLE_SETTINGS}
    return render_template(
        "settings/edit.html",
        settings=EDITABLE_SETTINGS,
        values=values,
        banks=list_bank_accounts(),
    )


# ----------------------------------------------------------------------
# BANK ACCOUNTS
# ----------------------------------------------------------------------
@settings_bp.route("/banks", methods=["GET", "POST"])
@login_required
@admin_required
def bank_accounts():
    if request.method == "POST":
        try:
            bank = save_bank_account(**_bank_form())
            flash(f"Rekening {bank.bank_name} ditambahkan.", "success")
        except InvoiceAppError as exc:
            flash_error(exc)
        return redirect(url_for("settings.bank_accounts"))

    return render_template("settings/banks.html", banks=list_bank_accounts(include_inactive=True))


@settings_bp.route("/banks/<int:bank_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_bank_account(bank_id: int):
    bank = get_bank_account(bank_id)

    if request.method == "POST":
        try:
            save_bank_account(bank_id=bank.id, **_bank_form())
        except InvoiceAppError as exc:
            flash_error(exc)
            return redirect(url_for("settings.edit_bank_account", bank_id=bank.id))
        flash("Rekening diperbarui.", "success")
        return redirect(url_for("settings.bank_accounts"))

    return render_template("settings/bank_form.html", bank=bank)


@settings_bp.route("/banks/<int:bank_id>/delete", methods=["POST"])
@login_required
@admin_required
def delete_bank_account(bank_id: int):
    deactivate_bank_account(bank_id)
    flash("Rekening dinonaktifkan.", "success")
    return redirect(url_for("settings.bank_accounts"))
