"""
tka_invoice/blueprints/auth/routes.py

Provides:
- /auth/login
- /auth/logout
- /auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- seed-admin works only while the users table is empty.
"""

from __future__ import annotations

from datetime import datetime

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from ...errors import InvoiceAppError
from ...extensions import db
from ...models import User
from ...seed import create_admin_user, seed_default_settings
from ..forms import flash_error, form_text, safe_next_url

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for("invoices.list_invoices"))

    if request.method == "POST":
        username = form_text("username")
        password = request.form.get("password", "")

        user = User.query.filter_by(username=username).first()

        if not user or not user.check_password(password):
            flash("Username atau password salah.", "danger")
            return render_template("auth/login.html", username=username), 401

        if not user.is_active:
            flash("Akun tidak aktif.", "danger")
            return render_template("auth/login.html", username=username), 403

        login_user(user)
        user.last_login = datetime.utcnow()
        db.session.commit()
        flash(f"Selamat datang, {user.full_name}!", "success")

        return redirect(safe_next_url("invoices.list_invoices"))

    if User.query.count() == 0:
        return redirect(url_for("auth.seed_admin"))

    return render_template("auth/login.html")


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout")
@login_required
def logout():
    logout_user()
    flash("Anda telah logout.", "info")
    return redirect(url_for("auth.login"))


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["GET", "POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system and the default settings.

    Blocked as soon as any user exists.
    """
    if User.query.count() > 0:
        flash("Sistem sudah memiliki pengguna.", "warning")
        return redirect(url_for("auth.login"))

    if request.method == "POST":
        username = form_text("username")
        password = request.form.get("password", "")
        full_name = form_text("full_name") or "Administrator"

        try:
            create_admin_user(username, password, full_name=full_name)
        except InvoiceAppError as exc:
            flash_error(exc)
            return render_template("auth/seed_admin.html", username=username, full_name=full_name)

        seed_default_settings()
        flash("Admin berhasil dibuat. Silakan login.", "success")
        return redirect(url_for("auth.login"))

    return render_template("auth/seed_admin.html")
