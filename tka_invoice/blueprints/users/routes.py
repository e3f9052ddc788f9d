"""
User Management (Admin Only).

Rules enforced:
- Usernames are unique.
- An admin cannot deactivate or demote their own account.
- UI never trusted: we validate server-side.

Audit:
- CREATE / UPDATE logged
"""

from flask import (
    Blueprint,
    render_template,
    request,
    redirect,
    url_for,
    flash,
)
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import ROLE_ADMIN, ROLE_VIEWER, ROLES, User
from ...security import admin_required
from ...validation import validate_password, validate_user


users_bp = Blueprint(
    "users",
    __name__,
    url_prefix="/users",
)


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("/")
@login_required
@admin_required
def list_users():
    """Admin view: list all users."""
    users = User.query.order_by(User.username.asc()).all()

    return render_template(
        "users/list.html",
        users=users,
        roles=ROLES,
    )


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_user():
    """
    Create a new system user.

    Required:
    - username
    - full_name
    - password
    - role (admin / viewer)
    """
    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        full_name = (request.form.get("full_name") or "").strip()
        password = (request.form.get("password") or "").strip()
        role = request.form.get("role") or ROLE_VIEWER

        if not password:
            flash("Password tidak boleh kosong.", "danger")
            return redirect(url_for("users.create_user"))

        errors = validate_user(username, full_name, password, role)
        if errors:
            flash("; ".join(errors), "danger")
            return redirect(url_for("users.create_user"))

        if User.query.filter_by(username=username).first():
            flash("Username sudah digunakan.", "danger")
            return redirect(url_for("users.create_user"))

        user = User(
            username=username,
            full_name=full_name,
            role=role,
            is_active=True,
        )
        user.set_password(password)

        db.session.add(user)
        db.session.flush()

        log_action(
            user,
            "CREATE",
            before=None,
            after=serialize_model(user),
        )
        db.session.commit()

        flash("Pengguna berhasil dibuat.", "success")
        return redirect(url_for("users.list_users"))

    return render_template("users/new.html", roles=ROLES)


# ---------------------------------------------------------------------
# EDIT USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>/edit", methods=["GET", "POST"])
@login_required
@admin_required
def edit_user(user_id):
    """
    Edit an existing user.

    Admin can:
    - change full name and role
    - activate/deactivate
    - reset password (left blank = unchanged)
    """
    user = db.get_or_404(User, user_id)

    if request.method == "POST":
        full_name = (request.form.get("full_name") or "").strip()
        role = request.form.get("role") or user.role
        is_active = bool(request.form.get("is_active"))
        new_password = (request.form.get("password") or "").strip()

        errors = validate_user(user.username, full_name, new_password, role)
        if errors:
            flash("; ".join(errors), "danger")
            return redirect(url_for("users.edit_user", user_id=user.id))

        if user.id == current_user.id and (role != ROLE_ADMIN or not is_active):
            flash("Anda tidak dapat menonaktifkan atau menurunkan role akun sendiri.", "danger")
            return redirect(url_for("users.edit_user", user_id=user.id))

        before_snapshot = serialize_model(user)

        user.full_name = full_name
        user.role = role
        user.is_active = is_active
        if new_password:
            user.set_password(new_password)

        db.session.flush()
        log_action(
            user,
            "UPDATE",
            before=before_snapshot,
            after=serialize_model(user),
        )
        db.session.commit()

        flash("Pengguna diperbarui.", "success")
        return redirect(url_for("users.list_users"))

    return render_template(
        "users/edit.html",
        user=user,
        roles=ROLES,
    )


# ---------------------------------------------------------------------
# CHANGE OWN PASSWORD
# ---------------------------------------------------------------------

@users_bp.route("/password", methods=["GET", "POST"])
@login_required
@admin_required
def change_password():
    """Admin changes their own password (current password required)."""
    if request.method == "POST":
        current_password = request.form.get("current_password") or ""
        new_password = (request.form.get("new_password") or "").strip()

        if not current_user.check_password(current_password):
            flash("Password lama salah.", "danger")
            return redirect(url_for("users.change_password"))

        errors = validate_password(new_password) if new_password else ["Password baru tidak boleh kosong"]
        if errors:
            flash("; ".join(errors), "danger")
            return redirect(url_for("users.change_password"))

        user = current_user._get_current_object()
        before_snapshot = serialize_model(user)
        user.set_password(new_password)
        db.session.flush()
        log_action(user, "UPDATE", before=before_snapshot, after=serialize_model(user))
        db.session.commit()

        flash("Password berhasil diubah.", "success")
        return redirect(url_for("invoices.list_invoices"))

    return render_template("users/password.html")
