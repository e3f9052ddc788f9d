"""
TKA Invoice – Domain Models

Master data:
- Company (client) with its JobDescription price catalogue
- TkaWorker (foreign worker) with TkaFamily members
- BankAccount, Setting, User

Invoicing:
- Invoice header + InvoiceLine items
- InvoiceNumberSequence (one counter row per year/month)
- AuditLog

IMPORTANT:
- Header amounts (subtotal / VAT / total) are only ever written by
  Invoice.recalc_totals(), which applies the invoice rounding rule.
- Lines may only change while the invoice is a draft; services enforce it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .money import DEFAULT_VAT_PERCENTAGE, calculate_vat, money, round_amount, to_decimal


ROLE_ADMIN = "admin"
ROLE_VIEWER = "viewer"
ROLES = {ROLE_ADMIN: "Administrator", ROLE_VIEWER: "Viewer"}

STATUS_DRAFT = "draft"
STATUS_FINALIZED = "finalized"
STATUS_PAID = "paid"
STATUS_CANCELLED = "cancelled"
INVOICE_STATUSES = {
    STATUS_DRAFT: "Draft",
    STATUS_FINALIZED: "Finalized",
    STATUS_PAID: "Paid",
    STATUS_CANCELLED: "Cancelled",
}

GENDER_MALE = "Laki-laki"
GENDER_FEMALE = "Perempuan"

FAMILY_RELATIONSHIPS = {
    "spouse": "Suami/Istri",
    "parent": "Orang Tua",
    "child": "Anak",
}


def _uuid() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. Admin mutates; viewer reads and exports."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(100), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_VIEWER, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    last_login = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_viewer(self) -> bool:
        return self.role == ROLE_VIEWER

    @property
    def can_export(self) -> bool:
        return self.role in ROLES

    @property
    def role_display(self) -> str:
        return ROLES.get(self.role, self.role)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<User {self.username}>"


# ---------------------------------------------------------------------
# Clients and price catalogue
# ---------------------------------------------------------------------
class Company(db.Model):
    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    company_uuid = db.Column(db.String(32), unique=True, nullable=False, default=_uuid)

    company_name = db.Column(db.String(200), nullable=False, index=True)
    npwp = db.Column(db.String(20), nullable=False, index=True)
    idtku = db.Column(db.String(20), nullable=False)
    address = db.Column(db.Text, nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    jobs = db.relationship(
        "JobDescription",
        back_populates="company",
        cascade="all, delete-orphan",
        order_by="JobDescription.sort_order",
    )
    invoices = db.relationship("Invoice", back_populates="company", lazy="dynamic")

    @property
    def display_name(self) -> str:
        return f"{self.company_name} ({self.npwp})"

    def __repr__(self):
        return f"<Company {self.company_name}>"


class JobDescription(db.Model):
    __tablename__ = "job_descriptions"

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    job_name = db.Column(db.String(200), nullable=False)
    job_description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", back_populates="jobs")

    def __repr__(self):
        return f"<JobDescription {self.job_name}>"


# ---------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------
class TkaWorker(db.Model):
    """Foreign worker (Tenaga Kerja Asing)."""

    __tablename__ = "tka_workers"

    id = db.Column(db.Integer, primary_key=True)

    nama = db.Column(db.String(100), nullable=False, index=True)
    passport = db.Column(db.String(20), nullable=False, unique=True, index=True)
    divisi = db.Column(db.String(100), nullable=True)
    jenis_kelamin = db.Column(db.String(20), nullable=False, default=GENDER_MALE)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    family_members = db.relationship(
        "TkaFamily",
        back_populates="worker",
        cascade="all, delete-orphan",
        order_by="TkaFamily.nama",
    )

    @property
    def display_name(self) -> str:
        return f"{self.nama} ({self.passport})"

    def __repr__(self):
        return f"<TkaWorker {self.nama}>"


class TkaFamily(db.Model):
    __tablename__ = "tka_family_members"

    id = db.Column(db.Integer, primary_key=True)

    tka_id = db.Column(
        db.Integer,
        db.ForeignKey("tka_workers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    nama = db.Column(db.String(100), nullable=False)
    passport = db.Column(db.String(20), nullable=False, unique=True, index=True)
    jenis_kelamin = db.Column(db.String(20), nullable=False, default=GENDER_MALE)
    relationship = db.Column(db.String(20), nullable=False, default="spouse")

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    worker = db.relationship("TkaWorker", back_populates="family_members")

    @property
    def relationship_display(self) -> str:
        return FAMILY_RELATIONSHIPS.get(self.relationship, self.relationship)


# ---------------------------------------------------------------------
# Settings & bank accounts
# ---------------------------------------------------------------------
class BankAccount(db.Model):
    __tablename__ = "bank_accounts"

    id = db.Column(db.Integer, primary_key=True)

    bank_name = db.Column(db.String(100), nullable=False)
    account_number = db.Column(db.String(50), nullable=False)
    account_name = db.Column(db.String(100), nullable=False)

    is_default = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.bank_name} - {self.account_number}"

    def invoice_lines(self) -> list[str]:
        return [self.bank_name, f"No. Rekening: {self.account_number}", f"A/n: {self.account_name}"]


class Setting(db.Model):
    """Typed key/value business setting (letterhead, VAT default, number prefix, ...)."""

    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)

    setting_key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    setting_value = db.Column(db.Text, nullable=False, default="")
    setting_type = db.Column(db.String(20), nullable=False, default="string")
    description = db.Column(db.String(255), nullable=True)
    is_system = db.Column(db.Boolean, default=False, nullable=False)

    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ---------------------------------------------------------------------
# Invoicing
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_uuid = db.Column(db.String(32), unique=True, nullable=False, default=_uuid)

    invoice_number = db.Column(db.String(50), unique=True, nullable=False, index=True)

    company_id = db.Column(
        db.Integer,
        db.ForeignKey("companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    invoice_date = db.Column(db.Date, nullable=False, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    vat_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=DEFAULT_VAT_PERCENTAGE)
    vat_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT, index=True)
    notes = db.Column(db.Text, nullable=True)

    bank_account_id = db.Column(
        db.Integer,
        db.ForeignKey("bank_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )

    printed_count = db.Column(db.Integer, nullable=False, default=0)
    last_printed_at = db.Column(db.DateTime, nullable=True)

    imported_from = db.Column(db.String(255), nullable=True)
    import_batch_id = db.Column(db.String(50), nullable=True, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", back_populates="invoices")
    bank_account = db.relationship("BankAccount")
    created_by_user = db.relationship("User")

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="[InvoiceLine.baris, InvoiceLine.line_order]",
    )

    @property
    def status_display(self) -> str:
        return INVOICE_STATUSES.get(self.status, self.status)

    @property
    def can_edit(self) -> bool:
        return self.status == STATUS_DRAFT

    @property
    def can_finalize(self) -> bool:
        return self.status == STATUS_DRAFT and bool(self.lines)

    @property
    def can_print(self) -> bool:
        return self.status in (STATUS_FINALIZED, STATUS_PAID)

    def recalc_totals(self):
        """
        subtotal = round(sum of line totals)
        vat      = round(subtotal * pct / 100)
        total    = subtotal + vat
        """
        raw = sum((to_decimal(line.line_total) for line in self.lines), Decimal("0"))
        subtotal = round_amount(raw)
        pct = to_decimal(self.vat_percentage if self.vat_percentage is not None else DEFAULT_VAT_PERCENTAGE)
        vat = calculate_vat(subtotal, pct)

        self.subtotal = money(subtotal)
        self.vat_amount = money(vat)
        self.total_amount = money(subtotal + vat)

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Lines sharing a baris render as one row on the printed invoice
    baris = db.Column(db.Integer, nullable=False)
    line_order = db.Column(db.Integer, nullable=False, default=1)

    tka_id = db.Column(
        db.Integer,
        db.ForeignKey("tka_workers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    job_description_id = db.Column(
        db.Integer,
        db.ForeignKey("job_descriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    custom_job_name = db.Column(db.String(200), nullable=True)
    custom_job_description = db.Column(db.Text, nullable=True)
    custom_price = db.Column(db.Numeric(15, 2), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    line_total = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    invoice = db.relationship("Invoice", back_populates="lines")
    worker = db.relationship("TkaWorker")
    job = db.relationship("JobDescription")

    @property
    def worker_name(self) -> str:
        return self.worker.nama if self.worker else ""

    @property
    def job_name(self) -> str:
        if self.custom_job_name:
            return self.custom_job_name
        return self.job.job_name if self.job else ""

    @property
    def job_description_text(self) -> str:
        if self.custom_job_description:
            return self.custom_job_description
        return self.job.job_description if self.job else ""

    @property
    def effective_price(self) -> Decimal:
        if self.custom_price is not None:
            return to_decimal(self.custom_price)
        if self.job is not None:
            return to_decimal(self.job.price)
        return to_decimal(self.unit_price)

    def recalc(self):
        """unit_price from the effective price; line_total = unit_price * quantity."""
        self.unit_price = money(self.effective_price)
        self.line_total = money(to_decimal(self.unit_price) * int(self.quantity or 0))


class InvoiceNumberSequence(db.Model):
    """
    Monthly invoice counter.

    Incremented in place by InvoiceNumberSequencer and never decremented. A
    number counts as consumed once the transaction that drew it commits.
    """

    __tablename__ = "invoice_number_sequences"

    id = db.Column(db.Integer, primary_key=True)

    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    current_number = db.Column(db.Integer, nullable=False, default=0)
    prefix = db.Column(db.String(10), nullable=False, default="FSN")

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint("year", "month", name="uq_invoice_sequence_period"),)


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(150), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
