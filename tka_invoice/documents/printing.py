"""
tka_invoice/documents/printing.py

Render-ready view of an invoice, shared by the HTML print page and the PDF.

build_document() resolves everything a renderer needs (letterhead, grouped
rows, formatted amounts, words, bank block) so that neither renderer talks to
the database or re-implements grouping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from ..aggregation import RowGroup, group_for_display
from ..models import Invoice
from ..money import format_currency
from ..settings_store import Letterhead, letterhead
from ..terbilang import to_invoice_words

MONTHS_ID = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)

TABLE_HEADERS = ("No.", "Expatriat", "Keterangan", "Harga")


def format_invoice_date(value: date) -> str:
    """15 Januari 2024"""
    return f"{value.day:02d} {MONTHS_ID[value.month - 1]} {value.year}"


@dataclass
class DocumentRow:
    number: int
    workers: list[str]
    descriptions: list[str]
    amount: str


@dataclass
class InvoiceDocument:
    invoice_number: str
    date_line: str
    letterhead: Letterhead
    company_name: str
    company_address: str
    rows: list[DocumentRow]
    subtotal: str
    vat_label: str
    vat_amount: str
    total: str
    words: str
    notes: str = ""
    bank_lines: list[str] = field(default_factory=list)
    status: str = ""


def _row(group: RowGroup) -> DocumentRow:
    return DocumentRow(
        number=group.row_number,
        workers=list(group.worker_names),
        descriptions=list(group.description_lines),
        amount=format_currency(group.row_total),
    )


def _vat_label(pct) -> str:
    text = f"{pct:.2f}".rstrip("0").rstrip(".")
    return f"PPN ({text}%):"


def build_document(invoice: Invoice, head: Letterhead | None = None) -> InvoiceDocument:
    head = head or letterhead()
    company = invoice.company
    place = head.invoice_place

    date_text = format_invoice_date(invoice.invoice_date)
    return InvoiceDocument(
        invoice_number=invoice.invoice_number,
        date_line=f"Tanggal: {place}, {date_text}" if place else f"Tanggal: {date_text}",
        letterhead=head,
        company_name=company.company_name if company else "",
        company_address=company.address if company else "",
        rows=[_row(group) for group in group_for_display(invoice.lines)],
        subtotal=format_currency(invoice.subtotal),
        vat_label=_vat_label(invoice.vat_percentage),
        vat_amount=format_currency(invoice.vat_amount),
        total=format_currency(invoice.total_amount),
        words=to_invoice_words(invoice.total_amount),
        notes=invoice.notes or "",
        bank_lines=invoice.bank_account.invoice_lines() if invoice.bank_account else [],
        status=invoice.status_display,
    )
