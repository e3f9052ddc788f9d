"""
tka_invoice/excel.py

Excel import / export.

Writing uses XlsxWriter (in-memory workbooks streamed to the browser);
reading uploaded files uses openpyxl.

Export:
- invoices: "Invoice Headers" + "Invoice Lines" sheets
- workers: "TKA Workers" (+ "Family Members" when requested)
- templates: workers, invoices, job prices (each with an "Instruksi" sheet)

Import:
- workers: "Daftar TKA" sheet (or the first sheet); see workers.bulk_import_workers
- job prices: "Daftar Harga" sheet; existing jobs are updated by name
- invoices: one sheet whose name contains "Header" and one containing "Line".
  A header number in PREFIX/YY/MM/NNN form is kept; anything else (blank,
  a placeholder like "1") only links lines to their header and a fresh
  number is issued. Each invoice is its own transaction.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Iterable, Iterator

import xlsxwriter
from openpyxl import load_workbook

from .cache import get_query_cache
from .companies import CACHE_PREFIX as COMPANY_CACHE_PREFIX, create_job, find_company_by_name, find_job
from .errors import InvalidArgument, InvoiceAppError
from .extensions import db
from .invoicing import CACHE_PREFIX as INVOICE_CACHE_PREFIX, create_invoice
from .models import GENDER_FEMALE, GENDER_MALE, Invoice, InvoiceLine, TkaWorker
from .money import money, to_decimal
from .validation import clean, is_valid_invoice_number
from .workers import ImportResult, bulk_import_workers, find_worker_by_name

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

WORKER_COLUMNS = ["Nama", "Passport", "Divisi", "Jenis Kelamin"]
JOB_PRICE_COLUMNS = ["Company Name", "Job Name", "Job Description", "Price", "Sort Order"]
INVOICE_HEADER_COLUMNS = ["Invoice Number", "Company Name", "Company NPWP", "Invoice Date"]
INVOICE_LINE_COLUMNS = ["Invoice Number", "Baris", "TKA Name", "Job Name", "Job Description", "Price", "Quantity"]

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")


@dataclass
class ExportResult:
    filename: str
    content: bytes
    rows: int = 0

    @property
    def mimetype(self) -> str:
        return XLSX_MIMETYPE


# ---------------------------------------------------------------------
# Writing helpers
# ---------------------------------------------------------------------
def _formats(workbook) -> dict:
    return {
        "header": workbook.add_format(
            {"bold": True, "bg_color": "#D9E1F2", "border": 1, "align": "center", "valign": "vcenter"}
        ),
        "cell": workbook.add_format({"border": 1, "valign": "top"}),
        "wrap": workbook.add_format({"border": 1, "valign": "top", "text_wrap": True}),
        "number": workbook.add_format({"border": 1, "num_format": "#,##0.00", "valign": "top"}),
        "integer": workbook.add_format({"border": 1, "num_format": "0", "valign": "top"}),
        "date": workbook.add_format({"border": 1, "num_format": "dd/mm/yyyy", "valign": "top"}),
        "title": workbook.add_format({"bold": True, "font_size": 14}),
    }


def _write_header(sheet, headers: list[str], fmt, widths: list[int]) -> None:
    for col, header in enumerate(headers):
        sheet.write(0, col, header, fmt)
        sheet.set_column(col, col, widths[col] if col < len(widths) else 15)
    sheet.freeze_panes(1, 0)


def _instructions(workbook, fmts: dict, title: str, lines: list[str]) -> None:
    sheet = workbook.add_worksheet("Instruksi")
    sheet.set_column(0, 0, 80)
    sheet.write(0, 0, title, fmts["title"])
    for row, text in enumerate(lines, start=2):
        sheet.write(row, 0, text)


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


# ---------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------
def export_invoices(invoices: Iterable[Invoice]) -> ExportResult:
    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    fmts = _formats(workbook)

    headers = workbook.add_worksheet("Invoice Headers")
    _write_header(
        headers,
        INVOICE_HEADER_COLUMNS[:4]
        + ["Subtotal", "VAT Percentage", "VAT Amount", "Total Amount", "Status", "Created By"],
        fmts["header"],
        [18, 35, 22, 14, 16, 14, 16, 16, 12, 18],
    )
    lines = workbook.add_worksheet("Invoice Lines")
    _write_header(
        lines,
        INVOICE_LINE_COLUMNS[:5] + ["Unit Price", "Quantity", "Line Total"],
        fmts["header"],
        [18, 8, 28, 28, 40, 16, 10, 16],
    )

    row = line_row = 1
    for invoice in invoices:
        company = invoice.company
        headers.write(row, 0, invoice.invoice_number, fmts["cell"])
        headers.write(row, 1, company.company_name if company else "", fmts["cell"])
        headers.write(row, 2, company.npwp if company else "", fmts["cell"])
        headers.write_datetime(row, 3, invoice.invoice_date, fmts["date"])
        headers.write_number(row, 4, float(invoice.subtotal or 0), fmts["number"])
        headers.write_number(row, 5, float(invoice.vat_percentage or 0), fmts["number"])
        headers.write_number(row, 6, float(invoice.vat_amount or 0), fmts["number"])
        headers.write_number(row, 7, float(invoice.total_amount or 0), fmts["number"])
        headers.write(row, 8, invoice.status_display, fmts["cell"])
        user = invoice.created_by_user
        headers.write(row, 9, user.full_name if user else "", fmts["cell"])
        row += 1

        for line in invoice.lines:
            lines.write(line_row, 0, invoice.invoice_number, fmts["cell"])
            lines.write_number(line_row, 1, line.baris, fmts["integer"])
            lines.write(line_row, 2, line.worker_name, fmts["cell"])
            lines.write(line_row, 3, line.job_name, fmts["cell"])
            lines.write(line_row, 4, line.job_description_text, fmts["wrap"])
            lines.write_number(line_row, 5, float(line.unit_price or 0), fmts["number"])
            lines.write_number(line_row, 6, line.quantity, fmts["integer"])
            lines.write_number(line_row, 7, float(line.line_total or 0), fmts["number"])
            line_row += 1

    workbook.close()
    logger.info("Exported %s invoices to Excel", row - 1)
    return ExportResult(f"invoices_{_timestamp()}.xlsx", output.getvalue(), row - 1)


def export_workers(workers: Iterable[TkaWorker], include_family: bool = False) -> ExportResult:
    workers = list(workers)
    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    fmts = _formats(workbook)

    sheet = workbook.add_worksheet("TKA Workers")
    _write_header(sheet, WORKER_COLUMNS + ["Status", "Created Date"], fmts["header"], [30, 16, 20, 14, 10, 14])
    for row, worker in enumerate(workers, start=1):
        sheet.write(row, 0, worker.nama, fmts["cell"])
        sheet.write(row, 1, worker.passport, fmts["cell"])
        sheet.write(row, 2, worker.divisi or "", fmts["cell"])
        sheet.write(row, 3, worker.jenis_kelamin, fmts["cell"])
        sheet.write(row, 4, "Aktif" if worker.is_active else "Nonaktif", fmts["cell"])
        if worker.created_at:
            sheet.write_datetime(row, 5, worker.created_at, fmts["date"])
        else:
            sheet.write_blank(row, 5, None, fmts["cell"])

    if include_family:
        family = workbook.add_worksheet("Family Members")
        _write_header(
            family,
            ["TKA Name", "TKA Passport", "Family Name", "Family Passport", "Jenis Kelamin", "Relationship", "Status"],
            fmts["header"],
            [30, 16, 30, 16, 14, 14, 10],
        )
        row = 1
        for worker in workers:
            for member in worker.family_members:
                family.write(row, 0, worker.nama, fmts["cell"])
                family.write(row, 1, worker.passport, fmts["cell"])
                family.write(row, 2, member.nama, fmts["cell"])
                family.write(row, 3, member.passport, fmts["cell"])
                family.write(row, 4, member.jenis_kelamin, fmts["cell"])
                family.write(row, 5, member.relationship_display, fmts["cell"])
                family.write(row, 6, "Aktif" if member.is_active else "Nonaktif", fmts["cell"])
                row += 1

    workbook.close()
    return ExportResult(f"tka_workers_{_timestamp()}.xlsx", output.getvalue(), len(workers))


def worker_template() -> ExportResult:
    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    fmts = _formats(workbook)

    sheet = workbook.add_worksheet("Daftar TKA")
    _write_header(sheet, WORKER_COLUMNS, fmts["header"], [30, 16, 20, 14])
    sheet.write_row(1, 0, ["John Doe", "A1234567", "Engineering", GENDER_MALE])
    sheet.write_row(2, 0, ["Jane Smith", "B7654321", "Administration", GENDER_FEMALE])
    sheet.data_validation(1, 3, 1000, 3, {"validate": "list", "source": [GENDER_MALE, GENDER_FEMALE]})

    _instructions(
        workbook,
        fmts,
        "INSTRUKSI IMPORT DAFTAR TKA",
        [
            "1. Isi data TKA pada sheet 'Daftar TKA'",
            "2. Pastikan format passport benar (6-12 karakter alfanumerik)",
            "3. Jenis Kelamin harus 'Laki-laki' atau 'Perempuan'",
            "4. Divisi bersifat opsional",
            "5. Simpan file dan import melalui aplikasi",
        ],
    )
    workbook.close()
    return ExportResult("template_tka.xlsx", output.getvalue())


def job_price_template(company=None) -> ExportResult:
    """Existing catalogue of `company` when given, else sample rows."""
    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    fmts = _formats(workbook)

    sheet = workbook.add_worksheet("Daftar Harga")
    _write_header(sheet, JOB_PRICE_COLUMNS, fmts["header"], [35, 30, 50, 16, 10])
    if company is not None:
        for row, job in enumerate(company.jobs, start=1):
            sheet.write(row, 0, company.company_name)
            sheet.write(row, 1, job.job_name)
            sheet.write(row, 2, job.job_description)
            sheet.write_number(row, 3, float(job.price or 0), fmts["number"])
            sheet.write_number(row, 4, job.sort_order or 0)
    else:
        sheet.write_row(1, 0, ["PT Contoh", "Consultation Services", "Professional consultation and advisory services"])
        sheet.write_number(1, 3, 1000000, fmts["number"])
        sheet.write_number(1, 4, 1)
        sheet.write_row(2, 0, ["PT Contoh", "Technical Support", "Technical support and maintenance services"])
        sheet.write_number(2, 3, 750000, fmts["number"])
        sheet.write_number(2, 4, 2)

    _instructions(
        workbook,
        fmts,
        "INSTRUKSI IMPORT DAFTAR HARGA",
        [
            "1. Company Name harus sama persis dengan nama perusahaan yang terdaftar",
            "2. Job dengan nama yang sudah ada akan diperbarui",
            "3. Price dalam Rupiah tanpa pemisah ribuan",
            "4. Sort Order bersifat opsional",
        ],
    )
    workbook.close()
    return ExportResult("template_daftar_harga.xlsx", output.getvalue())


def invoice_template() -> ExportResult:
    output = BytesIO()
    workbook = xlsxwriter.Workbook(output, {"in_memory": True})
    fmts = _formats(workbook)

    headers = workbook.add_worksheet("Invoice Headers")
    _write_header(headers, INVOICE_HEADER_COLUMNS, fmts["header"], [18, 35, 22, 14])
    headers.write_row(1, 0, ["1", "PT Contoh", "01.234.567.8-901.000"])
    headers.write_datetime(1, 3, date.today(), fmts["date"])

    lines = workbook.add_worksheet("Invoice Lines")
    _write_header(lines, INVOICE_LINE_COLUMNS, fmts["header"], [18, 8, 28, 28, 40, 16, 10])
    lines.write_row(1, 0, ["1", 1, "John Doe", "Consultation Services", "Professional consultation"])
    lines.write_number(1, 5, 1000000, fmts["number"])
    lines.write_number(1, 6, 1)

    _instructions(
        workbook,
        fmts,
        "INSTRUKSI IMPORT INVOICE",
        [
            "- Sheet 'Invoice Headers': Data header invoice",
            "- Sheet 'Invoice Lines': Data line items invoice",
            "- Invoice Number menghubungkan baris dengan header-nya",
            "- Nomor berformat FSN/YY/MM/NNN dipakai apa adanya; selain itu nomor baru dibuat otomatis",
            "- Company Name dan TKA Name harus sudah terdaftar dan aktif",
            "- Job yang belum ada akan ditambahkan ke daftar harga perusahaan",
        ],
    )
    workbook.close()
    return ExportResult("template_invoice.xlsx", output.getvalue())


# ---------------------------------------------------------------------
# Reading helpers
# ---------------------------------------------------------------------
def _open(source):
    if isinstance(source, (bytes, bytearray)):
        source = BytesIO(source)
    try:
        return load_workbook(source, read_only=True, data_only=True)
    except Exception as exc:
        raise InvalidArgument(f"File Excel tidak dapat dibaca: {exc}") from exc


def _rows(sheet) -> Iterator[tuple[int, tuple]]:
    """(excel row number, values) for non-empty data rows."""
    for number, values in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if values and any(v not in (None, "") for v in values):
            yield number, tuple(values)


def _cell(values: tuple, index: int) -> Any:
    return values[index] if index < len(values) else None


def _text(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return clean(value)


def _int(value, default: int | None = None) -> int | None:
    if value in (None, ""):
        return default
    try:
        return int(Decimal(str(value).strip()))
    except ArithmeticError as exc:
        raise InvalidArgument(f"Bukan angka: {value!r}") from exc


def _date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean(value)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidArgument(f"Tanggal tidak valid: {value!r}")


def _find_sheet(workbook, fragment: str):
    for sheet in workbook.worksheets:
        if fragment.lower() in sheet.title.lower():
            return sheet
    return None


# ---------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------
def import_workers(source, skip_duplicates: bool = True) -> ImportResult:
    workbook = _open(source)
    try:
        sheet = _find_sheet(workbook, "Daftar TKA") or workbook.worksheets[0]
        rows = [
            {
                "row": number,
                "nama": _text(_cell(values, 0)),
                "passport": _text(_cell(values, 1)),
                "divisi": _text(_cell(values, 2)),
                "jenis_kelamin": _text(_cell(values, 3)),
            }
            for number, values in _rows(sheet)
        ]
    finally:
        workbook.close()

    return bulk_import_workers(rows, skip_duplicates=skip_duplicates)


def import_job_prices(source) -> ImportResult:
    """Create or update catalogue entries from a "Daftar Harga" sheet."""
    result = ImportResult()
    workbook = _open(source)
    try:
        sheet = _find_sheet(workbook, "Harga") or workbook.worksheets[0]
        rows = list(_rows(sheet))
    finally:
        workbook.close()

    for number, values in rows:
        result.processed += 1
        company_name = _text(_cell(values, 0))
        company = find_company_by_name(company_name)
        if company is None:
            result.errors.append(f"Row {number}: Company '{company_name}' tidak ditemukan")
            continue

        try:
            job_name = _text(_cell(values, 1))
            description = _text(_cell(values, 2)) or job_name
            price = money(to_decimal(_cell(values, 3)))
            sort_order = _int(_cell(values, 4))

            job = find_job(company.id, job_name)
            if job is None:
                create_job(company.id, job_name, description, price, sort_order=sort_order, commit=False)
            else:
                if price < 0:
                    raise InvalidArgument("Harga tidak boleh negatif")
                job.job_description = description
                job.price = price
                job.is_active = True
                if sort_order is not None:
                    job.sort_order = sort_order
            db.session.commit()
            result.success += 1
        except InvoiceAppError as exc:
            db.session.rollback()
            result.errors.append(f"Row {number}: {exc}")

    if result.success:
        get_query_cache().invalidate_prefix(COMPANY_CACHE_PREFIX)
    logger.info(result.message)
    return result


def _read_invoice_sheets(workbook) -> tuple[list, dict]:
    header_sheet = _find_sheet(workbook, "Header")
    line_sheet = _find_sheet(workbook, "Line")
    if header_sheet is None or line_sheet is None:
        raise InvalidArgument("File harus memiliki sheet 'Invoice Headers' dan 'Invoice Lines'")

    headers = []
    for number, values in _rows(header_sheet):
        headers.append(
            {
                "row": number,
                "key": _text(_cell(values, 0)),
                "company_name": _text(_cell(values, 1)),
                "invoice_date": _cell(values, 3),
            }
        )

    lines = defaultdict(list)
    for number, values in _rows(line_sheet):
        lines[_text(_cell(values, 0))].append(
            {
                "row": number,
                "baris": _cell(values, 1),
                "tka_name": _text(_cell(values, 2)),
                "job_name": _text(_cell(values, 3)),
                "job_description": _text(_cell(values, 4)),
                "price": _cell(values, 5),
                "quantity": _cell(values, 6),
            }
        )
    return headers, lines


def _import_invoice_lines(invoice: Invoice, company, rows: list[dict], errors: list[str]) -> None:
    label = invoice.invoice_number
    order_in_row: dict[int, int] = defaultdict(int)

    for data in rows:
        worker = find_worker_by_name(data["tka_name"])
        if worker is None:
            errors.append(f"Invoice {label}: TKA '{data['tka_name']}' tidak ditemukan")
            continue

        baris = _int(data["baris"], default=1)
        if baris <= 0:
            errors.append(f"Invoice {label}: baris {baris} tidak valid (row {data['row']})")
            continue
        quantity = max(1, _int(data["quantity"], default=1))
        # blank price: use the catalogue price
        price = None if data["price"] in (None, "") else money(to_decimal(data["price"]))
        if price is not None and price < 0:
            errors.append(f"Invoice {label}: harga negatif (row {data['row']})")
            continue

        job = find_job(company.id, data["job_name"])
        if job is None:
            job = create_job(
                company.id,
                data["job_name"],
                data["job_description"] or data["job_name"],
                price or 0,
                commit=False,
            )

        order_in_row[baris] += 1
        line = InvoiceLine(
            invoice=invoice,
            worker=worker,
            job=job,
            baris=baris,
            line_order=order_in_row[baris],
            quantity=quantity,
            custom_price=price if price is not None and price != money(job.price) else None,
        )
        db.session.add(line)
        line.recalc()


def import_invoices(source, filename: str | None = None, created_by: int | None = None) -> ImportResult:
    workbook = _open(source)
    try:
        headers, lines_by_key = _read_invoice_sheets(workbook)
    finally:
        workbook.close()

    result = ImportResult(batch_id=uuid.uuid4().hex[:8])

    for header in headers:
        result.processed += 1
        key = header["key"]
        label = key or f"row {header['row']}"

        company = find_company_by_name(header["company_name"])
        if company is None:
            result.errors.append(f"Invoice {label}: Company '{header['company_name']}' tidak ditemukan")
            continue

        try:
            invoice = create_invoice(
                company_id=company.id,
                invoice_date=_date(header["invoice_date"]),
                created_by=created_by,
                invoice_number=key if is_valid_invoice_number(key) else None,
                imported_from=filename,
                import_batch_id=result.batch_id,
                commit=False,
            )
            _import_invoice_lines(invoice, company, lines_by_key.get(key, []), result.errors)
            invoice.recalc_totals()
            db.session.commit()
            result.success += 1
        except InvoiceAppError as exc:
            db.session.rollback()
            result.errors.append(f"Invoice {label}: {exc}")

    if result.success:
        cache = get_query_cache()
        cache.invalidate_prefix(INVOICE_CACHE_PREFIX)
        cache.invalidate_prefix(COMPANY_CACHE_PREFIX)
    logger.info("Invoice import %s: %s", result.batch_id, result.message)
    return result
