from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from tka_invoice import companies, excel, invoicing, workers
from tka_invoice.errors import InvalidArgument
from tka_invoice.extensions import db
from tka_invoice.models import InvoiceLine


def _xlsx(sheets: dict) -> bytes:
    """Build an upload: {sheet title: [header row, data rows...]}."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


def _read(result) -> dict:
    workbook = load_workbook(BytesIO(result.content))
    return {sheet.title: [list(row) for row in sheet.iter_rows(values_only=True)] for sheet in workbook.worksheets}


# ---------------------------------------------------------------------
# Templates and exports
# ---------------------------------------------------------------------
def test_templates_have_instructions():
    for result in (excel.worker_template(), excel.invoice_template(), excel.job_price_template()):
        sheets = _read(result)
        assert "Instruksi" in sheets
        assert result.filename.endswith(".xlsx")
        assert result.mimetype == excel.XLSX_MIMETYPE

    sheets = _read(excel.invoice_template())
    assert sheets["Invoice Headers"][0] == excel.INVOICE_HEADER_COLUMNS
    assert sheets["Invoice Lines"][0] == excel.INVOICE_LINE_COLUMNS


def test_worker_template_imports_cleanly(ctx):
    result = excel.import_workers(excel.worker_template().content)

    assert (result.success, result.error_count) == (2, 0)
    assert [w.nama for w in workers.search_workers()] == ["Jane Smith", "John Doe"]


def test_export_workers_with_family(catalogue):
    workers.add_family_member(catalogue["zhang"], "Zhang Min", "F0000001", "spouse")

    result = excel.export_workers(workers.search_workers(), include_family=True)
    sheets = _read(result)

    assert result.rows == 3
    assert sheets["TKA Workers"][0][:4] == excel.WORKER_COLUMNS
    assert [row[1] for row in sheets["TKA Workers"][1:]] == ["E87654321", "G1234567", "E12345678"]
    assert sheets["Family Members"][1][:4] == ["Zhang Wei", "E12345678", "Zhang Min", "F0000001"]


def test_export_invoices(catalogue):
    invoice = invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 1, 15))
    invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"])
    invoicing.add_line(invoice.id, catalogue["li"], catalogue["kitas"], baris=1)

    result = excel.export_invoices(invoicing.all_invoices())
    sheets = _read(result)

    header = sheets["Invoice Headers"][1]
    assert result.rows == 1
    assert header[0] == "FSN/24/01/001"
    assert header[1] == "PT Maju Jaya"
    assert header[7] == 388501
    assert [row[2] for row in sheets["Invoice Lines"][1:]] == ["Zhang Wei", "Li Na"]


# ---------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------
def test_import_job_prices_updates_and_creates(catalogue):
    company = companies.get_company(catalogue["company"])
    assert excel.import_job_prices(excel.job_price_template(company).content).success == 3

    upload = _xlsx(
        {
            "Daftar Harga": [
                excel.JOB_PRICE_COLUMNS,
                ["PT Maju Jaya", "Visa Kerja", "Visa C312", 125000, 1],
                ["PT Maju Jaya", "Medical Check", None, 300000, None],
                ["PT Tidak Ada", "Visa Kerja", "Visa", 1, 1],
            ]
        }
    )
    result = excel.import_job_prices(upload)

    assert (result.processed, result.success, result.error_count) == (3, 2, 1)
    assert companies.get_job(catalogue["visa"]).price == Decimal("125000.00")
    medical = companies.find_job(catalogue["company"], "Medical Check")
    assert medical.job_description == "Medical Check"
    assert medical.price == Decimal("300000.00")


def test_import_invoices(catalogue):
    upload = _xlsx(
        {
            "Invoice Headers": [
                excel.INVOICE_HEADER_COLUMNS,
                ["1", "PT Maju Jaya", "", "2024-03-05"],
                ["FSN/24/03/077", "PT Maju Jaya", "", date(2024, 3, 6)],
                ["2", "PT Tidak Ada", "", "2024-03-05"],
            ],
            "Invoice Lines": [
                excel.INVOICE_LINE_COLUMNS,
                ["1", 1, "Zhang Wei", "Visa Kerja", "", None, 1],
                ["1", 1, "li na", "Medical Check", "Cek kesehatan", 300000, 2],
                ["1", 2, "Nobody", "Visa Kerja", "", None, 1],
                ["FSN/24/03/077", 1, "Wang Fang", "KITAS", "", 250000.5, 1],
            ],
        }
    )

    result = excel.import_invoices(upload, filename="maret.xlsx")

    assert (result.processed, result.success, result.error_count) == (3, 2, 2)
    assert result.batch_id

    first = invoicing.get_invoice_by_number("FSN/24/03/001")
    assert first.imported_from == "maret.xlsx"
    assert first.import_batch_id == result.batch_id
    assert [line.worker_name for line in first.lines] == ["Zhang Wei", "Li Na"]
    assert first.subtotal == Decimal("700000")
    assert first.total_amount == Decimal("777000")
    assert companies.find_job(catalogue["company"], "Medical Check").price == Decimal("300000.00")

    kept = invoicing.get_invoice_by_number("FSN/24/03/077")
    assert kept.invoice_date == date(2024, 3, 6)
    assert kept.lines[0].custom_price is None
    assert kept.total_amount == Decimal("277501")

    db.session.remove()
    assert InvoiceLine.query.count() == 3


def test_unreadable_files_are_rejected(ctx):
    with pytest.raises(InvalidArgument):
        excel.import_workers(b"not an excel file")
    with pytest.raises(InvalidArgument):
        excel.import_invoices(_xlsx({"Sheet": [["a"]]}))
