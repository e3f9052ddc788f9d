from datetime import date

import pytest

from tka_invoice import invoicing
from tka_invoice.documents import build_batch_pdf, build_document, build_invoice_pdf, format_invoice_date
from tka_invoice.errors import InvalidArgument
from tka_invoice.settings_store import save_bank_account


@pytest.fixture
def invoice_id(catalogue):
    invoice = invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 1, 15), notes="Termin Januari")
    invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"], baris=1)
    invoicing.add_line(invoice.id, catalogue["li"], catalogue["kitas"], baris=1)
    invoicing.add_line(invoice.id, catalogue["wang"], catalogue["report"], baris=2)
    return invoice.id


def test_format_invoice_date():
    assert format_invoice_date(date(2024, 1, 5)) == "05 Januari 2024"
    assert format_invoice_date(date(2023, 12, 31)) == "31 Desember 2023"


def test_document_groups_rows_and_formats_amounts(invoice_id):
    doc = build_document(invoicing.get_invoice(invoice_id))

    assert doc.invoice_number == "FSN/24/01/001"
    assert doc.date_line == "Tanggal: Jakarta, 15 Januari 2024"
    assert doc.company_name == "PT Maju Jaya"
    assert doc.company_address == "Jl. Sudirman No. 1\nJakarta"

    first, second = doc.rows
    assert first.number == 1
    assert first.workers == ["Zhang Wei", "Li Na"]
    assert first.descriptions == ["Visa Kerja", "Pengurusan visa kerja (C312)", "KITAS", "Izin tinggal terbatas"]
    assert first.amount == "Rp 350.001"
    assert (second.number, second.workers, second.amount) == (2, ["Wang Fang"], "Rp 50.000")

    assert doc.subtotal == "Rp 400.001"
    assert doc.vat_label == "PPN (11%):"
    assert doc.vat_amount == "Rp 44.000"
    assert doc.total == "Rp 444.001"
    assert doc.words == "Empat Ratus Empat Puluh Empat Ribu Satu Rupiah"
    assert doc.notes == "Termin Januari"
    assert doc.bank_lines == []
    assert doc.status == "Draft"


def test_document_bank_block(catalogue):
    save_bank_account("BCA", "1234567890", "PT Fortuna Sada Nioga", is_default=True)
    invoice = invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 1, 15))

    doc = build_document(invoicing.get_invoice(invoice.id))

    assert doc.rows == []
    assert doc.total == "Rp 0"
    assert doc.words == "Nol Rupiah"
    assert doc.bank_lines == ["BCA", "No. Rekening: 1234567890", "A/n: PT Fortuna Sada Nioga"]


def test_invoice_pdf(invoice_id):
    data = build_invoice_pdf(invoicing.get_invoice(invoice_id))
    assert data.startswith(b"%PDF")


def test_batch_pdf(invoice_id, catalogue):
    other = invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 1, 20))
    data = build_batch_pdf([invoicing.get_invoice(invoice_id), invoicing.get_invoice(other.id)])
    assert data.startswith(b"%PDF")


def test_empty_batch_is_rejected(ctx):
    with pytest.raises(InvalidArgument):
        build_batch_pdf([])
