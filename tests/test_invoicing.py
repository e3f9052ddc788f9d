from datetime import date
from decimal import Decimal

import pytest

from tka_invoice import companies, invoicing
from tka_invoice.errors import DuplicateRecord, InvalidArgument, InvalidStateTransition, NotFound
from tka_invoice.extensions import db
from tka_invoice.models import STATUS_CANCELLED, STATUS_DRAFT, STATUS_FINALIZED, STATUS_PAID, Invoice, InvoiceLine
from tka_invoice.settings_store import set_setting
from tka_invoice.terbilang import to_invoice_words

INVOICE_DATE = date(2024, 1, 15)


def _draft(ids, **kwargs):
    return invoicing.create_invoice(ids["company"], invoice_date=INVOICE_DATE, **kwargs)


def _full_invoice(ids) -> int:
    """Two rows: Zhang (visa) + Li (KITAS) on row 1, Wang (lapor diri) on row 2."""
    invoice = _draft(ids)
    invoicing.add_line(invoice.id, ids["zhang"], ids["visa"], baris=1)
    invoicing.add_line(invoice.id, ids["li"], ids["kitas"], baris=1)
    invoicing.add_line(invoice.id, ids["wang"], ids["report"], baris=2)
    return invoice.id


def _other_company():
    return companies.create_company(
        company_name="CV Sentosa",
        npwp="02.345.678.9-012.000",
        idtku="9876543210",
        address="Surabaya",
    )


# ---------------------------------------------------------------------
# Creation and numbering
# ---------------------------------------------------------------------
def test_create_invoice_issues_monthly_numbers(catalogue):
    first = _draft(catalogue)
    second = _draft(catalogue)
    february = invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 2, 1))

    assert first.invoice_number == "FSN/24/01/001"
    assert second.invoice_number == "FSN/24/01/002"
    assert february.invoice_number == "FSN/24/02/001"
    assert first.status == STATUS_DRAFT
    assert first.vat_percentage == Decimal("11.00")
    assert first.total_amount == Decimal("0")


def test_preview_does_not_consume_a_number(catalogue):
    assert invoicing.preview_next_number(INVOICE_DATE) == "FSN/24/01/001"
    assert invoicing.preview_next_number(INVOICE_DATE) == "FSN/24/01/001"
    assert _draft(catalogue).invoice_number == "FSN/24/01/001"
    assert invoicing.preview_next_number(INVOICE_DATE) == "FSN/24/01/002"


def test_configured_prefix_and_vat_are_used(catalogue):
    set_setting("invoice_number_prefix", "TKA")
    set_setting("default_vat_percentage", "12")
    db.session.commit()

    invoice = _draft(catalogue)

    assert invoice.invoice_number == "TKA/24/01/001"
    assert invoice.vat_percentage == Decimal("12.00")


def test_explicit_invoice_number(catalogue):
    invoice = _draft(catalogue, invoice_number="FSN/24/01/050")
    assert invoice.invoice_number == "FSN/24/01/050"

    with pytest.raises(DuplicateRecord):
        _draft(catalogue, invoice_number="FSN/24/01/050")
    with pytest.raises(InvalidArgument):
        _draft(catalogue, invoice_number="INV-001")
    with pytest.raises(InvalidArgument):
        _draft(catalogue, invoice_number="FSN/24/01/00051")


def test_create_invoice_rejects_bad_input(catalogue):
    with pytest.raises(InvalidArgument):
        _draft(catalogue, vat_percentage="120")
    with pytest.raises(NotFound):
        invoicing.create_invoice(9999, invoice_date=INVOICE_DATE)

    other = _other_company()
    companies.deactivate_company(other.id)
    with pytest.raises(InvalidArgument):
        invoicing.create_invoice(other.id, invoice_date=INVOICE_DATE)


# ---------------------------------------------------------------------
# Lines and totals
# ---------------------------------------------------------------------
def test_totals_and_words_for_a_full_invoice(catalogue):
    invoice = invoicing.get_invoice(_full_invoice(catalogue))

    # 100000 + 250000.50 + 50000 = 400000.50 -> 400001
    assert invoice.subtotal == Decimal("400001")
    # 11% of 400001 = 44000.11 -> 44000
    assert invoice.vat_amount == Decimal("44000")
    assert invoice.total_amount == Decimal("444001")
    assert to_invoice_words(invoice.total_amount) == "Empat Ratus Empat Puluh Empat Ribu Satu Rupiah"

    assert [(line.baris, line.line_order) for line in invoice.lines] == [(1, 1), (1, 2), (2, 1)]


def test_add_line_defaults_to_a_new_row(catalogue):
    invoice = _draft(catalogue)
    first = invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"])
    second = invoicing.add_line(invoice.id, catalogue["li"], catalogue["visa"])

    assert (first.baris, first.line_order) == (1, 1)
    assert (second.baris, second.line_order) == (2, 1)


def test_custom_price_and_quantity(catalogue):
    invoice = _draft(catalogue)
    line = invoicing.add_line(
        invoice.id,
        catalogue["zhang"],
        catalogue["visa"],
        quantity=2,
        custom_price="75000",
        custom_job_name="Visa Kerja (Express)",
    )

    assert line.unit_price == Decimal("75000")
    assert line.line_total == Decimal("150000")
    assert line.job_name == "Visa Kerja (Express)"
    assert invoicing.get_invoice(invoice.id).subtotal == Decimal("150000")


def test_line_validation(catalogue):
    invoice = _draft(catalogue)
    other = _other_company()
    foreign_job = companies.create_job(other.id, "Visa Kerja", "Visa", Decimal("90000"))

    with pytest.raises(InvalidArgument):
        invoicing.add_line(invoice.id, catalogue["zhang"], foreign_job.id)
    with pytest.raises(InvalidArgument):
        invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"], quantity=0)
    with pytest.raises(InvalidArgument):
        invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"], custom_price="-1")
    with pytest.raises(NotFound):
        invoicing.add_line(invoice.id, 9999, catalogue["visa"])


def test_update_and_delete_line_recalculate_totals(catalogue):
    invoice_id = _full_invoice(catalogue)
    visa_line = invoicing.get_invoice(invoice_id).lines[0]

    invoicing.update_line(visa_line.id, quantity=3)
    assert invoicing.get_invoice(invoice_id).subtotal == Decimal("600001")

    with pytest.raises(InvalidArgument):
        invoicing.update_line(visa_line.id, colour="red")

    invoicing.delete_line(visa_line.id)
    invoice = invoicing.get_invoice(invoice_id)
    assert len(invoice.lines) == 2
    assert invoice.subtotal == Decimal("300001")


def test_duplicate_and_reorder_lines(catalogue):
    invoice_id = _full_invoice(catalogue)
    lines = invoicing.get_invoice(invoice_id).lines
    wang_line = lines[2]

    copy = invoicing.duplicate_line(wang_line.id)
    assert (copy.baris, copy.line_order) == (2, 2)

    invoicing.reorder_lines(invoice_id, [(wang_line.id, 1, 1), (lines[0].id, 2, 1)])
    reordered = invoicing.get_invoice(invoice_id).lines
    assert reordered[0].id == wang_line.id
    assert invoicing.get_invoice(invoice_id).subtotal == Decimal("450001")


def test_company_cannot_change_while_lines_exist(catalogue):
    invoice_id = _full_invoice(catalogue)
    other = _other_company()

    with pytest.raises(InvalidArgument):
        invoicing.update_invoice(invoice_id, company_id=other.id)

    updated = invoicing.update_invoice(invoice_id, vat_percentage="0", notes="  Termin 1  ")
    assert updated.total_amount == Decimal("400001")
    assert updated.notes == "Termin 1"


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------
def test_finalize_requires_lines(catalogue):
    invoice = _draft(catalogue)
    with pytest.raises(InvalidStateTransition):
        invoicing.finalize_invoice(invoice.id)


def test_status_lifecycle(catalogue):
    invoice_id = _full_invoice(catalogue)

    with pytest.raises(InvalidStateTransition):
        invoicing.mark_paid(invoice_id)

    assert invoicing.finalize_invoice(invoice_id).status == STATUS_FINALIZED

    with pytest.raises(InvalidStateTransition):
        invoicing.add_line(invoice_id, catalogue["zhang"], catalogue["visa"])
    with pytest.raises(InvalidStateTransition):
        invoicing.update_invoice(invoice_id, notes="late change")
    with pytest.raises(InvalidStateTransition):
        invoicing.finalize_invoice(invoice_id)

    assert invoicing.mark_paid(invoice_id).status == STATUS_PAID
    with pytest.raises(InvalidStateTransition):
        invoicing.cancel_invoice(invoice_id)


def test_cancel_is_terminal(catalogue):
    invoice = _draft(catalogue)
    assert invoicing.cancel_invoice(invoice.id).status == STATUS_CANCELLED

    with pytest.raises(InvalidStateTransition):
        invoicing.cancel_invoice(invoice.id)
    with pytest.raises(InvalidStateTransition):
        invoicing.finalize_invoice(invoice.id)


def test_bulk_update_status_skips_invalid_transitions(catalogue):
    ready = [_full_invoice(catalogue), _full_invoice(catalogue)]
    empty = _draft(catalogue).id

    assert invoicing.bulk_update_status(ready + [empty, 9999], STATUS_FINALIZED) == 2
    assert invoicing.get_invoice(empty).status == STATUS_DRAFT

    with pytest.raises(InvalidArgument):
        invoicing.bulk_update_status(ready, "archived")


def test_delete_finalized_invoice_needs_force(catalogue):
    invoice_id = _full_invoice(catalogue)
    invoicing.finalize_invoice(invoice_id)

    with pytest.raises(InvalidStateTransition):
        invoicing.delete_invoice(invoice_id)

    invoicing.delete_invoice(invoice_id, force=True)
    with pytest.raises(NotFound):
        invoicing.get_invoice(invoice_id)


def test_clone_copies_lines_under_a_new_number(catalogue):
    source_id = _full_invoice(catalogue)
    invoicing.finalize_invoice(source_id)
    source = invoicing.get_invoice(source_id)

    clone = invoicing.clone_invoice(source_id)

    assert clone.id != source.id
    assert clone.invoice_number != source.invoice_number
    assert clone.invoice_date == date.today()
    assert clone.status == STATUS_DRAFT
    assert len(clone.lines) == 3
    assert clone.total_amount == source.total_amount


def test_lines_are_saved_for_the_invoice_and_its_clone(catalogue):
    source_id = _full_invoice(catalogue)
    clone_id = invoicing.clone_invoice(source_id).id
    db.session.remove()

    assert InvoiceLine.query.filter_by(invoice_id=source_id).count() == 3
    assert InvoiceLine.query.filter_by(invoice_id=clone_id).count() == 3
    assert InvoiceLine.query.count() == 6

    for invoice_id in (source_id, clone_id):
        invoice = db.session.get(Invoice, invoice_id)
        assert (invoice.subtotal, invoice.vat_amount, invoice.total_amount) == (
            Decimal("400001"),
            Decimal("44000"),
            Decimal("444001"),
        )


def test_record_print_only_for_finalized(catalogue):
    invoice_id = _full_invoice(catalogue)

    with pytest.raises(InvalidStateTransition):
        invoicing.record_print(invoice_id)

    invoicing.finalize_invoice(invoice_id)
    invoicing.record_print(invoice_id)
    invoice = invoicing.record_print(invoice_id)

    assert invoice.printed_count == 2
    assert invoice.last_printed_at is not None


# ---------------------------------------------------------------------
# Queries and statistics
# ---------------------------------------------------------------------
def test_list_invoices_filters(catalogue):
    january = _full_invoice(catalogue)
    invoicing.create_invoice(catalogue["company"], invoice_date=date(2024, 2, 1))
    invoicing.finalize_invoice(january)

    items, total = invoicing.list_invoices(status=STATUS_FINALIZED)
    assert total == 1 and items[0].id == january

    items, total = invoicing.list_invoices(date_from=date(2024, 2, 1))
    assert total == 1 and items[0].invoice_number == "FSN/24/02/001"

    _items, total = invoicing.list_invoices(search="maju")
    assert total == 2

    items, total = invoicing.list_invoices(page=2, per_page=1)
    assert total == 2 and len(items) == 1
    assert items[0].id == january

    assert invoicing.get_invoice_by_number("FSN/24/01/001").id == january
    assert len(invoicing.all_invoices(company_id=catalogue["company"])) == 2


def test_stats_exclude_cancelled_invoices(catalogue):
    assert invoicing.invoice_stats()["total_invoices"] == 0

    paid = _full_invoice(catalogue)
    invoicing.finalize_invoice(paid)
    invoicing.mark_paid(paid)

    cancelled = _draft(catalogue)
    invoicing.add_line(cancelled.id, catalogue["zhang"], catalogue["visa"])
    invoicing.cancel_invoice(cancelled.id)

    stats = invoicing.invoice_stats()

    assert stats["total_invoices"] == 2
    assert stats["counts"][STATUS_PAID] == 1
    assert stats["counts"][STATUS_CANCELLED] == 1
    assert stats["total_revenue"] == Decimal("444001")
    assert stats["paid_revenue"] == Decimal("444001")
    assert stats["average_invoice"] == Decimal("444001.00")
    assert stats["monthly"] == [{"month": "2024-01", "count": 1, "total": Decimal("444001")}]

    assert companies.company_stats(catalogue["company"])["total_revenue"] == Decimal("444001")
