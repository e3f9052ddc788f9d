from decimal import Decimal

import pytest

from tka_invoice import companies, invoicing
from tka_invoice.errors import DuplicateRecord, InvalidArgument, NotFound
from tka_invoice.models import AuditLog


def test_create_company_strips_input(ctx):
    company = companies.create_company(
        company_name="  PT Baru  ",
        npwp="03.111.222.3-444.000",
        idtku="123",
        address=" Bandung ",
    )

    assert company.company_name == "PT Baru"
    assert company.address == "Bandung"
    assert company.is_active
    assert AuditLog.query.filter_by(entity_type="Company", action="CREATE").count() == 1


def test_duplicate_name_or_npwp_rejected(catalogue):
    with pytest.raises(DuplicateRecord):
        companies.create_company("pt maju jaya", "09.999.999.9-999.000", "1", "Jakarta")
    with pytest.raises(DuplicateRecord):
        companies.create_company("PT Lain", "01.234.567.8-901.000", "1", "Jakarta")


def test_invalid_company_rejected(ctx):
    with pytest.raises(InvalidArgument):
        companies.create_company("", "01.234.567.8-901.000", "1", "Jakarta")
    with pytest.raises(InvalidArgument):
        companies.create_company("PT X", "abc", "1", "Jakarta")


def test_update_company_keeps_own_npwp(catalogue):
    company = companies.update_company(
        catalogue["company"],
        company_name="PT Maju Jaya Abadi",
        npwp="01.234.567.8-901.000",
        idtku="0123456789012345",
        address="Jakarta",
    )
    assert company.company_name == "PT Maju Jaya Abadi"


def test_search_and_find(catalogue):
    assert [c.id for c in companies.search_companies("maju")] == [catalogue["company"]]
    assert [c.id for c in companies.search_companies("01.234")] == [catalogue["company"]]
    assert companies.search_companies("tidak ada") == []
    assert companies.find_company_by_name("PT MAJU JAYA").id == catalogue["company"]
    assert companies.find_company_by_name("") is None


def test_deactivate_and_restore(catalogue):
    company = companies.deactivate_company(catalogue["company"])

    assert not company.is_active
    assert companies.jobs_for_company(company.id) == []
    assert companies.list_companies() == []
    assert len(companies.list_companies(include_inactive=True)) == 1

    companies.restore_company(company.id)
    assert len(companies.jobs_for_company(company.id)) == 3


def test_deactivate_refused_with_invoices(catalogue):
    invoicing.create_invoice(catalogue["company"])
    with pytest.raises(InvalidArgument):
        companies.deactivate_company(catalogue["company"])


def test_jobs_are_ordered_and_reorderable(catalogue):
    names = [job.job_name for job in companies.jobs_for_company(catalogue["company"])]
    assert names == ["Visa Kerja", "KITAS", "Lapor Diri"]

    companies.reorder_jobs(catalogue["company"], [catalogue["report"], catalogue["visa"], catalogue["kitas"]])
    names = [job.job_name for job in companies.jobs_for_company(catalogue["company"])]
    assert names == ["Lapor Diri", "Visa Kerja", "KITAS"]

    with pytest.raises(NotFound):
        companies.reorder_jobs(catalogue["company"], [9999])


def test_job_price_validation(catalogue):
    with pytest.raises(InvalidArgument):
        companies.create_job(catalogue["company"], "Denda", "Denda keterlambatan", "-5")

    job = companies.update_job(catalogue["visa"], "Visa Kerja", "Visa C312", "125000")
    assert job.price == Decimal("125000.00")
    assert companies.find_job(catalogue["company"], "visa kerja").id == job.id


def test_delete_job_hard_deletes_unused_and_deactivates_used(catalogue):
    invoice = invoicing.create_invoice(catalogue["company"])
    invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"])

    assert companies.delete_job(catalogue["report"]) is True
    with pytest.raises(NotFound):
        companies.get_job(catalogue["report"])

    assert companies.delete_job(catalogue["visa"]) is False
    assert companies.get_job(catalogue["visa"]).is_active is False


def test_job_price_change_keeps_existing_lines(catalogue):
    invoice = invoicing.create_invoice(catalogue["company"])
    line = invoicing.add_line(invoice.id, catalogue["zhang"], catalogue["visa"])

    companies.update_job(catalogue["visa"], "Visa Kerja", "Visa C312", "150000")

    assert invoicing.get_invoice(invoice.id).lines[0].id == line.id
    assert invoicing.get_invoice(invoice.id).lines[0].unit_price == Decimal("100000")


def test_company_stats_are_cached_until_a_change(catalogue):
    stats = companies.company_stats(catalogue["company"])
    assert stats == {
        "invoice_count": 0,
        "total_revenue": Decimal("0"),
        "paid_revenue": Decimal("0"),
        "active_jobs": 3,
    }
    assert companies.company_stats(catalogue["company"]) is stats

    companies.delete_job(catalogue["report"])
    assert companies.company_stats(catalogue["company"])["active_jobs"] == 2
