from decimal import Decimal

import pytest

from tka_invoice import invoicing
from tka_invoice.errors import DuplicateRecord, InvalidArgument
from tka_invoice.extensions import db
from tka_invoice.models import ROLE_ADMIN
from tka_invoice.seed import create_admin_user, seed_default_settings
from tka_invoice.settings_store import (
    DEFAULT_SETTINGS,
    deactivate_bank_account,
    default_bank_account,
    get_setting,
    letterhead,
    list_bank_accounts,
    save_bank_account,
    set_setting,
)


def test_defaults_are_typed(ctx):
    assert get_setting("default_vat_percentage") == Decimal("11.00")
    assert get_setting("default_page_size") == 50
    assert get_setting("show_bank_last_page_only") is True
    assert get_setting("default_bank_id") is None
    assert get_setting("no_such_key", "fallback") == "fallback"


def test_set_setting_round_trips_types(ctx):
    set_setting("default_page_size", 25)
    set_setting("show_bank_last_page_only", False)
    set_setting("company_name", "  PT Contoh  ")
    db.session.commit()

    assert get_setting("default_page_size") == 25
    assert get_setting("show_bank_last_page_only") is False
    assert letterhead().company_name == "PT Contoh"


def test_set_setting_validation(ctx):
    with pytest.raises(InvalidArgument):
        set_setting("default_page_size", "banyak")
    with pytest.raises(InvalidArgument):
        set_setting("default_vat_percentage", "101")
    with pytest.raises(InvalidArgument):
        set_setting("invoice_number_prefix", "fsn-01")


def test_seed_is_idempotent_and_system_keys_are_read_only(ctx):
    assert seed_default_settings() == len(DEFAULT_SETTINGS)
    assert seed_default_settings() == 0

    with pytest.raises(InvalidArgument):
        set_setting("database_version", "9.9.9")


def test_single_default_bank(ctx):
    bca = save_bank_account("BCA", "1234567890", "PT Fortuna", is_default=True)
    mandiri = save_bank_account("Mandiri", "0987654321", "PT Fortuna", is_default=True, sort_order=2)

    assert default_bank_account().id == mandiri.id
    assert [b.is_default for b in list_bank_accounts()] == [False, True]
    assert mandiri.invoice_lines() == ["Mandiri", "No. Rekening: 0987654321", "A/n: PT Fortuna"]

    deactivate_bank_account(mandiri.id)
    assert default_bank_account() is None
    assert [b.id for b in list_bank_accounts()] == [bca.id]

    with pytest.raises(InvalidArgument):
        save_bank_account("BCA", "123", "PT Fortuna")


def test_new_invoices_use_the_default_bank(catalogue):
    bank = save_bank_account("BNI", "5556667778", "PT Fortuna", is_default=True)
    invoice = invoicing.create_invoice(catalogue["company"])
    assert invoice.bank_account_id == bank.id


def test_create_admin_user(ctx):
    user = create_admin_user("owner", "rahasia123", "Pemilik")
    assert user.role == ROLE_ADMIN
    assert user.check_password("rahasia123")

    with pytest.raises(DuplicateRecord):
        create_admin_user("owner", "rahasia123")
    with pytest.raises(InvalidArgument):
        create_admin_user("owner2", "")
    with pytest.raises(InvalidArgument):
        create_admin_user("owner3", "abcdef")
