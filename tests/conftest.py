"""
Shared fixtures.

Service tests use `ctx` (an app context held for the whole test). Route
tests use `client` and must not hold an app context themselves: Flask-Login
caches the current user on `g`, which would then leak between requests.
The in-memory database survives between contexts (single static connection).
"""

from decimal import Decimal

import pytest

from tka_invoice import create_app
from tka_invoice import companies, workers
from tka_invoice.extensions import db
from tka_invoice.models import ROLE_ADMIN, ROLE_VIEWER, User

PASSWORD = "rahasia123"


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def _create_user(username: str, role: str) -> int:
    user = User(username=username, full_name=username.title(), role=role, is_active=True)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def admin_id(app):
    with app.app_context():
        return _create_user("admin", ROLE_ADMIN)


@pytest.fixture
def viewer_id(app):
    with app.app_context():
        return _create_user("viewer", ROLE_VIEWER)


def login(client, username: str, password: str = PASSWORD):
    return client.post("/auth/login", data={"username": username, "password": password})


@pytest.fixture
def admin_client(client, admin_id):
    login(client, "admin")
    return client


@pytest.fixture
def viewer_client(client, viewer_id):
    login(client, "viewer")
    return client


def build_catalogue():
    """One company with three jobs and three workers. Returns a dict of ids."""
    company = companies.create_company(
        company_name="PT Maju Jaya",
        npwp="01.234.567.8-901.000",
        idtku="0123456789012345",
        address="Jl. Sudirman No. 1\nJakarta",
    )
    visa = companies.create_job(company.id, "Visa Kerja", "Pengurusan visa kerja (C312)", Decimal("100000"))
    kitas = companies.create_job(company.id, "KITAS", "Izin tinggal terbatas", Decimal("250000.50"))
    report = companies.create_job(company.id, "Lapor Diri", "Lapor diri ke kantor imigrasi", Decimal("50000"))

    zhang = workers.create_worker("Zhang Wei", "E12345678", "Engineering")
    li = workers.create_worker("Li Na", "E87654321", "Finance", "Perempuan")
    wang = workers.create_worker("Wang Fang", "G1234567", "Engineering")

    return {
        "company": company.id,
        "visa": visa.id,
        "kitas": kitas.id,
        "report": report.id,
        "zhang": zhang.id,
        "li": li.id,
        "wang": wang.id,
    }


@pytest.fixture
def catalogue(ctx):
    return build_catalogue()


@pytest.fixture
def app_catalogue(app):
    """Same data for route tests (created in a short-lived context)."""
    with app.app_context():
        return build_catalogue()
