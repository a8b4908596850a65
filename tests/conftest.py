from __future__ import annotations

import pytest

from costsheets import create_app
from costsheets.extensions import db
from costsheets.models import Client, Role, Supplier, User, UserRole
from costsheets.security import actor_for

PASSWORD = "secret123"


def make_user(email: str, role: Role | None) -> User:
    user = User(email=email, is_active=True)
    user.set_password(PASSWORD)
    if role is not None:
        user.role_entry = UserRole(email=email, role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def app():
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def ctx(app):
    """App context for tests that call the service layer directly."""
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------
# Service-layer fixtures (need ctx)
# ---------------------------------------------------------------------
@pytest.fixture()
def estimator_user(ctx):
    return make_user("estimator@example.com", Role.ESTIMATOR)


@pytest.fixture()
def admin_user(ctx):
    return make_user("admin@example.com", Role.ADMIN)


@pytest.fixture()
def estimator(estimator_user):
    return actor_for(estimator_user)


@pytest.fixture()
def admin(admin_user):
    return actor_for(admin_user)


@pytest.fixture()
def acme(ctx, estimator_user):
    client = Client(name="Acme Trading", created_by=estimator_user.id)
    db.session.add(client)
    db.session.commit()
    return client


@pytest.fixture()
def supplier(acme):
    supplier = Supplier(client_id=acme.id, name="Gulf Supplies")
    db.session.add(supplier)
    db.session.commit()
    return supplier


@pytest.fixture()
def misc_supplier(acme):
    supplier = Supplier(client_id=acme.id, name="Freight Co")
    db.session.add(supplier)
    db.session.commit()
    return supplier


# ---------------------------------------------------------------------
# HTTP fixtures (no app context held open across requests)
# ---------------------------------------------------------------------
@pytest.fixture()
def api_users(app):
    with app.app_context():
        make_user("estimator@example.com", Role.ESTIMATOR)
        make_user("admin@example.com", Role.ADMIN)
        make_user("norole@example.com", None)
        db.session.remove()
    return {
        "estimator": "estimator@example.com",
        "admin": "admin@example.com",
        "norole": "norole@example.com",
    }


@pytest.fixture()
def login(client):
    def _login(email: str, password: str = PASSWORD):
        client.post("/auth/logout")
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture()
def user_factory(ctx):
    return make_user
