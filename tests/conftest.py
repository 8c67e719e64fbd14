import importlib

import pytest
from starlette.testclient import TestClient
from sqlmodel import Session
from typer.testing import CliRunner

from iamaas.api.utils import get_identity_provider, get_notifier
from iamaas.config import Settings, get_settings
from iamaas.db import create_db_engine, get_session, init_db
from iamaas.main import app
from iamaas.models import UserCreate
from iamaas.services import users as user_service
from tests.fakes import KEYCLOAK_TEST_URL, FakeIdentityProvider, FakeNotifier


@pytest.fixture
def db_session():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def customer(db_session):
    return user_service.create_user(db_session, UserCreate(email="u1@example.com", balance=100))


@pytest.fixture
def client(db_session, identity_provider, notifier):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_session] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: Settings(keycloak_base_url=KEYCLOAK_TEST_URL)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture()
def cli_runner(tmp_path, monkeypatch, identity_provider, notifier):
    # Use a temporary file-based SQLite DB for isolation
    db_path = tmp_path / "test_cli.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    import iamaas.db as db

    importlib.reload(db)
    init_db(db.engine)

    import iamaas.cli as cli

    importlib.reload(cli)
    monkeypatch.setattr(cli, "identity_provider", identity_provider)
    monkeypatch.setattr(cli, "notifier", notifier)
    monkeypatch.setattr(cli, "settings", Settings(keycloak_base_url=KEYCLOAK_TEST_URL))

    return CliRunner(), cli
