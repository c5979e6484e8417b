import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import importlib
import zipfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session
from starlette.testclient import TestClient
from typer.testing import CliRunner

from knative_deployer.config import RegistryCredentials, Settings
from knative_deployer.db import init_db
from tests.provisioner_utils import FakeProvisioner

REGISTRY_ENV = {
    "KNATIVE_DEPLOYER_REGISTRY_USERNAME": "octocat",
    "KNATIVE_DEPLOYER_REGISTRY_AUTH": "b2N0b2NhdDpodW50ZXIy",
}


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(pod_timeout=30, poll_interval=0, service_timeout=60)


@pytest.fixture
def credentials() -> RegistryCredentials:
    return RegistryCredentials(username="octocat", auth="b2N0b2NhdDpodW50ZXIy")


@pytest.fixture
def fake_provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def app_source(tmp_path) -> Path:
    src = tmp_path / "express-app"
    src.mkdir()
    (src / "Dockerfile").write_text("FROM node:20-alpine\nCOPY . /app\nCMD [\"node\", \"/app/index.js\"]\n")
    (src / "index.js").write_text("require('http').createServer((q, s) => s.end('hi')).listen(8080)\n")
    return src


@pytest.fixture
def app_source_zip(tmp_path, app_source) -> Path:
    archive = tmp_path / "express-app.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        for path in app_source.iterdir():
            zf.write(path, arcname=path.name)
    return archive


@pytest.fixture()
def cli_runner(tmp_path, monkeypatch, fake_provisioner):
    db_path = tmp_path / "test_cli.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    for key, value in REGISTRY_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("KNATIVE_DEPLOYER_POLL_INTERVAL", "0")

    import knative_deployer.db as db

    importlib.reload(db)
    init_db(db.engine)

    import knative_deployer.cli as cli

    importlib.reload(cli)
    monkeypatch.setattr(cli.Provisioner, "from_settings", classmethod(lambda cls, settings: fake_provisioner))

    return CliRunner(), cli.app


@pytest.fixture
def client(db_session, fake_provisioner):
    from knative_deployer.api import components
    from knative_deployer.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[components.get_session] = override_get_db
    app.dependency_overrides[components.get_provisioner] = lambda: fake_provisioner
    app.dependency_overrides[components.get_settings] = lambda: Settings(
        poll_interval=0,
        registry_username=REGISTRY_ENV["KNATIVE_DEPLOYER_REGISTRY_USERNAME"],
        registry_auth=REGISTRY_ENV["KNATIVE_DEPLOYER_REGISTRY_AUTH"],
    )

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
