from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from plots.api import create_app
from plots.config import Settings
from plots.database import Database

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "plots.sqlite3",
        jwt_secret="tests-secret-key",
        environment="production",
    )


@pytest.fixture()
def database(settings: Settings) -> Iterator[Database]:
    db = Database.from_settings(settings)
    db.initialize(
        admin_username=settings.admin_username,
        admin_email=settings.admin_email,
        admin_password=settings.admin_password,
        seed=True,
    )
    yield db
    db.close()


@pytest.fixture()
def client(settings: Settings, database: Database) -> Iterator[TestClient]:
    app = create_app(settings=settings, database=database)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def token(client: TestClient) -> str:
    response = client.post("/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["token"]


@pytest.fixture()
def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
