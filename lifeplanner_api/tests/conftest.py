"""Shared fixtures: an app bound to an isolated SQLite file and a scripted model gateway."""

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from lifeplanner_api.api import create_app
from lifeplanner_api.config import Settings
from lifeplanner_api.tests.support import TEST_SECRET, ScriptedAIGateway, register_and_login


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'lifeplanner.db'}",
        jwt_secret=TEST_SECRET,
        jwt_expires_in_seconds=3600,
        bcrypt_rounds=4,
    )


@pytest.fixture
def ai_gateway() -> ScriptedAIGateway:
    return ScriptedAIGateway()


@pytest.fixture
def app(settings, ai_gateway):
    return create_app(settings, ai_gateway=ai_gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(app):
    session = app.state.database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def auth_headers(client) -> Dict[str, str]:
    return register_and_login(client, "ana@ejemplo.com")


@pytest.fixture
def other_headers(client) -> Dict[str, str]:
    return register_and_login(client, "bruno@ejemplo.com")


@pytest.fixture
def plan_id(client, auth_headers) -> int:
    response = client.post(
        "/plans",
        json={"title": "Mi plan", "parameters": {"Nutrición": "Dieta balanceada", "Profesional": "Ascenso"}},
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]
