"""AI-assisted section generation, adjustment and executive summaries."""

import json

import pytest
from sqlalchemy import event

from lifeplanner_api.database import DatabaseService, PlanSection, PlanSummary
from lifeplanner_api.models import SectionStatus

SECTIONS_REPLY = (
    "<think>El usuario quiere un plan.</think>\n"
    "Aquí tienes:\n```json\n"
    + json.dumps([
        {"section_type": "Profesional", "content": "Pedir feedback mensual."},
        {"section_type": "Entrenamiento", "content": "Correr 3 veces por semana."},
        {"section_type": "Hobbies", "content": "Guitarra los domingos."},
        {"section_type": "Nutrición", "content": "Cinco raciones de verdura."},
        {"section_type": "Bienestar", "content": "Meditar 10 minutos."},
    ], ensure_ascii=False)
    + "\n```"
)


def test_generate_sections_stores_and_returns_them(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script(SECTIONS_REPLY)

    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 200, response.text
    sections = response.json()
    assert [section["section_type"] for section in sections] == [
        "Profesional", "Entrenamiento", "Hobbies", "Nutrición", "Bienestar",
    ]
    assert all(section["status"] == SectionStatus.generated.value for section in sections)

    detail = client.get(f"/plans/{plan_id}", headers=auth_headers).json()
    assert len(detail["sections"]) == 5


def test_generate_sections_prompt_carries_parameters(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script(SECTIONS_REPLY)
    client.post(f"/plans/{plan_id}/sections", headers=auth_headers)

    request = ai_gateway.requests[-1]
    assert request["model"] == "test-model"
    assert "response_format" not in request
    user_prompt = request["messages"][1]["content"]
    assert "Dieta balanceada" in user_prompt
    assert "Profesional, Entrenamiento, Hobbies, Nutrición, Bienestar" in user_prompt


def test_generate_sections_without_json(client, plan_id, auth_headers, ai_gateway, db_session):
    reply = "Lo siento, no puedo generar el plan ahora mismo."
    ai_gateway.script(reply)

    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Respuesta IA no contiene JSON", "details": reply[:200]}
    assert db_session.query(PlanSection).count() == 0


def test_generate_sections_details_are_truncated(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script("x" * 500)
    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["details"] == "x" * 200


def test_generate_sections_with_wrong_shape_inserts_nothing(client, plan_id, auth_headers, ai_gateway, db_session):
    ai_gateway.script('[{"section_type": "Hobbies", "content": "Leer"}, {"title": "sin tipo"}]')

    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["error"] == "Respuesta IA con formato inesperado"
    assert db_session.query(PlanSection).count() == 0


def test_generate_sections_with_broken_json(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script('[{"section_type": "Hobbies", "content": }]')
    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["error"] == "Respuesta IA con JSON inválido"


def test_generate_sections_from_object_wrapped_array(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script('{"secciones": [{"section_type": "Hobbies", "content": "Leer"}]}')

    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 200, response.text
    assert [(section["section_type"], section["content"]) for section in response.json()] == [("Hobbies", "Leer")]


def test_generate_sections_when_model_is_down(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script("raise:Connection refused")
    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Error al conectar con IA", "details": "Connection refused"}


def test_generate_sections_for_foreign_plan(client, plan_id, other_headers, ai_gateway):
    response = client.post(f"/plans/{plan_id}/sections", headers=other_headers)
    assert response.status_code == 404
    assert ai_gateway.requests == []


def test_structured_output_requests_json_object(settings, ai_gateway):
    from dataclasses import replace

    from fastapi.testclient import TestClient

    from lifeplanner_api.api import create_app
    from lifeplanner_api.tests.support import register_and_login

    app = create_app(replace(settings, ai_structured_output=True), ai_gateway=ai_gateway)
    with TestClient(app) as client:
        headers = register_and_login(client, "ana@ejemplo.com")
        plan_id = client.post("/plans", json={"title": "T"}, headers=headers).json()["id"]
        ai_gateway.script('{"sections": [{"section_type": "Bienestar", "content": "Dormir 8 horas."}]}')

        response = client.post(f"/plans/{plan_id}/sections", headers=headers)

    assert response.status_code == 200, response.text
    assert [section["section_type"] for section in response.json()] == ["Bienestar"]
    assert ai_gateway.requests[-1]["response_format"] == {"type": "json_object"}


def _seed_section(db_session, plan_id, content="Correr 3 veces por semana."):
    section = PlanSection(plan_id=plan_id, section_type="Entrenamiento", content=content)
    db_session.add(section)
    db_session.commit()
    return section.id


def test_adjust_section(client, plan_id, auth_headers, ai_gateway, db_session):
    section_id = _seed_section(db_session, plan_id)
    ai_gateway.script("  Correr 4 veces por semana e incluir fuerza.\n")

    response = client.patch(
        f"/plans/{plan_id}/sections/{section_id}",
        json={"comment": "Más intensidad"},
        headers=auth_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["content"] == "Correr 4 veces por semana e incluir fuerza."
    assert body["status"] == SectionStatus.adjusted.value == "adjusted"

    prompt = ai_gateway.requests[-1]["messages"][1]["content"]
    assert "Correr 3 veces por semana." in prompt
    assert "Más intensidad" in prompt


def test_adjust_section_requires_comment(client, plan_id, auth_headers, ai_gateway, db_session):
    section_id = _seed_section(db_session, plan_id)
    response = client.patch(f"/plans/{plan_id}/sections/{section_id}", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": 'El campo "comment" es obligatorio'}
    assert ai_gateway.requests == []


def test_adjust_unknown_section(client, plan_id, auth_headers):
    response = client.patch(f"/plans/{plan_id}/sections/9999", json={"comment": "x"}, headers=auth_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Sección no encontrada"}


def test_adjust_section_of_another_plan(client, auth_headers, plan_id, db_session):
    other_plan_id = client.post("/plans", json={"title": "Otro"}, headers=auth_headers).json()["id"]
    section_id = _seed_section(db_session, other_plan_id)

    response = client.patch(f"/plans/{plan_id}/sections/{section_id}", json={"comment": "x"}, headers=auth_headers)
    assert response.status_code == 404


def test_adjust_section_by_non_owner(client, plan_id, other_headers, db_session):
    section_id = _seed_section(db_session, plan_id)
    response = client.patch(f"/plans/{plan_id}/sections/{section_id}", json={"comment": "x"}, headers=other_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Plan no encontrado"}


def test_generate_summary_appends_history(client, plan_id, auth_headers, ai_gateway, db_session):
    _seed_section(db_session, plan_id)
    ai_gateway.script(
        'Resultado: {"title": "Plan equilibrado", "executive_summary": "Primera versión."}',
        '{"title": "Plan equilibrado", "executive_summary": "Segunda versión."}',
    )

    first = client.post(f"/plans/{plan_id}/summary", headers=auth_headers)
    second = client.post(f"/plans/{plan_id}/summary", headers=auth_headers)

    assert first.status_code == 200, first.text
    assert first.json() == {"title": "Plan equilibrado", "executive_summary": "Primera versión."}
    assert second.json()["executive_summary"] == "Segunda versión."
    assert db_session.query(PlanSummary).filter(PlanSummary.plan_id == plan_id).count() == 2

    history = client.get(f"/plans/{plan_id}/summaries", headers=auth_headers).json()
    assert [item["executive_summary"] for item in history] == ["Segunda versión.", "Primera versión."]

    prompt = ai_gateway.requests[0]["messages"][1]["content"]
    assert '"Mi plan"' in prompt
    assert "Entrenamiento" in prompt


def test_generate_summary_without_json(client, plan_id, auth_headers, ai_gateway, db_session):
    ai_gateway.script("No tengo suficiente información.")
    response = client.post(f"/plans/{plan_id}/summary", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "IA no devolvió JSON válido", "details": "No tengo suficiente información."}
    assert db_session.query(PlanSummary).count() == 0


def test_generate_summary_with_missing_keys(client, plan_id, auth_headers, ai_gateway):
    ai_gateway.script('{"title": "Sin resumen"}')
    response = client.post(f"/plans/{plan_id}/summary", headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["error"] == "Respuesta IA con formato inesperado"


def test_summaries_of_foreign_plan(client, plan_id, other_headers):
    assert client.post(f"/plans/{plan_id}/summary", headers=other_headers).status_code == 404
    assert client.get(f"/plans/{plan_id}/summaries", headers=other_headers).status_code == 404


@pytest.fixture
def failing_section_insert():
    """Make the insert of a "Hobbies" section fail after the earlier rows were written."""
    def fail_on_hobbies(mapper, connection, target):
        if target.section_type == "Hobbies":
            raise RuntimeError("disk I/O error")

    event.listen(PlanSection, "after_insert", fail_on_hobbies)
    try:
        yield
    finally:
        event.remove(PlanSection, "after_insert", fail_on_hobbies)


def test_generate_sections_is_all_or_nothing(client, plan_id, auth_headers, ai_gateway, db_session,
                                             failing_section_insert):
    ai_gateway.script(SECTIONS_REPLY)

    response = client.post(f"/plans/{plan_id}/sections", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Error al generar secciones", "details": "disk I/O error"}
    assert db_session.query(PlanSection).filter(PlanSection.plan_id == plan_id).count() == 0


def test_create_sections_rolls_back_the_batch(plan_id, db_session, failing_section_insert):
    store = DatabaseService(db_session)
    drafts = [("Profesional", "a"), ("Entrenamiento", "b"), ("Hobbies", "c"), ("Bienestar", "d")]

    with pytest.raises(RuntimeError):
        store.create_sections(plan_id, drafts)

    # The same session stays usable and sees none of the batch
    assert store.list_sections(plan_id) == []
