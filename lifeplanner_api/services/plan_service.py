"""
Plan operations: CRUD with ownership checks plus the AI-assisted generation steps.

Every method takes the caller's ``user_id`` and resolves the plan through
``DatabaseService.get_plan(user_id, plan_id)`` first, so a plan owned by somebody else
is indistinguishable from a plan that does not exist.
"""
import json
import logging
from typing import Dict, List, Optional

from lifeplanner_api.database import DatabaseService, Plan, PlanReminder, PlanSection, PlanSummary
from lifeplanner_api.errors import BadRequestError, NotFoundError
from lifeplanner_api.models import (
    CreatePlanRequest, CreateReminderRequest, PlanPatch, ReminderPatch, SectionStatus, SectionType,
)
from lifeplanner_api.services.ai_gateway import AIGateway
from lifeplanner_api.services.ai_parsing import (
    SummaryDraft, parse_adjusted_text, parse_sections, parse_summary,
)
from lifeplanner_api.services.export_service import render_plan_pdf

logger = logging.getLogger(__name__)

PLAN_NOT_FOUND = "Plan no encontrado"
SECTION_NOT_FOUND = "Sección no encontrada"
REMINDER_NOT_FOUND = "Recordatorio no encontrado"

SECTIONS_SYSTEM_PROMPT = "Eres un asistente que devuelve **solo** JSON puro, sin explicaciones ni etiquetas."
ADJUST_SYSTEM_PROMPT = "Eres un asistente de ajustes que devuelve solo el texto ajustado, sin nada más."
SUMMARY_SYSTEM_PROMPT = (
    "Eres un asistente que crea un resumen ejecutivo de un plan. "
    "Devuelve solo un JSON con { title, executive_summary }."
)


def _dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def build_sections_messages(parameters: Dict[str, str], structured: bool = False) -> List[Dict[str, str]]:
    section_names = ", ".join(section.value for section in SectionType)
    if structured:
        shape = 'un objeto JSON {"sections": [...]} cuyo array contenga objetos con "section_type" y "content"'
    else:
        shape = 'un array JSON con objetos que tengan "section_type" y "content"'
    return [
        {"role": "system", "content": SECTIONS_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Dado este JSON de parámetros: {_dumps(parameters)}, "
                f"devuelve {shape} para estas secciones: {section_names}."
            ),
        },
    ]


def build_adjust_messages(content: str, comment: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": ADJUST_SYSTEM_PROMPT},
        {"role": "user", "content": f'Texto original: "{content}".\nComentarios: "{comment}".'},
    ]


def build_summary_messages(plan: Plan, sections: List[PlanSection]) -> List[Dict[str, str]]:
    section_payload = [
        {"section_type": section.section_type, "content": section.content} for section in sections
    ]
    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f'Plan: "{plan.title or ""}". Parámetros: {_dumps(plan.parameters or {})}. '
                f"Secciones: {_dumps(section_payload)}."
            ),
        },
    ]


class PlanService:
    """Owner-scoped plan, section, summary and reminder operations"""

    def __init__(self, db: DatabaseService, ai_gateway: Optional[AIGateway] = None,
                 structured_output: bool = False):
        self.db = db
        self.ai_gateway = ai_gateway
        self.structured_output = structured_output

    def _require_plan(self, user_id: int, plan_id: int) -> Plan:
        plan = self.db.get_plan(user_id, plan_id)
        if plan is None:
            raise NotFoundError(PLAN_NOT_FOUND)
        return plan

    # Plans

    def list_plans(self, user_id: int) -> List[Plan]:
        return self.db.list_plans(user_id)

    def create_plan(self, user_id: int, request: CreatePlanRequest) -> Plan:
        parameters = request.parameters if request.parameters is not None else {}
        plan = self.db.create_plan(user_id, request.title, parameters)
        logger.info("User %s created plan %s", user_id, plan.id)
        return plan

    def get_plan_detail(self, user_id: int, plan_id: int) -> Plan:
        return self._require_plan(user_id, plan_id)

    def update_plan(self, user_id: int, plan_id: int, patch: PlanPatch) -> Plan:
        changes = patch.changes()
        if not changes:
            raise BadRequestError("Ningún campo para actualizar")
        plan = self._require_plan(user_id, plan_id)
        return self.db.update_plan(plan, changes)

    def delete_plan(self, user_id: int, plan_id: int) -> None:
        plan = self._require_plan(user_id, plan_id)
        self.db.delete_plan(plan)
        logger.info("User %s deleted plan %s", user_id, plan_id)

    # Sections

    def generate_sections(self, user_id: int, plan_id: int) -> List[PlanSection]:
        plan = self._require_plan(user_id, plan_id)
        messages = build_sections_messages(plan.parameters or {}, structured=self.structured_output)
        raw = self.ai_gateway.complete(messages, json_mode=self.structured_output)
        drafts = parse_sections(raw)
        self.db.create_sections(plan.id, [(draft.section_type, draft.content) for draft in drafts])
        logger.info("Generated %d sections for plan %s", len(drafts), plan.id)
        return self.db.list_sections(plan.id)

    def adjust_section(self, user_id: int, plan_id: int, section_id: int, comment: Optional[str]) -> PlanSection:
        if not comment or not comment.strip():
            raise BadRequestError('El campo "comment" es obligatorio')
        self._require_plan(user_id, plan_id)
        section = self.db.get_section(user_id, plan_id, section_id)
        if section is None:
            raise NotFoundError(SECTION_NOT_FOUND)

        raw = self.ai_gateway.complete(build_adjust_messages(section.content, comment))
        new_content = parse_adjusted_text(raw)
        return self.db.update_section_content(section, new_content, status=SectionStatus.adjusted.value)

    # Summaries

    def generate_summary(self, user_id: int, plan_id: int) -> SummaryDraft:
        plan = self._require_plan(user_id, plan_id)
        sections = self.db.list_sections(plan.id)
        raw = self.ai_gateway.complete(
            build_summary_messages(plan, sections), json_mode=self.structured_output
        )
        draft = parse_summary(raw)
        self.db.create_summary(plan.id, draft.title, draft.executive_summary)
        logger.info("Stored executive summary for plan %s", plan.id)
        return draft

    def list_summaries(self, user_id: int, plan_id: int) -> List[PlanSummary]:
        plan = self._require_plan(user_id, plan_id)
        return self.db.list_summaries(plan.id)

    # Export

    def export_plan_pdf(self, user_id: int, plan_id: int) -> bytes:
        """The plan, its newest executive summary and its sections as a PDF"""
        plan = self._require_plan(user_id, plan_id)
        latest = self.db.get_latest_summary(plan.id)
        return render_plan_pdf(
            plan.title,
            latest.executive_summary if latest else "",
            [(section.section_type, section.content) for section in plan.sections],
            plan_id=plan.id,
        )

    # Reminders

    def list_reminders(self, user_id: int, plan_id: int) -> List[PlanReminder]:
        plan = self._require_plan(user_id, plan_id)
        return self.db.list_reminders(plan.id)

    def create_reminder(self, user_id: int, plan_id: int, request: CreateReminderRequest) -> PlanReminder:
        if not request.rule or not request.rule.strip():
            raise BadRequestError('El campo "rule" es obligatorio')
        plan = self._require_plan(user_id, plan_id)
        return self.db.create_reminder(plan.id, request.rule, request.is_active)

    def update_reminder(self, user_id: int, reminder_id: int, patch: ReminderPatch) -> PlanReminder:
        changes = patch.changes()
        if not changes:
            raise BadRequestError("Nada para actualizar")
        reminder = self.db.get_reminder(user_id, reminder_id)
        if reminder is None:
            raise NotFoundError(REMINDER_NOT_FOUND)
        return self.db.update_reminder(reminder, changes)

    def delete_reminder(self, user_id: int, reminder_id: int) -> None:
        reminder = self.db.get_reminder(user_id, reminder_id)
        if reminder is None:
            raise NotFoundError(REMINDER_NOT_FOUND)
        self.db.delete_reminder(reminder)
