"""Services behind the HTTP routes: plan operations, the model gateway and PDF export."""

from .ai_gateway import AIGateway
from .export_service import export_filename, render_plan_pdf
from .plan_service import PlanService

__all__ = [
    "AIGateway",
    "PlanService",
    "export_filename",
    "render_plan_pdf",
]
