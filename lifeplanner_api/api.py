"""
FastAPI REST API for the Lifestyle Planner.

Routes stay thin: they resolve the caller through ``get_current_user``, delegate to
``PlanService``/``AuthService`` and shape the response. Failures travel as
``LifePlannerError`` and are turned into ``{error, details?}`` by one handler.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from lifeplanner_api.auth import AuthService, CurrentUser, TokenService, get_current_user
from lifeplanner_api.config import Settings, load_settings
from lifeplanner_api.database import Database, DatabaseService, get_database
from lifeplanner_api.errors import AIGatewayError, InternalError, LifePlannerError
from lifeplanner_api.models import (
    AdjustSectionRequest, APIError, CreatePlanRequest, CreateReminderRequest, CredentialsRequest,
    HealthResponse, MessageResponse, PlanDetailResponse, PlanPatch, PlanResponse, ReminderPatch,
    ReminderResponse, SectionResponse, SummaryRecord, SummaryResponse, TokenResponse,
)
from lifeplanner_api.services import AIGateway, PlanService, export_filename

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ERROR_RESPONSES = {
    400: {"model": APIError},
    401: {"model": APIError},
    403: {"model": APIError},
    404: {"model": APIError},
    500: {"model": APIError},
}


def get_plan_service(request: Request, db: DatabaseService = Depends(get_database)) -> PlanService:
    settings: Settings = request.app.state.settings
    return PlanService(db, request.app.state.ai_gateway, structured_output=settings.ai_structured_output)


def get_auth_service(request: Request, db: DatabaseService = Depends(get_database)) -> AuthService:
    settings: Settings = request.app.state.settings
    return AuthService(db, request.app.state.token_service, bcrypt_rounds=settings.bcrypt_rounds)


def _internal(message: str, exc: Exception) -> InternalError:
    logger.exception(message)
    return InternalError(message, details=str(exc))


# Health

health_router = APIRouter(tags=["Health"])


@health_router.get("/api/health", response_model=HealthResponse)
def health_check(request: Request):
    """Check that the server and the database are up"""
    try:
        request.app.state.database.ping()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=500, content={"status": "ERROR", "message": str(e)})
    return HealthResponse(status="OK", db="conectada")


# Auth

auth_router = APIRouter(prefix="/auth", tags=["Auth"], responses=ERROR_RESPONSES)


@auth_router.post("/register", response_model=MessageResponse, status_code=201)
def register(request: Optional[CredentialsRequest] = None, auth: AuthService = Depends(get_auth_service)):
    """Register a new user"""
    try:
        request = request or CredentialsRequest()
        auth.register(request.email, request.password)
        return MessageResponse(message="Usuario registrado correctamente")
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error interno del servidor", e)


@auth_router.post("/login", response_model=TokenResponse)
def login(request: Optional[CredentialsRequest] = None, auth: AuthService = Depends(get_auth_service)):
    """Log in and obtain a bearer token"""
    try:
        request = request or CredentialsRequest()
        return TokenResponse(token=auth.login(request.email, request.password))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error interno del servidor", e)


# Plans

plans_router = APIRouter(prefix="/plans", tags=["Plans"], responses=ERROR_RESPONSES)


@plans_router.get("", response_model=List[PlanResponse])
def list_plans(
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """List every plan of the authenticated user"""
    try:
        return [PlanResponse.model_validate(plan) for plan in plans.list_plans(user.user_id)]
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al listar planes", e)


@plans_router.post("", response_model=PlanResponse, status_code=201)
def create_plan(
    request: Optional[CreatePlanRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Create a new draft plan"""
    try:
        return PlanResponse.model_validate(plans.create_plan(user.user_id, request or CreatePlanRequest()))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al crear plan", e)


@plans_router.get("/{plan_id}", response_model=PlanDetailResponse)
def get_plan(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Get a plan together with its sections"""
    try:
        return PlanDetailResponse.model_validate(plans.get_plan_detail(user.user_id, plan_id))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al obtener detalle del plan", e)


@plans_router.patch("/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: int,
    patch: Optional[PlanPatch] = None,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Update the title and/or parameters of a plan"""
    try:
        return PlanResponse.model_validate(plans.update_plan(user.user_id, plan_id, patch or PlanPatch()))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al actualizar plan", e)


@plans_router.delete("/{plan_id}", status_code=204, response_class=Response)
def delete_plan(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Delete a plan with its sections, reminders and summaries"""
    try:
        plans.delete_plan(user.user_id, plan_id)
        return Response(status_code=204)
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al eliminar plan", e)


@plans_router.post("/{plan_id}/sections", response_model=List[SectionResponse])
def generate_sections(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Generate every section of the plan with the model"""
    try:
        sections = plans.generate_sections(user.user_id, plan_id)
        return [SectionResponse.model_validate(section) for section in sections]
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al generar secciones", e)


@plans_router.patch("/{plan_id}/sections/{section_id}", response_model=SectionResponse)
def adjust_section(
    plan_id: int,
    section_id: int,
    request: Optional[AdjustSectionRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Rewrite one section following the user's comment"""
    try:
        section = plans.adjust_section(user.user_id, plan_id, section_id, request.comment if request else None)
        return SectionResponse.model_validate(section)
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al ajustar sección", e)


@plans_router.post("/{plan_id}/summary", response_model=SummaryResponse)
def generate_summary(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Generate and store a new executive summary"""
    try:
        draft = plans.generate_summary(user.user_id, plan_id)
        return SummaryResponse(title=draft.title, executive_summary=draft.executive_summary)
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al generar resumen", e)


@plans_router.get("/{plan_id}/summaries", response_model=List[SummaryRecord])
def list_summaries(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Summary history of a plan, newest first"""
    try:
        return [SummaryRecord.model_validate(summary) for summary in plans.list_summaries(user.user_id, plan_id)]
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al listar resúmenes", e)


@plans_router.get(
    "/{plan_id}/export",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
def export_plan(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Download the plan as a PDF"""
    try:
        pdf = plans.export_plan_pdf(user.user_id, plan_id)
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f"attachment; filename={export_filename(plan_id)}"},
        )
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al exportar plan", e)


@plans_router.get("/{plan_id}/reminders", response_model=List[ReminderResponse])
def list_reminders(
    plan_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    try:
        return [ReminderResponse.model_validate(reminder) for reminder in plans.list_reminders(user.user_id, plan_id)]
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al listar recordatorios", e)


@plans_router.post("/{plan_id}/reminders", response_model=ReminderResponse, status_code=201)
def create_reminder(
    plan_id: int,
    request: Optional[CreateReminderRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    try:
        return ReminderResponse.model_validate(plans.create_reminder(user.user_id, plan_id, request or CreateReminderRequest()))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al crear recordatorio", e)


# Reminders

reminders_router = APIRouter(prefix="/reminders", tags=["Reminders"], responses=ERROR_RESPONSES)


@reminders_router.patch("/{reminder_id}", response_model=ReminderResponse)
def update_reminder(
    reminder_id: int,
    patch: Optional[ReminderPatch] = None,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    """Toggle a reminder or change its rule"""
    try:
        return ReminderResponse.model_validate(plans.update_reminder(user.user_id, reminder_id, patch or ReminderPatch()))
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al actualizar recordatorio", e)


@reminders_router.delete("/{reminder_id}", status_code=204, response_class=Response)
def delete_reminder(
    reminder_id: int,
    user: CurrentUser = Depends(get_current_user),
    plans: PlanService = Depends(get_plan_service),
):
    try:
        plans.delete_reminder(user.user_id, reminder_id)
        return Response(status_code=204)
    except LifePlannerError:
        raise
    except Exception as e:
        raise _internal("Error al eliminar recordatorio", e)


# AI proxy

ai_router = APIRouter(prefix="/ai", tags=["AI"], responses=ERROR_RESPONSES)


def _forward(request: Request, body: Dict[str, Any], message: str) -> Dict[str, Any]:
    gateway: AIGateway = request.app.state.ai_gateway
    try:
        return gateway.forward(body)
    except AIGatewayError as e:
        raise InternalError(message, details=e.details) from e


@ai_router.post("/generate")
def ai_generate(
    request: Request,
    body: Dict[str, Any] = Body(..., examples=[{
        "model": "deepseek-r1-distill-qwen-7b",
        "messages": [{"role": "user", "content": "Dame un plan de entrenamiento semanal."}],
    }]),
    user: CurrentUser = Depends(get_current_user),
):
    """Relay a chat-completions body to the model service, for new prompts"""
    return _forward(request, body, "Error al generar con IA")


@ai_router.post("/adjust")
def ai_adjust(
    request: Request,
    body: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(get_current_user),
):
    """Relay a chat-completions body to the model service, for section adjustments"""
    return _forward(request, body, "Error al ajustar con IA")


# Error handlers

async def lifeplanner_error_handler(request: Request, exc: LifePlannerError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("%s %s -> 400 invalid request", request.method, request.url.path)
    return JSONResponse(
        status_code=400,
        content={"error": "Parámetros inválidos", "details": jsonable_encoder(exc.errors())},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


def create_app(settings: Optional[Settings] = None, ai_gateway: Optional[AIGateway] = None) -> FastAPI:
    """Build the application with its own database handle, token service and gateway"""
    settings = settings or load_settings()

    app = FastAPI(
        title="Lifestyle Planner API",
        description="Backend for personal lifestyle plans with AI-generated sections",
        version=API_VERSION,
        docs_url="/api-docs",
    )

    allow_all = "*" in settings.cors_allow_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else list(settings.cors_allow_origins),
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    database = Database(settings.database_url)
    database.open()

    app.state.settings = settings
    app.state.database = database
    app.state.token_service = TokenService(settings.jwt_secret, settings.jwt_expires_in_seconds)
    app.state.ai_gateway = ai_gateway or AIGateway(
        settings.ai_url, settings.ai_model, timeout=settings.ai_timeout_seconds
    )

    app.add_exception_handler(LifePlannerError, lifeplanner_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(plans_router)
    app.include_router(reminders_router)
    app.include_router(ai_router)

    @app.on_event("shutdown")
    def shutdown_event():
        """Release pooled connections"""
        database.dispose()

    logger.info("Lifestyle Planner API initialised (AI service at %s)", settings.ai_url)
    return app
