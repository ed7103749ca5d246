"""
Pydantic models for API request/response schemas.
"""
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanStatus(str, Enum):
    """Lifecycle status of a plan"""
    draft = "draft"


class SectionStatus(str, Enum):
    """Whether a section is as generated or has been adjusted by the user"""
    generated = "generated"
    adjusted = "adjusted"


class SectionType(str, Enum):
    """Sections requested from the model when a plan is generated"""
    Profesional = "Profesional"
    Entrenamiento = "Entrenamiento"
    Hobbies = "Hobbies"
    Nutricion = "Nutrición"
    Bienestar = "Bienestar"


# Requests

class CredentialsRequest(BaseModel):
    """Email and password, used by both register and login"""
    email: Optional[str] = Field(None, description="Account email", examples=["usuario@ejemplo.com"])
    password: Optional[str] = Field(None, description="Plain-text password, never stored")


class CreatePlanRequest(BaseModel):
    """Request to create a new draft plan"""
    title: Optional[str] = Field(None, description="Plan title", max_length=255)
    parameters: Optional[Dict[str, str]] = Field(
        None,
        description="Goals per section",
        examples=[{"Profesional": "Avanzar en mi carrera", "Nutrición": "Dieta balanceada"}],
    )


class _Patch(BaseModel):
    """Partial update: only the fields present in the request body are applied.

    Fields listed in ``non_nullable`` are dropped when sent as ``null``, since the
    store has no empty value for them.
    """
    non_nullable: ClassVar[FrozenSet[str]] = frozenset()

    def changes(self) -> Dict[str, Any]:
        changes = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name in self.non_nullable:
                continue
            changes[name] = value
        return changes


class PlanPatch(_Patch):
    """Partial update of a plan"""
    non_nullable: ClassVar[FrozenSet[str]] = frozenset({"parameters"})

    title: Optional[str] = Field(None, max_length=255)
    parameters: Optional[Dict[str, str]] = None


class ReminderPatch(_Patch):
    """Partial update of a reminder"""
    non_nullable: ClassVar[FrozenSet[str]] = frozenset({"rule", "is_active"})

    rule: Optional[str] = Field(None, description="Recurrence description, e.g. 'Lunes y jueves a las 7:00'")
    is_active: Optional[bool] = None


class CreateReminderRequest(BaseModel):
    rule: Optional[str] = Field(None, description="Recurrence description")
    is_active: bool = True


class AdjustSectionRequest(BaseModel):
    comment: Optional[str] = Field(None, description="What to change", examples=["Quiero más énfasis en la nutrición"])


# Responses

class MessageResponse(BaseModel):
    message: str


class TokenResponse(BaseModel):
    token: str = Field(..., description="Bearer token for the Authorization header")


class PlanResponse(BaseModel):
    """A plan without its sections"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: str = PlanStatus.draft.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    section_type: str
    content: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlanDetailResponse(PlanResponse):
    """A plan together with all of its sections"""
    sections: List[SectionResponse] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    """Freshly generated executive summary"""
    title: Optional[str] = None
    executive_summary: str


class SummaryRecord(SummaryResponse):
    """Stored executive summary"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: Optional[datetime] = None


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    rule: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str
    db: str


class APIError(BaseModel):
    """Standard API error response"""
    error: str = Field(..., description="Error message")
    details: Optional[Any] = Field(None, description="Additional error details")
