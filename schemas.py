"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
Los modelos (SQLAlchemy) describen las TABLAS, los esquemas (Pydantic)
describen lo que la API ACEPTA y DEVUELVE. Lo que falla aquí nunca llega al
motor de progresión: FastAPI responde 422 por su cuenta.

Convención de nombres:
  XxxCreate   → cuerpo de un POST que crea algo
  XxxUpdate   → cuerpo de un PUT (todos los campos opcionales)
  XxxResponse → lo que devuelve un GET
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl


# =============================================================================
# ===================== AUTH ==================================================
# =============================================================================

class TokenRequest(BaseModel):
    """Token de acceso del enlace privado del mentee o del mentor"""
    token: str = Field(min_length=1)

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Literal["mentee", "mentor"]


# =============================================================================
# ===================== MISIONES ==============================================
# =============================================================================

class QuestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: str = Field(default="General", max_length=100)
    difficulty: Literal["beginner", "intermediate", "advanced"] = "beginner"
    xp_reward: int = Field(default=100, ge=10, le=1000)
    steps: list[str] = []
    why_it_matters: Optional[str] = None
    safety_notes: Optional[str] = None
    evidence_examples: list[str] = []
    tier: str = "rookie"
    unlock_at_xp: int = Field(default=0, ge=0)
    is_locked: bool = False
    sort_order: int = 999

class QuestUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    difficulty: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    xp_reward: Optional[int] = None
    # xp_reward → los valores fuera de rango se recortan a 10-1000, no se rechazan
    steps: Optional[list[str]] = None
    why_it_matters: Optional[str] = None
    safety_notes: Optional[str] = None
    evidence_examples: Optional[list[str]] = None
    tier: Optional[str] = None
    unlock_at_xp: Optional[int] = Field(default=None, ge=0)
    is_locked: Optional[bool] = None
    sort_order: Optional[int] = None

class QuestResponse(BaseModel):
    id: int
    title: str
    description: str
    category: str
    difficulty: str
    xp_reward: int
    steps: Optional[list] = None
    why_it_matters: Optional[str] = None
    safety_notes: Optional[str] = None
    evidence_examples: Optional[list] = None
    tier: str
    unlock_at_xp: int
    is_locked: bool
    is_active: bool
    is_lucky_quest: bool
    lucky_multiplier: float
    sort_order: int
    model_config = {"from_attributes": True}

class ProgressResponse(BaseModel):
    id: int
    quest_id: int
    status: str
    evidence_links: Optional[list] = None
    reflection: Optional[str] = None
    mentor_feedback: Optional[str] = None
    rejection_count: int
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class SubmitRequest(BaseModel):
    """Evidencia de una misión: de 1 a 10 enlaces http(s) más una reflexión opcional"""
    evidence_links: list[HttpUrl] = Field(min_length=1, max_length=10)
    reflection: Optional[str] = Field(default=None, max_length=5000)

class LuckyQuestRequest(BaseModel):
    quest_id: int


# =============================================================================
# ===================== REVISIÓN ===============================================
# =============================================================================

class ReviewRequest(BaseModel):
    action: Literal["approve", "reject"]
    feedback: str = Field(default="", max_length=5000)


# =============================================================================
# ===================== REACCIONES ============================================
# =============================================================================

class ReactionCreate(BaseModel):
    quest_progress_id: int
    reaction: str = Field(min_length=1, max_length=10)

class ReactionResponse(BaseModel):
    id: int
    quest_progress_id: int
    reaction: str
    created_at: datetime
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== ACTIVIDAD =============================================
# =============================================================================

class ActivityResponse(BaseModel):
    id: int
    action: str
    quest_id: Optional[int] = None
    details: Optional[dict] = None
    created_at: datetime
    model_config = {"from_attributes": True}
