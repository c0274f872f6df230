"""
=============================================================================
MODELS.PY — Todos los Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla en la base de datos.
Cada atributo de la clase = una columna en esa tabla.

RELACIONES:
  MenteeStats es el agregado único del mentee (una fila, un aprendiz)
  Quest tiene muchos → QuestProgress (uno por mentee)
  QuestProgress tiene muchos → QuestReactions
  Achievement / Badge tienen muchos → EarnedAchievement / EarnedBadge

Piensa en esto como un organigrama:
  MENTEE_STATS
  ├── quest_progress[] ──→ quest_reactions[]
  ├── earned_achievements[]
  ├── earned_badges[]
  └── activity_log[] (solo se añade)
  QUESTS (catálogo, lo edita el mentor)
  BONUS_EVENTS (reglas de XP declarativas)
  ACHIEVEMENTS / BADGES (catálogos de reconocimientos)
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Boolean, Float, Text, Date,
    DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import enum


def utcnow() -> datetime:
    """Timestamp UTC sin zona, el formato que guardan todas las columnas DateTime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class ProgressStatus(str, enum.Enum):
    """Estados de la máquina de estados del progreso de una misión"""
    available = "available"        # aún no hay fila de progreso
    in_progress = "in_progress"    # empezada (o devuelta por el mentor)
    submitted = "submitted"        # esperando la revisión del mentor
    completed = "completed"        # aprobada, estado final

class QuestDifficulty(str, enum.Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"

class BonusEventType(str, enum.Enum):
    """Tipos de evento de bonus que entiende el calculador de recompensas"""
    first_daily = "first_daily"    # XP fijo por la primera aprobación del día
    weekend = "weekend"            # multiplicador en sábado/domingo
    special = "special"            # cualquier otro evento con fechas

class ActivityAction(str, enum.Enum):
    """Acciones que se escriben en el registro de actividad"""
    quest_started = "quest_started"
    quest_submitted = "quest_submitted"
    quest_approved = "quest_approved"
    quest_rejected = "quest_rejected"
    level_up = "level_up"
    streak_freeze_used = "streak_freeze_used"
    streak_expired = "streak_expired"
    achievement_unlocked = "achievement_unlocked"
    badge_earned = "badge_earned"
    lucky_quest_rotated = "lucky_quest_rotated"
    reaction_added = "reaction_added"
    progress_reset = "progress_reset"


# =============================================================================
# ===================== TABLA 1: MENTEE_STATS =================================
# =============================================================================
# Una única fila lógica: el agregado del aprendiz. Nunca se borra, se resetea.

class MenteeStats(Base):
    __tablename__ = "mentee_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, default="Mentee")

    # ── XP y nivel ──
    total_xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    # level → derivado de total_xp por el cálculo de rangos, se guarda para consultas
    quests_completed = Column(Integer, nullable=False, default=0)
    total_bonus_xp = Column(Integer, nullable=False, default=0)
    # total_bonus_xp → XP ganado además de la recompensa base de las misiones

    # ── Racha ──
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    streak_freeze_available = Column(Boolean, nullable=False, default=True)
    # streak_freeze_available → comodín de un solo uso, cubre un día perdido
    last_streak_date = Column(Date, nullable=True)

    # ── Primera misión del día ──
    first_quest_today = Column(Boolean, nullable=False, default=False)
    last_first_quest_date = Column(Date, nullable=True)

    # ── Recompensa por hito ──
    quests_toward_reward = Column(Integer, nullable=False, default=0)
    rewards_claimed = Column(Integer, nullable=False, default=0)

    # ── Timestamps ──
    last_activity_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # version → bloqueo optimista; un UPDATE obsoleto lanza StaleDataError
    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

    quest_progress = relationship("QuestProgress", back_populates="mentee", cascade="all, delete-orphan")
    earned_achievements = relationship("EarnedAchievement", back_populates="mentee", cascade="all, delete-orphan")
    earned_badges = relationship("EarnedBadge", back_populates="mentee", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: QUESTS =======================================
# =============================================================================

class Quest(Base):
    __tablename__ = "quests"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="General")
    difficulty = Column(String(50), nullable=False, default=QuestDifficulty.beginner.value)
    xp_reward = Column(Integer, nullable=False, default=100)
    # xp_reward → XP base, siempre entre 10 y 1000

    steps = Column(JSON, default=list)
    why_it_matters = Column(Text, nullable=True)
    safety_notes = Column(Text, nullable=True)
    evidence_examples = Column(JSON, default=list)

    # ── Desbloqueo ──
    tier = Column(String(20), nullable=False, default="rookie")
    unlock_at_xp = Column(Integer, nullable=False, default=0)
    is_locked = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # is_active=False → borrado lógico

    # ── Misión de la suerte ──
    is_lucky_quest = Column(Boolean, nullable=False, default=False)
    # como mucho una misión activa lleva la marca
    lucky_multiplier = Column(Float, nullable=False, default=1.0)

    sort_order = Column(Integer, nullable=False, default=999)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    progress = relationship("QuestProgress", back_populates="quest")


# =============================================================================
# ===================== TABLA 3: QUEST_PROGRESS ===============================
# =============================================================================

class QuestProgress(Base):
    __tablename__ = "quest_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mentee_id = Column(Integer, ForeignKey("mentee_stats.id"), nullable=False)
    quest_id = Column(Integer, ForeignKey("quests.id"), nullable=False)

    status = Column(String(20), nullable=False, default=ProgressStatus.in_progress.value)
    evidence_links = Column(JSON, default=list)
    reflection = Column(Text, nullable=True)
    mentor_feedback = Column(Text, nullable=True)
    rejection_count = Column(Integer, nullable=False, default=0)
    was_lucky = Column(Boolean, nullable=False, default=False)
    # was_lucky → aprobada siendo la misión de la suerte (la marca rota después)

    started_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("mentee_id", "quest_id", name="uq_mentee_quest"),
    )

    mentee = relationship("MenteeStats", back_populates="quest_progress")
    quest = relationship("Quest", back_populates="progress")
    reactions = relationship("QuestReaction", back_populates="progress", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 4: BONUS_EVENTS =================================
# =============================================================================

class BonusEvent(Base):
    __tablename__ = "bonus_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False)
    multiplier = Column(Float, nullable=True)
    bonus_xp = Column(Integer, nullable=True)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    days_of_week = Column(JSON, nullable=True)
    # days_of_week → ["saturday", "sunday"], None significa todos los días
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# ===================== TABLAS 5-8: ACHIEVEMENTS / BADGES =====================
# =============================================================================
# Los dos catálogos tienen la misma forma: un requisito más una recompensa.
# requirement_type → qué predicado ("total_complete", "night_owl"...)
# requirement_value → su número (cantidad, nivel, porcentaje...)
# requirement_param → su argumento de texto (categoría, dificultad)

class RecognitionMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(300), nullable=False)
    icon = Column(String(20), default="🏆")

    requirement_type = Column(String(50), nullable=False)
    requirement_value = Column(Integer, nullable=True)
    requirement_param = Column(String(100), nullable=True)

    xp_bonus = Column(Integer, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)


class Achievement(RecognitionMixin, Base):
    __tablename__ = "achievements"

    is_secret = Column(Boolean, nullable=False, default=False)
    # is_secret → oculto en el panel hasta conseguirlo


class EarnedAchievement(Base):
    __tablename__ = "earned_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mentee_id = Column(Integer, ForeignKey("mentee_stats.id"), nullable=False)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)
    earned_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("mentee_id", "achievement_id", name="uq_mentee_achievement"),
    )

    mentee = relationship("MenteeStats", back_populates="earned_achievements")
    achievement = relationship("Achievement")


class Badge(RecognitionMixin, Base):
    __tablename__ = "badges"


class EarnedBadge(Base):
    __tablename__ = "earned_badges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mentee_id = Column(Integer, ForeignKey("mentee_stats.id"), nullable=False)
    badge_id = Column(Integer, ForeignKey("badges.id"), nullable=False)
    earned_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("mentee_id", "badge_id", name="uq_mentee_badge"),
    )

    mentee = relationship("MenteeStats", back_populates="earned_badges")
    badge = relationship("Badge")


# =============================================================================
# ===================== TABLA 9: ACTIVITY_LOG =================================
# =============================================================================
# Registro de auditoría de solo inserción. Las filas nunca se modifican ni se
# borran, el reset del operador solo añade una entrada progress_reset.

class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mentee_id = Column(Integer, ForeignKey("mentee_stats.id"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id"), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    quest = relationship("Quest")


# =============================================================================
# ===================== TABLA 10: QUEST_REACTIONS =============================
# =============================================================================

class QuestReaction(Base):
    __tablename__ = "quest_reactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quest_progress_id = Column(Integer, ForeignKey("quest_progress.id"), nullable=False)
    reaction = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    progress = relationship("QuestProgress", back_populates="reactions")
