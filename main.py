"""
=============================================================================
MAIN.PY — La API de Questline
=============================================================================
Todos los endpoints REST de la web del mentee y del mentor.

Secciones:
  1. AUTH        → token de enlace → JWT bearer
  2. DASHBOARD   → estadísticas, info de bonus
  3. QUESTS      → catálogo, empezar, entregar (mentee) / crear, editar, bloquear (mentor)
  4. REVIEW      → cola pendiente, aprobar / rechazar, reintento de logros
  5. REACTIONS   → emoji del mentor en misiones completadas
  6. ACTIVITY    → feed y línea temporal
  7. ADMIN       → reset del progreso

Los endpoints son finos: las reglas viven en gamification.py, achievements.py
y quests.py. Los errores de dominio (errors.py) se convierten aquí en JSON.
"""

import logging
import traceback
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from achievements import seed_achievements
from auth import create_access_token, get_current_role, require_mentor, role_for_access_token
from clock import Clock, get_clock
from database import SessionLocal, get_db, init_db
from errors import NotFoundError, QuestlineError, ValidationError
from gamification import (
    DEFAULT_RULES, RewardRules, derive_rank, is_first_daily_available,
    load_active_bonuses, reward_progress, streak_status
)
from models import (
    Achievement, ActivityAction, ActivityLog, EarnedAchievement, EarnedBadge,
    ProgressStatus, Quest, QuestProgress, QuestReaction
)
from quests import (
    VALID_REACTIONS, add_reaction, create_quest, deactivate_quest, ensure_mentee,
    list_pending_submissions, reset_progress, retry_achievements, review_submission,
    seed_bonus_events, seed_quests, set_lucky_quest, start_quest, submit_quest,
    toggle_quest_lock, update_quest
)
from schemas import (
    ActivityResponse, LuckyQuestRequest, ProgressResponse, QuestCreate, QuestResponse,
    QuestUpdate, ReactionCreate, ReactionResponse, ReviewRequest, SubmitRequest,
    TokenRequest, TokenResponse
)

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("questline.api")

APP_VERSION = "1.0.0"
SAFETY_CATEGORIES = {"Security", "Privacy"}
SAFETY_REMINDER = ("Never share passwords, 2FA codes or personal details in your evidence. "
                   "Blur anything sensitive before taking a screenshot.")
ACTIVITY_FEED_SIZE = 20
TIMELINE_WEEKS = 8


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Al arrancar:
      1. Crear las tablas
      2. Sembrar la fila del mentee, eventos bonus, logros, insignias y misiones iniciales
    """
    logger.info("🚀 Arrancando Questline...")

    init_db()
    logger.info("✅ Base de datos inicializada")

    db = SessionLocal()
    try:
        ensure_mentee(db)
        seed_bonus_events(db)
        seed_achievements(db)
        seed_quests(db)
    finally:
        db.close()

    logger.info("🎉 Questline operativo")

    yield

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Questline API",
    description="Quest progression and rewards for a single mentee",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_rules() -> RewardRules:
    """Configuración de recompensas (se sobreescribe en los tests)"""
    return DEFAULT_RULES


# ─────────────────────────────────────────────────────────────────────────────
# MANEJADORES DE ERRORES
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(QuestlineError)
async def questline_error_handler(request: Request, exc: QuestlineError):
    """Errores de dominio → JSON con su código de estado y la pista de reintento"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"⚠️ {exc.error_code} on {request.url.path}: {exc.message} {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Cualquier cosa no manejada: se registra la traza y se responde 500 con el tipo de error"""
    error_trace = traceback.format_exc()
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{error_trace}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    return {
        "status": "ok",
        "app": "Questline",
        "version": APP_VERSION,
        "timestamp": datetime.utcnow().isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: AUTH ========================================
# =============================================================================

@app.post("/auth/token", response_model=TokenResponse, tags=["Auth"])
def exchange_token(data: TokenRequest):
    """Token de enlace → JWT bearer con el rol"""
    role = role_for_access_token(data.token)
    if role is None:
        logger.warning("🚫 Token de acceso inválido")
        return JSONResponse(status_code=401, content={"detail": "Invalid access token"})
    logger.info(f"🔑 {role} ha iniciado sesión")
    return TokenResponse(access_token=create_access_token(role), role=role)


# =============================================================================
# ===================== SECCIÓN 2: DASHBOARD ===================================
# =============================================================================

def _serialize_quest(quest: Quest, progress: Optional[QuestProgress] = None, total_xp: int = 0) -> dict:
    data = QuestResponse.model_validate(quest).model_dump()
    data["is_unlocked"] = not quest.is_locked and total_xp >= (quest.unlock_at_xp or 0)
    data["status"] = progress.status if progress else ProgressStatus.available.value
    data["progress"] = ProgressResponse.model_validate(progress).model_dump() if progress else None
    return data


def _bonus_info(db: Session, stats, clock: Clock, rules: RewardRules) -> dict:
    today = clock.today()
    bonuses = load_active_bonuses(db, today, clock, rules)
    lucky = db.query(Quest).filter(Quest.is_lucky_quest == True, Quest.is_active == True).first()
    return {
        "isWeekend": clock.is_weekend(today),
        "weekendMultiplier": bonuses.weekend_multiplier,
        "firstDailyAvailable": is_first_daily_available(stats, today) and bonuses.first_daily_xp > 0,
        "firstDailyXp": bonuses.first_daily_xp,
        "activeEvents": [
            {
                "id": e.id,
                "name": e.name,
                "description": e.description,
                "eventType": e.event_type,
                "multiplier": e.multiplier,
                "bonusXp": e.bonus_xp,
            }
            for e in bonuses.events
        ],
        "luckyQuest": {
            "id": lucky.id,
            "title": lucky.title,
            "multiplier": lucky.lucky_multiplier,
        } if lucky else None,
    }


@app.get("/stats", tags=["Dashboard"])
def get_stats(
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    rules: RewardRules = Depends(get_rules),
):
    """Todo lo que muestra el dashboard en una sola llamada"""
    stats = ensure_mentee(db)
    today = clock.today()
    streak = streak_status(stats.last_streak_date, stats.current_streak,
                           stats.streak_freeze_available, today)

    quests = db.query(Quest).filter(Quest.is_active == True).order_by(Quest.sort_order, Quest.id).all()
    progress_by_quest = {
        p.quest_id: p for p in db.query(QuestProgress).filter(QuestProgress.mentee_id == stats.id)
    }
    by_status = defaultdict(int)
    for p in progress_by_quest.values():
        by_status[p.status] += 1

    unlocked = [q for q in quests if not q.is_locked and stats.total_xp >= q.unlock_at_xp]
    not_started = [q for q in unlocked if q.id not in progress_by_quest]

    # Misión sugerida: la de la suerte si sigue abierta, si no la primera sin empezar
    suggested = next((q for q in not_started if q.is_lucky_quest), None)
    if suggested is None and not_started:
        suggested = not_started[0]

    earned_achievements = {
        e.achievement_id: e.earned_at
        for e in db.query(EarnedAchievement).filter(EarnedAchievement.mentee_id == stats.id)
    }
    achievements = []
    for ach in db.query(Achievement).order_by(Achievement.sort_order, Achievement.id):
        earned = ach.id in earned_achievements
        if ach.is_secret and not earned:
            continue
        achievements.append({
            "code": ach.code,
            "name": ach.name,
            "description": ach.description,
            "icon": ach.icon,
            "xpBonus": ach.xp_bonus,
            "earned": earned,
            "earnedAt": earned_achievements.get(ach.id),
        })

    badges = [
        {
            "code": e.badge.code,
            "name": e.badge.name,
            "description": e.badge.description,
            "icon": e.badge.icon,
            "earnedAt": e.earned_at,
        }
        for e in db.query(EarnedBadge).filter(EarnedBadge.mentee_id == stats.id)
        .order_by(EarnedBadge.earned_at)
    ]

    return {
        "name": stats.name,
        "totalXp": stats.total_xp,
        "level": stats.level,
        "questsCompleted": stats.quests_completed,
        "totalBonusXp": stats.total_bonus_xp,
        "rank": derive_rank(stats.total_xp, rules).to_dict(),
        "streak": {
            "status": streak.label,
            "current": streak.current_streak,
            "longest": stats.longest_streak,
            "freezeAvailable": stats.streak_freeze_available,
            "daysSinceLastQuest": streak.days_since,
        },
        "quests": {
            "total": len(quests),
            "inProgress": by_status[ProgressStatus.in_progress.value],
            "pendingReview": by_status[ProgressStatus.submitted.value],
            "completed": by_status[ProgressStatus.completed.value],
            "unlocked": len(unlocked),
            "available": len(not_started),
        },
        "reward": reward_progress(stats, rules),
        "bonus": _bonus_info(db, stats, clock, rules),
        "suggestedQuest": _serialize_quest(suggested, None, stats.total_xp) if suggested else None,
        "achievements": achievements,
        "badges": badges,
    }


@app.get("/bonus", tags=["Dashboard"])
def get_bonus(
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    rules: RewardRules = Depends(get_rules),
):
    """Bonus que se aplicarían a una aprobación ahora mismo"""
    stats = ensure_mentee(db)
    return _bonus_info(db, stats, clock, rules)


# =============================================================================
# ===================== SECCIÓN 3: MISIONES ====================================
# =============================================================================

@app.get("/quests", tags=["Quests"])
def list_quests(
    category: Optional[str] = None,
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
):
    """Catálogo activo con el progreso del mentee en cada misión"""
    stats = ensure_mentee(db)
    query = db.query(Quest).filter(Quest.is_active == True)
    if category:
        query = query.filter(Quest.category == category)
    quests = query.order_by(Quest.sort_order, Quest.id).all()

    progress_by_quest = {
        p.quest_id: p for p in db.query(QuestProgress).filter(QuestProgress.mentee_id == stats.id)
    }
    return [_serialize_quest(q, progress_by_quest.get(q.id), stats.total_xp) for q in quests]


@app.post("/quests", tags=["Quests"])
def create_quest_endpoint(data: QuestCreate, role: str = Depends(require_mentor), db: Session = Depends(get_db)):
    quest = create_quest(db, data.model_dump())
    return QuestResponse.model_validate(quest)


@app.post("/quests/lucky", tags=["Quests"])
def pin_lucky_quest(
    data: LuckyQuestRequest,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
    rules: RewardRules = Depends(get_rules),
):
    """El mentor elige a mano la misión de la suerte"""
    quest = set_lucky_quest(db, data.quest_id, rules)
    logger.info(f"🍀 Misión de la suerte fijada: {quest.title}")
    return QuestResponse.model_validate(quest)


@app.get("/quests/{quest_id}", tags=["Quests"])
def get_quest(quest_id: int, role: str = Depends(get_current_role), db: Session = Depends(get_db)):
    """Una misión con su progreso, sus reacciones y el aviso de seguridad si toca"""
    stats = ensure_mentee(db)
    quest = db.get(Quest, quest_id)
    if quest is None or not quest.is_active:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})

    progress = db.query(QuestProgress).filter(
        QuestProgress.mentee_id == stats.id, QuestProgress.quest_id == quest_id
    ).first()

    data = _serialize_quest(quest, progress, stats.total_xp)
    data["reactions"] = [
        ReactionResponse.model_validate(r).model_dump() for r in progress.reactions
    ] if progress else []
    data["safety_reminder"] = SAFETY_REMINDER if quest.category in SAFETY_CATEGORIES else None
    return data


@app.post("/quests/{quest_id}/start", tags=["Quests"])
def start_quest_endpoint(
    quest_id: int,
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    stats = ensure_mentee(db)
    progress = start_quest(db, stats.id, quest_id, clock)
    return ProgressResponse.model_validate(progress)


@app.post("/quests/{quest_id}/submit", tags=["Quests"])
def submit_quest_endpoint(
    quest_id: int,
    data: SubmitRequest,
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    stats = ensure_mentee(db)
    links = [str(link) for link in data.evidence_links]
    progress = submit_quest(db, stats.id, quest_id, links, data.reflection, clock)
    return ProgressResponse.model_validate(progress)


@app.put("/quests/{quest_id}", tags=["Quests"])
def update_quest_endpoint(
    quest_id: int,
    data: QuestUpdate,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
):
    quest = update_quest(db, quest_id, data.model_dump(exclude_unset=True))
    return QuestResponse.model_validate(quest)


@app.post("/quests/{quest_id}/toggle-lock", tags=["Quests"])
def toggle_lock_endpoint(quest_id: int, role: str = Depends(require_mentor), db: Session = Depends(get_db)):
    quest = toggle_quest_lock(db, quest_id)
    return {"id": quest.id, "is_locked": quest.is_locked}


@app.delete("/quests/{quest_id}", tags=["Quests"])
def delete_quest_endpoint(quest_id: int, role: str = Depends(require_mentor), db: Session = Depends(get_db)):
    """Borrado suave"""
    deactivate_quest(db, quest_id)
    return {"success": True, "message": "Quest deactivated"}


# =============================================================================
# ===================== SECCIÓN 4: REVISIÓN =====================================
# =============================================================================

@app.get("/submissions", tags=["Review"])
def list_submissions(role: str = Depends(require_mentor), db: Session = Depends(get_db)):
    """Entregas que esperan al mentor, las más antiguas primero"""
    return [
        {
            **ProgressResponse.model_validate(p).model_dump(),
            "quest": {
                "id": p.quest.id,
                "title": p.quest.title,
                "category": p.quest.category,
                "xp_reward": p.quest.xp_reward,
                "is_lucky_quest": p.quest.is_lucky_quest,
            },
        }
        for p in list_pending_submissions(db)
    ]


@app.post("/submissions/{progress_id}", tags=["Review"])
def review_submission_endpoint(
    progress_id: int,
    data: ReviewRequest,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    rules: RewardRules = Depends(get_rules),
):
    """Aprobar (paga la recompensa) o rechazar (vuelve al mentee)"""
    result = review_submission(db, progress_id, data.action, data.feedback, clock, rules)
    return result.to_dict()


@app.post("/submissions/{progress_id}/achievements", tags=["Review"])
def retry_achievements_endpoint(
    progress_id: int,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    rules: RewardRules = Depends(get_rules),
):
    """Repite el paso de logros tras una aprobación que devolvió achievementsPending"""
    outcome = retry_achievements(db, progress_id, clock, rules)
    return {
        "achievementsUnlocked": [line.to_dict() for line in outcome.lines],
        "xpBonus": outcome.xp_bonus,
        "newTotalXp": outcome.total_xp,
        "newLevel": outcome.level,
    }


# =============================================================================
# ===================== SECCIÓN 5: REACCIONES ==================================
# =============================================================================

@app.get("/reactions", tags=["Reactions"])
def list_reactions(
    quest_progress_id: Optional[int] = None,
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
):
    query = db.query(QuestReaction)
    if quest_progress_id is not None:
        query = query.filter(QuestReaction.quest_progress_id == quest_progress_id)
    return {
        "validReactions": VALID_REACTIONS,
        "reactions": [
            ReactionResponse.model_validate(r).model_dump()
            for r in query.order_by(QuestReaction.created_at.desc())
        ],
    }


@app.post("/reactions", response_model=ReactionResponse, tags=["Reactions"])
def create_reaction(
    data: ReactionCreate,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return add_reaction(db, data.quest_progress_id, data.reaction, clock)


# =============================================================================
# ===================== SECCIÓN 6: ACTIVIDAD ===================================
# =============================================================================

@app.get("/activity", tags=["Activity"])
def get_activity(role: str = Depends(get_current_role), db: Session = Depends(get_db)):
    """Últimas entradas del registro de actividad"""
    entries = db.query(ActivityLog).order_by(
        ActivityLog.created_at.desc(), ActivityLog.id.desc()
    ).limit(ACTIVITY_FEED_SIZE).all()
    return [
        {
            **ActivityResponse.model_validate(e).model_dump(),
            "quest_title": e.quest.title if e.quest else None,
        }
        for e in entries
    ]


@app.get("/timeline", tags=["Activity"])
def get_timeline(
    weeks: int = Query(default=TIMELINE_WEEKS, ge=1, le=52),
    role: str = Depends(get_current_role),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    El recorrido del mentee:
      - misiones y XP por semana (semanas de lunes, hora local)
      - duración del recorrido en días
      - hitos: subidas de nivel, logros, insignias
    """
    stats = ensure_mentee(db)
    today = clock.today()
    this_monday = today - timedelta(days=today.weekday())
    first_monday = this_monday - timedelta(weeks=weeks - 1)

    weekly = {first_monday + timedelta(weeks=i): {"completed": 0, "xp": 0} for i in range(weeks)}
    approvals = db.query(ActivityLog).filter(
        ActivityLog.action == ActivityAction.quest_approved.value,
        ActivityLog.created_at >= clock.start_of_day_utc(first_monday),
    ).all()
    for entry in approvals:
        day = clock.local_time(entry.created_at).date()
        week = day - timedelta(days=day.weekday())
        if week in weekly:
            weekly[week]["completed"] += 1
            weekly[week]["xp"] += (entry.details or {}).get("xpAwarded", 0)

    milestones = db.query(ActivityLog).filter(ActivityLog.action.in_([
        ActivityAction.level_up.value,
        ActivityAction.achievement_unlocked.value,
        ActivityAction.badge_earned.value,
    ])).order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).all()

    started = stats.created_at and clock.local_time(stats.created_at).date()
    total_quest_xp = db.query(func.coalesce(func.sum(Quest.xp_reward), 0)).join(
        QuestProgress, QuestProgress.quest_id == Quest.id
    ).filter(
        QuestProgress.mentee_id == stats.id,
        QuestProgress.status == ProgressStatus.completed.value
    ).scalar()

    return {
        "weeks": [
            {"weekStart": week.isoformat(), **values}
            for week, values in sorted(weekly.items())
        ],
        "totals": {
            "questsCompleted": stats.quests_completed,
            "totalXp": stats.total_xp,
            "baseXp": total_quest_xp,
            "bonusXp": stats.total_bonus_xp,
            "longestStreak": stats.longest_streak,
        },
        "journeyDays": max((today - started).days + 1, 1) if started else 0,
        "milestones": [ActivityResponse.model_validate(m).model_dump() for m in milestones],
    }


# =============================================================================
# ===================== SECCIÓN 7: ADMIN =======================================
# =============================================================================

@app.post("/admin/reset", tags=["Admin"])
def reset_endpoint(
    confirm: bool = False,
    role: str = Depends(require_mentor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Borra el progreso del mentee. Necesita ?confirm=true"""
    if not confirm:
        raise ValidationError("Reset needs confirm=true")
    stats = reset_progress(db, ensure_mentee(db).id, clock)
    return {"success": True, "totalXp": stats.total_xp, "level": stats.level}
