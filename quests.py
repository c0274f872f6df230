"""
=============================================================================
QUESTS.PY — Máquina de estados de las misiones y flujo de aprobación
=============================================================================
Estados de un par (mentee, misión):

  available ──start──→ in_progress ──submit──→ submitted ──approve──→ completed
                           ↑                       │
                           └────────reject─────────┘

Cada transición es un UPDATE condicional (... WHERE status = <esperado>):
si la fila cambió entretanto, no se escribe nada y quien llama recibe un
StateConflictError. Eso es lo que impide que una doble aprobación pague dos veces.

Flujo de aprobación (acción del mentor), en orden:
  1. [transacción] caducar una racha perdida, avanzar la racha, calcular la
     recompensa, escribir las stats, completar el progreso, registrar la actividad
  2. [transacción] logros e insignias (reintentable, nunca deshace el paso 1)
  3. [transacción] rotar la misión de la suerte (los fallos solo se registran)
"""

from dataclasses import dataclass, field
from typing import Optional
import logging
import random

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from achievements import CompletionEvent, award_achievements
from clock import Clock
from errors import (
    AlreadyCompleted, AlreadyStarted, AlreadySubmitted, ConcurrencyConflictError,
    NoActiveProgress, NotFoundError, NotSubmitted, PersistenceError, QuestLocked,
    StateConflictError, ValidationError
)
from gamification import (
    DEFAULT_RULES, RewardRules, advance_streak, apply_reward, calculate_reward,
    expire_lapsed_streak, is_first_daily_available, load_active_bonuses
)
from models import (
    ActivityAction, ActivityLog, BonusEvent, BonusEventType, EarnedAchievement,
    EarnedBadge, MenteeStats, ProgressStatus, Quest, QuestProgress, QuestReaction
)

logger = logging.getLogger("questline.quests")

MIN_QUEST_XP = 10
MAX_QUEST_XP = 1000
VALID_REACTIONS = ["🔥", "💪", "👏", "🎯", "💎"]
REVIEW_ACTIONS = ("approve", "reject")


# =============================================================================
# ===================== MENTEE ================================================
# =============================================================================

def ensure_mentee(db: Session) -> MenteeStats:
    """Devuelve la fila del mentee, creándola la primera vez"""
    stats = db.query(MenteeStats).order_by(MenteeStats.id).first()
    if stats is None:
        stats = MenteeStats()
        db.add(stats)
        db.commit()
        logger.info("✅ Fila de stats del mentee creada (id=%s)", stats.id)
    return stats


def _log(db: Session, action: ActivityAction, mentee_id: Optional[int] = None,
         quest_id: Optional[int] = None, details: Optional[dict] = None, at=None):
    entry = ActivityLog(mentee_id=mentee_id, action=action.value, quest_id=quest_id, details=details)
    if at is not None:
        entry.created_at = at
    db.add(entry)


def _transition(db: Session, progress_id: int, expected: ProgressStatus, values: dict) -> bool:
    """UPDATE quest_progress SET ... WHERE id = ? AND status = <expected>"""
    updated = db.query(QuestProgress).filter(
        QuestProgress.id == progress_id,
        QuestProgress.status == expected.value
    ).update(values, synchronize_session="fetch")
    return updated == 1


# =============================================================================
# ===================== EMPEZAR / ENTREGAR (mentee) ===========================
# =============================================================================

def start_quest(db: Session, mentee_id: int, quest_id: int, clock: Clock) -> QuestProgress:
    """
    available → in_progress.
    Falla con AlreadyStarted si ya hay fila de progreso y con QuestLocked
    mientras la misión está bloqueada o al mentee le falta XP para desbloquearla.
    """
    quest = db.get(Quest, quest_id)
    if quest is None or not quest.is_active:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})

    existing = db.query(QuestProgress).filter(
        QuestProgress.mentee_id == mentee_id, QuestProgress.quest_id == quest_id
    ).first()
    if existing:
        raise AlreadyStarted("Quest already started", {"quest_id": quest_id, "status": existing.status})

    stats = db.get(MenteeStats, mentee_id)
    if stats is None:
        raise NotFoundError("Mentee not found", {"mentee_id": mentee_id})
    if quest.is_locked or stats.total_xp < (quest.unlock_at_xp or 0):
        raise QuestLocked("Quest is locked", {
            "quest_id": quest_id, "unlock_at_xp": quest.unlock_at_xp, "total_xp": stats.total_xp
        })

    now = clock.utcnow()
    progress = QuestProgress(
        mentee_id=mentee_id,
        quest_id=quest_id,
        status=ProgressStatus.in_progress.value,
        started_at=now,
    )
    db.add(progress)
    _log(db, ActivityAction.quest_started, mentee_id, quest_id, at=now)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyStarted("Quest already started", {"quest_id": quest_id})

    return progress


def submit_quest(db: Session, mentee_id: int, quest_id: int, evidence_links: list,
                 reflection: Optional[str], clock: Clock) -> QuestProgress:
    """
    in_progress → submitted. Necesita al menos un enlace de evidencia (ya saneado).
    """
    if not evidence_links:
        raise ValidationError("At least one evidence link required")

    progress = db.query(QuestProgress).filter(
        QuestProgress.mentee_id == mentee_id, QuestProgress.quest_id == quest_id
    ).first()
    if progress is None:
        raise NoActiveProgress("Quest has not been started", {"quest_id": quest_id})
    if progress.status == ProgressStatus.completed.value:
        raise AlreadyCompleted("Quest already completed", {"quest_id": quest_id})
    if progress.status == ProgressStatus.submitted.value:
        raise AlreadySubmitted("Quest already waiting for review", {"quest_id": quest_id})

    now = clock.utcnow()
    moved = _transition(db, progress.id, ProgressStatus.in_progress, {
        "status": ProgressStatus.submitted.value,
        "evidence_links": list(evidence_links),
        "reflection": reflection or "",
        "submitted_at": now,
        "updated_at": now,
    })
    if not moved:
        db.rollback()
        raise NoActiveProgress("Quest is not in progress anymore", {"quest_id": quest_id})

    _log(db, ActivityAction.quest_submitted, mentee_id, quest_id, at=now)
    db.commit()
    db.refresh(progress)
    return progress


# =============================================================================
# ===================== REVISIÓN (mentor) ======================================
# =============================================================================

@dataclass
class ReviewResult:
    """Lo que devuelve la capa HTTP tras una revisión"""

    status: str
    xp_awarded: int = 0
    base_xp: int = 0
    bonus_breakdown: list = field(default_factory=list)
    new_total_xp: int = 0
    new_level: int = 1
    leveled_up: bool = False
    new_streak: int = 0
    achievements_unlocked: list = field(default_factory=list)
    reward_earned: bool = False
    achievements_pending: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "status": self.status,
            "xpAwarded": self.xp_awarded,
            "baseXp": self.base_xp,
            "bonusBreakdown": [line.to_dict() for line in self.bonus_breakdown],
            "newTotalXp": self.new_total_xp,
            "newLevel": self.new_level,
            "leveledUp": self.leveled_up,
            "newStreak": self.new_streak,
            "achievementsUnlocked": [line.to_dict() for line in self.achievements_unlocked],
            "rewardEarned": self.reward_earned,
            "achievementsPending": self.achievements_pending,
        }


def _load_submitted(db: Session, progress_id: int) -> QuestProgress:
    progress = db.get(QuestProgress, progress_id, populate_existing=True)
    if progress is None:
        raise NotFoundError("Submission not found", {"progress_id": progress_id})
    if progress.status == ProgressStatus.completed.value:
        raise AlreadyCompleted("Submission already reviewed", {"progress_id": progress_id})
    if progress.status != ProgressStatus.submitted.value:
        raise NotSubmitted("Submission is not waiting for review",
                           {"progress_id": progress_id, "status": progress.status})
    return progress


def approve_submission(db: Session, progress_id: int, feedback: str, clock: Clock,
                       rules: RewardRules = DEFAULT_RULES,
                       rng: Optional[random.Random] = None) -> ReviewResult:
    """
    submitted → completed, pagando la recompensa.

    Flujo:
      1. Bloquear la fila del mentee (versión optimista + FOR UPDATE)
      2. Caducar una racha perdida y después avanzarla
      3. Resolver los bonus de hoy y calcular el desglose de XP
      4. Escribir las stats, completar el progreso (UPDATE condicional)
      5. Registrar quest_approved (+ level_up / streak_freeze_used)
      6. Commit: todo lo anterior o nada
      7. Logros e insignias, rotación de la misión de la suerte (pasos aparte)
    """
    progress = _load_submitted(db, progress_id)
    quest = progress.quest
    now = clock.utcnow()
    today = clock.today()

    try:
        stats = db.get(MenteeStats, progress.mentee_id, with_for_update=True, populate_existing=True)
        if stats is None:
            raise NotFoundError("Mentee not found", {"mentee_id": progress.mentee_id})

        if expire_lapsed_streak(stats, today):
            _log(db, ActivityAction.streak_expired, stats.id, at=now,
                 details={"lastStreakDate": stats.last_streak_date.isoformat()})

        streak = advance_streak(
            stats.last_streak_date, stats.current_streak, stats.longest_streak,
            stats.streak_freeze_available, today
        )
        was_lucky = bool(quest.is_lucky_quest)
        breakdown = calculate_reward(
            quest.xp_reward,
            streak=streak,
            bonuses=load_active_bonuses(db, today, clock, rules),
            first_daily_available=is_first_daily_available(stats, today),
            lucky_multiplier=quest.lucky_multiplier if was_lucky else None,
            rules=rules,
        )
        applied = apply_reward(stats, breakdown, today, now, rules)

        moved = _transition(db, progress.id, ProgressStatus.submitted, {
            "status": ProgressStatus.completed.value,
            "was_lucky": was_lucky,
            "mentor_feedback": feedback or "",
            "completed_at": now,
            "reviewed_at": now,
            "updated_at": now,
        })
        if not moved:
            raise NotSubmitted("Submission was reviewed by someone else", {"progress_id": progress_id})

        _log(db, ActivityAction.quest_approved, stats.id, quest.id, at=now, details={
            "xpAwarded": breakdown.total_xp_awarded,
            "baseXp": breakdown.base_xp,
            "bonusBreakdown": [line.to_dict() for line in breakdown.lines],
            "newStreak": streak.streak,
        })
        if streak.freeze_consumed:
            _log(db, ActivityAction.streak_freeze_used, stats.id, at=now,
                 details={"streak": streak.streak})
        if applied.leveled_up:
            _log(db, ActivityAction.level_up, stats.id, at=now,
                 details={"from": applied.old_level, "to": applied.new_level})

        db.commit()

    except StateConflictError:
        db.rollback()
        raise
    except NotFoundError:
        db.rollback()
        raise
    except StaleDataError as e:
        db.rollback()
        logger.warning("🔁 Actualización concurrente de las stats del mentee al aprobar #%s", progress_id)
        raise ConcurrencyConflictError(
            "Mentee stats changed during the approval, retry", {"progress_id": progress_id}
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("❌ Falló la aprobación de #%s: %s", progress_id, e)
        raise PersistenceError("Could not save the approval", {"progress_id": progress_id}) from e

    logger.info("⭐ Misión '%s' aprobada: +%s XP (base %s) → %s XP, nivel %s",
                quest.title, breakdown.total_xp_awarded, breakdown.base_xp,
                applied.new_total_xp, applied.new_level)

    result = ReviewResult(
        status=ProgressStatus.completed.value,
        xp_awarded=breakdown.total_xp_awarded,
        base_xp=breakdown.base_xp,
        bonus_breakdown=list(breakdown.lines),
        new_total_xp=applied.new_total_xp,
        new_level=applied.new_level,
        leveled_up=applied.leveled_up,
        new_streak=streak.streak,
        reward_earned=applied.reward_earned,
    )

    # ── Logros e insignias ──
    event = CompletionEvent(
        quest_id=quest.id,
        category=quest.category,
        difficulty=quest.difficulty,
        completed_at=clock.local_time(now),
        was_lucky=was_lucky,
    )
    try:
        unlocked = award_achievements(db, stats.id, clock, event, rules)
        result.achievements_unlocked = unlocked.lines
        result.new_total_xp = unlocked.total_xp
        result.new_level = unlocked.level
        result.leveled_up = unlocked.level > applied.old_level
    except (ConcurrencyConflictError, SQLAlchemyError) as e:
        db.rollback()
        logger.error("❌ Falló el paso de logros tras aprobar #%s (reintentable): %s", progress_id, e)
        result.achievements_pending = True

    # ── Misión de la suerte ──
    rotate_lucky_quest(db, clock, rules, rng)

    return result


def reject_submission(db: Session, progress_id: int, feedback: str, clock: Clock) -> ReviewResult:
    """
    submitted → in_progress. Conserva started_at, guarda el comentario y deja
    que el mentee vuelva a entregar.
    """
    progress = _load_submitted(db, progress_id)
    now = clock.utcnow()

    moved = _transition(db, progress.id, ProgressStatus.submitted, {
        "status": ProgressStatus.in_progress.value,
        "mentor_feedback": feedback or "",
        "reviewed_at": now,
        "updated_at": now,
        "rejection_count": QuestProgress.rejection_count + 1,
    })
    if not moved:
        db.rollback()
        raise NotSubmitted("Submission was reviewed by someone else", {"progress_id": progress_id})

    _log(db, ActivityAction.quest_rejected, progress.mentee_id, progress.quest_id, at=now,
         details={"feedback": feedback or ""})
    db.commit()
    logger.info("↩️ Entrega #%s devuelta al mentee", progress_id)

    stats = db.get(MenteeStats, progress.mentee_id)
    return ReviewResult(
        status="rejected",
        new_total_xp=stats.total_xp,
        new_level=stats.level,
        new_streak=stats.current_streak,
    )


def review_submission(db: Session, progress_id: int, action: str, feedback: str,
                      clock: Clock, rules: RewardRules = DEFAULT_RULES,
                      rng: Optional[random.Random] = None) -> ReviewResult:
    """Punto de entrada de la capa HTTP: (id de progreso, approve|reject, comentario)"""
    if action not in REVIEW_ACTIONS:
        raise ValidationError("Invalid action", {"action": action, "allowed": list(REVIEW_ACTIONS)})
    if action == "approve":
        return approve_submission(db, progress_id, feedback, clock, rules, rng)
    return reject_submission(db, progress_id, feedback, clock)


def retry_achievements(db: Session, progress_id: int, clock: Clock,
                       rules: RewardRules = DEFAULT_RULES):
    """
    Repite el paso de logros de una entrega aprobada con el mismo evento:
    la marca de suerte guardada y el día local en que se completó.
    Idempotente: los reconocimientos ya conseguidos se saltan.
    """
    progress = db.get(QuestProgress, progress_id)
    if progress is None:
        raise NotFoundError("Submission not found", {"progress_id": progress_id})
    if progress.status != ProgressStatus.completed.value:
        raise StateConflictError("Submission is not approved", {"progress_id": progress_id})

    quest = progress.quest
    event = CompletionEvent(
        quest_id=quest.id,
        category=quest.category,
        difficulty=quest.difficulty,
        completed_at=clock.local_time(progress.completed_at),
        was_lucky=bool(progress.was_lucky),
    )
    return award_achievements(db, progress.mentee_id, clock, event, rules)


# =============================================================================
# ===================== MISIÓN DE LA SUERTE ====================================
# =============================================================================

def rotate_lucky_quest(db: Session, clock: Clock, rules: RewardRules = DEFAULT_RULES,
                       rng: Optional[random.Random] = None) -> Optional[int]:
    """
    Quita la marca de suerte de todas partes y la pone en una misión activa
    y desbloqueada al azar.

    El sorteo es más estrecho que "cualquier misión activa y desbloqueada":
    quedan fuera las ya completadas o pendientes de revisión, cuyo
    multiplicador el mentee nunca podría cobrar. Solo si no queda ninguna
    otra se sortea entre todas las activas y desbloqueadas.

    Nunca lanza excepciones: una rotación fallida no debe afectar a la aprobación.
    """
    rng = rng or random
    try:
        db.query(Quest).filter(Quest.is_lucky_quest == True).update(
            {"is_lucky_quest": False, "lucky_multiplier": 1.0}, synchronize_session="fetch"
        )

        eligible = db.query(Quest.id).filter(Quest.is_active == True, Quest.is_locked == False)
        done = select(QuestProgress.quest_id).where(QuestProgress.status.in_(
            [ProgressStatus.completed.value, ProgressStatus.submitted.value]
        ))
        candidates = [row[0] for row in eligible.filter(Quest.id.not_in(done)).order_by(Quest.id)]
        if not candidates:
            candidates = [row[0] for row in eligible.order_by(Quest.id)]

        chosen = None
        if candidates:
            chosen = rng.choice(candidates)
            db.query(Quest).filter(Quest.id == chosen).update(
                {"is_lucky_quest": True, "lucky_multiplier": rules.lucky_multiplier},
                synchronize_session="fetch"
            )
            _log(db, ActivityAction.lucky_quest_rotated, quest_id=chosen, at=clock.utcnow(),
                 details={"multiplier": rules.lucky_multiplier})

        db.commit()
        logger.info("🍀 La misión de la suerte ahora es #%s", chosen)
        return chosen

    except SQLAlchemyError:
        db.rollback()
        logger.exception("❌ Falló la rotación de la misión de la suerte")
        return None


def set_lucky_quest(db: Session, quest_id: int, rules: RewardRules = DEFAULT_RULES) -> Quest:
    """El mentor fija una misión concreta como la de la suerte"""
    quest = db.get(Quest, quest_id)
    if quest is None or not quest.is_active:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})

    db.query(Quest).filter(Quest.is_lucky_quest == True).update(
        {"is_lucky_quest": False, "lucky_multiplier": 1.0}, synchronize_session="fetch"
    )
    quest.is_lucky_quest = True
    quest.lucky_multiplier = rules.lucky_multiplier
    db.commit()
    return quest


# =============================================================================
# ===================== CATÁLOGO DE MISIONES (mentor) ==========================
# =============================================================================

QUEST_FIELDS = (
    "title", "description", "category", "difficulty", "xp_reward", "steps",
    "why_it_matters", "safety_notes", "evidence_examples", "tier",
    "unlock_at_xp", "is_locked", "sort_order",
)


def clamp_xp(xp_reward: int) -> int:
    return min(max(int(xp_reward), MIN_QUEST_XP), MAX_QUEST_XP)


def create_quest(db: Session, data: dict) -> Quest:
    values = {k: v for k, v in data.items() if k in QUEST_FIELDS and v is not None}
    if "xp_reward" in values:
        values["xp_reward"] = clamp_xp(values["xp_reward"])
    quest = Quest(**values)
    db.add(quest)
    db.commit()
    db.refresh(quest)
    logger.info("📜 Misión creada: %s (%s XP)", quest.title, quest.xp_reward)
    return quest


def update_quest(db: Session, quest_id: int, data: dict) -> Quest:
    quest = db.get(Quest, quest_id)
    if quest is None:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})
    for key, value in data.items():
        if key in QUEST_FIELDS and value is not None:
            setattr(quest, key, clamp_xp(value) if key == "xp_reward" else value)
    db.commit()
    db.refresh(quest)
    return quest


def toggle_quest_lock(db: Session, quest_id: int) -> Quest:
    quest = db.get(Quest, quest_id)
    if quest is None:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})
    quest.is_locked = not quest.is_locked
    db.commit()
    return quest


def deactivate_quest(db: Session, quest_id: int) -> Quest:
    """Borrado lógico: la misión desaparece del catálogo, su historial se queda"""
    quest = db.get(Quest, quest_id)
    if quest is None:
        raise NotFoundError("Quest not found", {"quest_id": quest_id})
    quest.is_active = False
    quest.is_lucky_quest = False
    quest.lucky_multiplier = 1.0
    db.commit()
    return quest


def list_pending_submissions(db: Session) -> list:
    return db.query(QuestProgress).filter(
        QuestProgress.status == ProgressStatus.submitted.value
    ).order_by(QuestProgress.submitted_at.asc()).all()


# =============================================================================
# ===================== REACCIONES ============================================
# =============================================================================

def add_reaction(db: Session, progress_id: int, reaction: str, clock: Clock) -> QuestReaction:
    if reaction not in VALID_REACTIONS:
        raise ValidationError("Invalid reaction", {"reaction": reaction, "allowed": VALID_REACTIONS})

    progress = db.get(QuestProgress, progress_id)
    if progress is None or progress.status != ProgressStatus.completed.value:
        raise NotFoundError("Quest not found or not completed", {"progress_id": progress_id})

    now = clock.utcnow()
    row = QuestReaction(quest_progress_id=progress_id, reaction=reaction, created_at=now)
    db.add(row)
    _log(db, ActivityAction.reaction_added, progress.mentee_id, progress.quest_id, at=now,
         details={"progressId": progress_id, "reaction": reaction})
    db.commit()
    return row


# =============================================================================
# ===================== RESET DEL OPERADOR ====================================
# =============================================================================

def reset_progress(db: Session, mentee_id: int, clock: Clock) -> MenteeStats:
    """
    Borra el recorrido del mentee: stats a cero (con el comodín de nuevo),
    progreso, reacciones y reconocimientos conseguidos borrados. El registro
    de actividad conserva su historial y recibe una entrada progress_reset.
    """
    stats = db.get(MenteeStats, mentee_id)
    if stats is None:
        raise NotFoundError("Mentee not found", {"mentee_id": mentee_id})

    progress_ids = select(QuestProgress.id).where(QuestProgress.mentee_id == mentee_id)
    db.query(QuestReaction).filter(
        QuestReaction.quest_progress_id.in_(progress_ids)
    ).delete(synchronize_session=False)
    db.query(QuestProgress).filter(QuestProgress.mentee_id == mentee_id).delete(synchronize_session=False)
    db.query(EarnedAchievement).filter(EarnedAchievement.mentee_id == mentee_id).delete(synchronize_session=False)
    db.query(EarnedBadge).filter(EarnedBadge.mentee_id == mentee_id).delete(synchronize_session=False)

    previous_xp = stats.total_xp
    stats.total_xp = 0
    stats.level = 1
    stats.quests_completed = 0
    stats.total_bonus_xp = 0
    stats.current_streak = 0
    stats.longest_streak = 0
    stats.streak_freeze_available = True
    stats.last_streak_date = None
    stats.first_quest_today = False
    stats.last_first_quest_date = None
    stats.quests_toward_reward = 0
    stats.rewards_claimed = 0
    stats.last_activity_at = None

    _log(db, ActivityAction.progress_reset, mentee_id, at=clock.utcnow(),
         details={"previousXp": previous_xp})
    db.commit()
    db.expire_all()
    logger.warning("🧹 Progreso del mentee #%s reseteado (tenía %s XP)", mentee_id, previous_xp)
    return db.get(MenteeStats, mentee_id)


# =============================================================================
# ===================== SEMILLAS ==============================================
# =============================================================================

DEFAULT_BONUS_EVENTS = [
    {"name": "First Quest of the Day", "description": "Bonus XP for your first completed quest each day",
     "event_type": BonusEventType.first_daily.value, "multiplier": 1.0, "bonus_xp": 25, "days_of_week": None},
    {"name": "Weekend Warrior", "description": "Double XP on weekends!",
     "event_type": BonusEventType.weekend.value, "multiplier": 2.0, "bonus_xp": 0,
     "days_of_week": ["saturday", "sunday"]},
]

STARTER_QUESTS = [
    {"title": "Secure Your Passwords", "category": "Security", "difficulty": "beginner", "xp_reward": 100,
     "description": "Set up a password manager and replace your three most reused passwords.",
     "steps": ["Pick a password manager", "Create a strong master password", "Replace 3 reused passwords"],
     "evidence_examples": ["Screenshot of the password manager vault (names only)"], "sort_order": 1},
    {"title": "Turn On Two-Factor Authentication", "category": "Security", "difficulty": "beginner", "xp_reward": 150,
     "description": "Protect your email account with 2FA.",
     "steps": ["Open the account security settings", "Enable 2FA with an authenticator app", "Save the backup codes"],
     "safety_notes": "NEVER share 2FA codes with anyone.", "sort_order": 2},
    {"title": "Privacy Checkup", "category": "Privacy", "difficulty": "beginner", "xp_reward": 100,
     "description": "Review the privacy settings of one social account.",
     "steps": ["Open privacy settings", "Limit who sees your posts", "Remove your phone number from the profile"],
     "sort_order": 3},
    {"title": "Your First Web Page", "category": "Digital Skills", "difficulty": "intermediate", "xp_reward": 200,
     "description": "Write a small HTML page about a hobby.",
     "steps": ["Create index.html", "Add a heading, a list and an image", "Open it in the browser"],
     "sort_order": 4},
    {"title": "Version Control Basics", "category": "Digital Skills", "difficulty": "advanced", "xp_reward": 300,
     "description": "Put a project on GitHub with at least three commits.",
     "steps": ["Create a repository", "Commit your web page", "Push three meaningful commits"],
     "safety_notes": "Never commit passwords or API keys.", "unlock_at_xp": 200, "sort_order": 5},
]


def seed_bonus_events(db: Session):
    """Inserta los eventos de bonus por defecto si el catálogo está vacío"""
    if db.query(BonusEvent).count() == 0:
        for item in DEFAULT_BONUS_EVENTS:
            db.add(BonusEvent(**item))
        db.commit()
        logger.info("✅ %s eventos de bonus insertados", len(DEFAULT_BONUS_EVENTS))


def seed_quests(db: Session):
    """Inserta las misiones iniciales si el catálogo está vacío"""
    if db.query(Quest).count() == 0:
        for item in STARTER_QUESTS:
            db.add(Quest(**item))
        db.commit()
        logger.info("✅ %s misiones iniciales insertadas", len(STARTER_QUESTS))
