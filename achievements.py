"""
=============================================================================
ACHIEVEMENTS.PY — Logros e insignias
=============================================================================
Después de cada aprobación (con el XP ya confirmado) el evaluador:
  1. saca una foto de los agregados del mentee (XP, nivel, misiones por
     categoría / dificultad, racha, misiones de hoy, rechazos...)
  2. comprueba cada logro e insignia que AÚN no tiene contra esa foto
  3. inserta las filas conseguidas + una entrada de actividad por cada una
  4. suma al XP total el bonus de XP de los reconocimientos

Los requisitos son variantes tipadas (TotalCompleted, NightOwl...), que
parse_requirement() construye a partir de las columnas del catálogo.

Conceder es idempotente: (mentee, logro) es UNIQUE en la base de datos, así
que dos evaluadores compitiendo por la misma aprobación dejan una sola fila.
El perdedor hace rollback y vuelve a evaluar, sin encontrar nada nuevo.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clock import Clock
from errors import ConcurrencyConflictError, NotFoundError
from gamification import BonusLine, DEFAULT_RULES, RewardRules, calculate_level
from models import (
    ActivityAction, ActivityLog, Achievement, Badge, EarnedAchievement, EarnedBadge,
    MenteeStats, ProgressStatus, Quest, QuestProgress
)

logger = logging.getLogger("questline.achievements")

MAX_ATTEMPTS = 3
MAX_ROUNDS = 5
# MAX_ROUNDS → el bonus de XP puede desbloquear logros de nivel/XP, se reevalúa


# =============================================================================
# ===================== FOTO DEL PROGRESO =====================================
# =============================================================================

@dataclass
class CompletionEvent:
    """La aprobación que lanzó la evaluación"""
    quest_id: int
    category: str
    difficulty: str
    completed_at: datetime
    # completed_at → hora LOCAL (night owl mira el reloj del mentee)
    was_lucky: bool = False


@dataclass
class ProgressSnapshot:
    total_xp: int = 0
    level: int = 1
    quests_completed: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    rejections: int = 0
    completions_today: int = 0
    active_quests: int = 0
    active_completed: int = 0
    category_completed: dict = field(default_factory=dict)
    category_active_completed: dict = field(default_factory=dict)
    category_totals: dict = field(default_factory=dict)
    difficulty_completed: dict = field(default_factory=dict)
    pair_completed: dict = field(default_factory=dict)
    pair_totals: dict = field(default_factory=dict)
    # pair_* → clave (dificultad, categoría)
    # los requisitos de proporción leen active_completed / category_active_completed /
    # pair_completed, que solo cuentan misiones que siguen activas
    event: Optional[CompletionEvent] = None


def load_snapshot(db: Session, stats: MenteeStats, clock: Clock,
                  event: Optional[CompletionEvent] = None) -> ProgressSnapshot:
    """Lee todos los agregados que necesitan los requisitos"""
    snapshot = ProgressSnapshot(
        total_xp=stats.total_xp,
        level=stats.level,
        quests_completed=stats.quests_completed,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        event=event,
    )

    # ── Misiones completadas por (dificultad, categoría) ──
    completed_rows = db.query(
        Quest.difficulty, Quest.category, Quest.is_active, func.count(QuestProgress.id)
    ).join(Quest, QuestProgress.quest_id == Quest.id).filter(
        QuestProgress.mentee_id == stats.id,
        QuestProgress.status == ProgressStatus.completed.value
    ).group_by(Quest.difficulty, Quest.category, Quest.is_active).all()

    for difficulty, category, is_active, count in completed_rows:
        snapshot.category_completed[category] = snapshot.category_completed.get(category, 0) + count
        snapshot.difficulty_completed[difficulty] = snapshot.difficulty_completed.get(difficulty, 0) + count
        if not is_active:
            continue
        # una misión borrada no puede ocupar el lugar de una activa
        snapshot.pair_completed[(difficulty, category)] = count
        snapshot.category_active_completed[category] = \
            snapshot.category_active_completed.get(category, 0) + count
        snapshot.active_completed += count

    # ── Tamaño del catálogo por (dificultad, categoría) ──
    total_rows = db.query(
        Quest.difficulty, Quest.category, func.count(Quest.id)
    ).filter(Quest.is_active == True).group_by(Quest.difficulty, Quest.category).all()

    for difficulty, category, count in total_rows:
        snapshot.pair_totals[(difficulty, category)] = count
        snapshot.category_totals[category] = snapshot.category_totals.get(category, 0) + count
        snapshot.active_quests += count

    # ── Misiones completadas el día local del evento (hoy si no hay evento) ──
    day = event.completed_at.date() if event is not None else clock.today()
    snapshot.completions_today = db.query(func.count(QuestProgress.id)).filter(
        QuestProgress.mentee_id == stats.id,
        QuestProgress.status == ProgressStatus.completed.value,
        QuestProgress.completed_at >= clock.start_of_day_utc(day),
        QuestProgress.completed_at < clock.start_of_day_utc(day + timedelta(days=1))
    ).scalar() or 0

    snapshot.rejections = db.query(
        func.coalesce(func.sum(QuestProgress.rejection_count), 0)
    ).filter(QuestProgress.mentee_id == stats.id).scalar() or 0

    return snapshot


# =============================================================================
# ===================== REQUISITOS (una clase por tipo) =======================
# =============================================================================

class Requirement:
    """Base de todos los tipos de requisito"""

    def is_met(self, snapshot: ProgressSnapshot) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class TotalCompleted(Requirement):
    count: int

    def is_met(self, snapshot):
        return snapshot.quests_completed >= self.count


@dataclass(frozen=True)
class LevelReached(Requirement):
    level: int

    def is_met(self, snapshot):
        return snapshot.level >= self.level


@dataclass(frozen=True)
class XpReached(Requirement):
    xp: int

    def is_met(self, snapshot):
        return snapshot.total_xp >= self.xp


@dataclass(frozen=True)
class StreakReached(Requirement):
    days: int

    def is_met(self, snapshot):
        return snapshot.current_streak >= self.days


@dataclass(frozen=True)
class CategoryCompleted(Requirement):
    category: str
    count: int

    def is_met(self, snapshot):
        return snapshot.category_completed.get(self.category, 0) >= self.count


@dataclass(frozen=True)
class CategoryAllCompleted(Requirement):
    """100% de una categoría concreta"""
    category: str

    def is_met(self, snapshot):
        total = snapshot.category_totals.get(self.category, 0)
        return total > 0 and snapshot.category_active_completed.get(self.category, 0) >= total


@dataclass(frozen=True)
class DifficultyCompleted(Requirement):
    difficulty: str
    count: int

    def is_met(self, snapshot):
        return snapshot.difficulty_completed.get(self.difficulty, 0) >= self.count


@dataclass(frozen=True)
class DifficultyCategoryCompleted(Requirement):
    """Todas las misiones de una dificultad dentro de una categoría"""
    difficulty: str
    category: str

    def is_met(self, snapshot):
        key = (self.difficulty, self.category)
        total = snapshot.pair_totals.get(key, 0)
        return total > 0 and snapshot.pair_completed.get(key, 0) >= total


@dataclass(frozen=True)
class PercentageCompleted(Requirement):
    percentage: int

    def is_met(self, snapshot):
        if snapshot.active_quests == 0:
            return False
        return snapshot.active_completed * 100 >= self.percentage * snapshot.active_quests


@dataclass(frozen=True)
class NightOwl(Requirement):
    """Misión aprobada entre las 22:00 y las 05:00 (hora local)"""
    start_hour: int = 22
    end_hour: int = 5

    def is_met(self, snapshot):
        if snapshot.event is None:
            return False
        hour = snapshot.event.completed_at.hour
        return hour >= self.start_hour or hour < self.end_hour


@dataclass(frozen=True)
class DailyBurst(Requirement):
    """Al menos N misiones completadas desde la medianoche local"""
    count: int = 3

    def is_met(self, snapshot):
        return snapshot.completions_today >= self.count


@dataclass(frozen=True)
class Flawless(Requirement):
    """N misiones completadas sin un solo rechazo, nunca"""
    count: int

    def is_met(self, snapshot):
        return snapshot.quests_completed >= self.count and snapshot.rejections == 0


@dataclass(frozen=True)
class LuckyStrike(Requirement):
    """Completó la misión de la suerte"""

    def is_met(self, snapshot):
        return snapshot.event is not None and snapshot.event.was_lucky


# requirement_type → constructor(value, param)
REQUIREMENT_BUILDERS: dict[str, Callable] = {
    "total_complete": lambda value, param: TotalCompleted(int(value)),
    "level_reached": lambda value, param: LevelReached(int(value)),
    "xp_reached": lambda value, param: XpReached(int(value)),
    "streak_reached": lambda value, param: StreakReached(int(value)),
    "category_complete": lambda value, param: CategoryCompleted(_required(param), int(value)),
    "category_complete_all": lambda value, param: CategoryAllCompleted(_required(param)),
    "difficulty_complete": lambda value, param: DifficultyCompleted(_required(param), int(value)),
    "difficulty_category_complete": lambda value, param: DifficultyCategoryCompleted(*_pair(param)),
    "percentage_complete": lambda value, param: PercentageCompleted(int(value)),
    "night_owl": lambda value, param: NightOwl(),
    "daily_burst": lambda value, param: DailyBurst(int(value) if value else 3),
    "flawless": lambda value, param: Flawless(int(value)),
    "lucky_strike": lambda value, param: LuckyStrike(),
}


def _required(param):
    if not param:
        raise ValueError("falta el parámetro del requisito")
    return param


def _pair(param):
    """'beginner:Security' → ('beginner', 'Security')"""
    difficulty, sep, category = _required(param).partition(":")
    if not sep or not difficulty or not category:
        raise ValueError(f"se esperaba 'dificultad:categoría', llegó {param!r}")
    return difficulty, category


def parse_requirement(definition) -> Optional[Requirement]:
    """
    Fila del catálogo → Requirement. Las definiciones rotas se registran en
    el log y se saltan, nunca bloquean al resto de reconocimientos.
    """
    builder = REQUIREMENT_BUILDERS.get(definition.requirement_type)
    if builder is None:
        logger.warning("⚠️ Tipo de requisito desconocido %r en %s",
                       definition.requirement_type, definition.code)
        return None
    try:
        return builder(definition.requirement_value, definition.requirement_param)
    except (TypeError, ValueError) as e:
        logger.warning("⚠️ Requisito inválido en %s: %s", definition.code, e)
        return None


# =============================================================================
# ===================== EVALUADOR =============================================
# =============================================================================

@dataclass(frozen=True)
class Catalog:
    kind: str
    model: type
    earned_model: type
    fk: str
    action: ActivityAction


ACHIEVEMENTS = Catalog("achievement", Achievement, EarnedAchievement, "achievement_id",
                       ActivityAction.achievement_unlocked)
BADGES = Catalog("badge", Badge, EarnedBadge, "badge_id", ActivityAction.badge_earned)
CATALOGS = (ACHIEVEMENTS, BADGES)


def find_unlocked(db: Session, stats: MenteeStats, snapshot: ProgressSnapshot) -> list:
    """[(catálogo, definición)] de cada reconocimiento no conseguido cuyo requisito se cumple"""
    unlocked = []
    for catalog in CATALOGS:
        earned_ids = db.query(getattr(catalog.earned_model, catalog.fk)).filter(
            catalog.earned_model.mentee_id == stats.id
        )
        candidates = db.query(catalog.model).filter(
            catalog.model.id.not_in(earned_ids)
        ).order_by(catalog.model.sort_order, catalog.model.id).all()

        for definition in candidates:
            requirement = parse_requirement(definition)
            if requirement is not None and requirement.is_met(snapshot):
                unlocked.append((catalog, definition))
    return unlocked


def grant_unlocked(db: Session, stats: MenteeStats, unlocked: list, now: datetime,
                   rules: RewardRules = DEFAULT_RULES) -> list:
    """
    Inserta las filas conseguidas, sus entradas de actividad y la suma de XP.
    Hace flush (así un duplicado falla aquí mismo) pero no hace commit.
    """
    lines = []
    xp_bonus = 0

    for catalog, definition in unlocked:
        db.add(catalog.earned_model(**{
            "mentee_id": stats.id, catalog.fk: definition.id, "earned_at": now
        }))
        db.add(ActivityLog(
            mentee_id=stats.id,
            action=catalog.action.value,
            details={
                "code": definition.code,
                "name": definition.name,
                "icon": definition.icon,
                "xpBonus": definition.xp_bonus or 0,
            },
            created_at=now,
        ))
        xp_bonus += definition.xp_bonus or 0
        lines.append(BonusLine(catalog.kind, definition.name, definition.xp_bonus or 0))
        logger.info("🏆 %s desbloqueado: %s (+%s XP)", catalog.kind.title(),
                    definition.name, definition.xp_bonus or 0)

    if xp_bonus > 0:
        stats.total_xp += xp_bonus
        stats.total_bonus_xp = (stats.total_bonus_xp or 0) + xp_bonus
        stats.level = calculate_level(stats.total_xp, rules)

    db.flush()
    return lines


@dataclass
class AchievementOutcome:
    lines: list = field(default_factory=list)
    total_xp: int = 0
    level: int = 1

    @property
    def xp_bonus(self) -> int:
        return sum(line.amount for line in self.lines)


def award_achievements(db: Session, mentee_id: int, clock: Clock,
                       event: Optional[CompletionEvent] = None,
                       rules: RewardRules = DEFAULT_RULES,
                       max_attempts: int = MAX_ATTEMPTS) -> AchievementOutcome:
    """
    Evalúa y concede todo lo que el mentee acaba de conseguir, en su propia
    transacción. Se puede repetir cuando sea: las filas ya conseguidas se
    saltan, así que el XP nunca se concede dos veces.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            stats = db.get(MenteeStats, mentee_id, with_for_update=True, populate_existing=True)
            if stats is None:
                raise NotFoundError("Mentee not found", {"mentee_id": mentee_id})

            snapshot = load_snapshot(db, stats, clock, event)
            lines = []
            for _ in range(MAX_ROUNDS):
                unlocked = find_unlocked(db, stats, snapshot)
                if not unlocked:
                    break
                lines.extend(grant_unlocked(db, stats, unlocked, clock.utcnow(), rules))
                snapshot = replace(snapshot, total_xp=stats.total_xp, level=stats.level)

            db.commit()
            return AchievementOutcome(lines=lines, total_xp=stats.total_xp, level=stats.level)

        except (IntegrityError, StaleDataError) as e:
            db.rollback()
            logger.warning("🔁 Choque al conceder logros (intento %s/%s): %s",
                           attempt, max_attempts, type(e).__name__)

    raise ConcurrencyConflictError(
        "Achievements could not be granted, another evaluation keeps winning",
        {"mentee_id": mentee_id, "attempts": max_attempts}
    )


# =============================================================================
# ===================== SEMILLAS DEL CATÁLOGO ==================================
# =============================================================================

ACHIEVEMENT_DEFINITIONS = [
    # ── Misiones completadas ──
    {"code": "first_quest", "name": "First Steps 👣", "description": "Complete your very first quest", "icon": "👣", "type": "total_complete", "value": 1, "xp": 10},
    {"code": "quests_10", "name": "Quest Machine ⚙️", "description": "Complete 10 quests", "icon": "⚙️", "type": "total_complete", "value": 10, "xp": 50},
    {"code": "quests_25", "name": "Unstoppable 🚂", "description": "Complete 25 quests", "icon": "🚂", "type": "total_complete", "value": 25, "xp": 150},
    {"code": "halfway", "name": "Halfway Hero 🏔️", "description": "Complete half of all quests", "icon": "🏔️", "type": "percentage_complete", "value": 50, "xp": 100},
    {"code": "completionist", "name": "Completionist 💯", "description": "Complete every quest", "icon": "💯", "type": "percentage_complete", "value": 100, "xp": 500},

    # ── Rachas ──
    {"code": "streak_3", "name": "On Fire 🔥", "description": "Keep a 3-day streak", "icon": "🔥", "type": "streak_reached", "value": 3, "xp": 30},
    {"code": "streak_7", "name": "Week of Fire 🌋", "description": "Keep a 7-day streak", "icon": "🌋", "type": "streak_reached", "value": 7, "xp": 100},

    # ── Rangos ──
    {"code": "xp_500", "name": "Apprentice Unlocked 🔧", "description": "Reach 500 XP", "icon": "🔧", "type": "xp_reached", "value": 500, "xp": 0},
    {"code": "xp_1500", "name": "Going Pro ⚡", "description": "Reach 1500 XP", "icon": "⚡", "type": "xp_reached", "value": 1500, "xp": 0},

    # ── Secretos ──
    {"code": "night_owl", "name": "Night Owl 🦉", "description": "Get a quest approved between 22:00 and 05:00", "icon": "🦉", "type": "night_owl", "value": None, "xp": 50, "secret": True},
    {"code": "hat_trick", "name": "Hat Trick 🎩", "description": "Complete 3 quests in one day", "icon": "🎩", "type": "daily_burst", "value": 3, "xp": 75, "secret": True},
    {"code": "flawless_5", "name": "Flawless 💎", "description": "Complete 5 quests without a single rejection", "icon": "💎", "type": "flawless", "value": 5, "xp": 100, "secret": True},
    {"code": "lucky_strike", "name": "Lucky Strike 🍀", "description": "Complete the lucky quest", "icon": "🍀", "type": "lucky_strike", "value": None, "xp": 25, "secret": True},
]

BADGE_DEFINITIONS = [
    {"code": "security_starter", "name": "Security Starter", "description": "Completed your first security quest", "icon": "🛡️", "type": "category_complete", "value": 1, "param": "Security"},
    {"code": "safety_first", "name": "Safety First", "description": "Completed 5 security quests", "icon": "🔒", "type": "category_complete", "value": 5, "param": "Security"},
    {"code": "digital_guardian", "name": "Digital Guardian", "description": "Completed all beginner security quests", "icon": "🏰", "type": "difficulty_category_complete", "value": None, "param": "beginner:Security"},
    {"code": "first_quest_badge", "name": "First Quest", "description": "Completed your very first quest", "icon": "⭐", "type": "total_complete", "value": 1},
    {"code": "getting_started", "name": "Getting Started", "description": "Completed 5 quests", "icon": "🌟", "type": "total_complete", "value": 5},
    {"code": "quest_enthusiast", "name": "Quest Enthusiast", "description": "Completed 10 quests", "icon": "✨", "type": "total_complete", "value": 10},
    {"code": "halfway_badge", "name": "Halfway Hero", "description": "Completed half of all quests", "icon": "🏆", "type": "percentage_complete", "value": 50},
    {"code": "skill_builder", "name": "Skill Builder", "description": "Completed 3 Digital Skills quests", "icon": "🔧", "type": "category_complete", "value": 3, "param": "Digital Skills"},
    {"code": "tech_explorer", "name": "Tech Explorer", "description": "Completed your first advanced quest", "icon": "🚀", "type": "difficulty_complete", "value": 1, "param": "advanced"},
    {"code": "gamer_secured", "name": "Gamer Secured", "description": "Completed all Gaming quests", "icon": "🎮", "type": "category_complete_all", "value": None, "param": "Gaming"},
    {"code": "level_5", "name": "Level 5", "description": "Reached Level 5", "icon": "5️⃣", "type": "level_reached", "value": 5},
    {"code": "level_10", "name": "Level 10", "description": "Reached Level 10", "icon": "🔟", "type": "level_reached", "value": 10},
]


def _seed(db: Session, model, definitions: list, with_secret: bool) -> int:
    added = 0
    for order, item in enumerate(definitions):
        existing = db.query(model).filter(model.code == item["code"]).first()
        if existing:
            continue
        row = model(
            code=item["code"],
            name=item["name"],
            description=item["description"],
            icon=item["icon"],
            requirement_type=item["type"],
            requirement_value=item.get("value"),
            requirement_param=item.get("param"),
            xp_bonus=item.get("xp", 0),
            sort_order=order,
        )
        if with_secret:
            row.is_secret = item.get("secret", False)
        db.add(row)
        added += 1
    return added


def seed_achievements(db: Session):
    """
    Inserta los catálogos de logros e insignias si faltan.
    Se ejecuta al arrancar.
    """
    added = _seed(db, Achievement, ACHIEVEMENT_DEFINITIONS, with_secret=True)
    added += _seed(db, Badge, BADGE_DEFINITIONS, with_secret=False)
    db.commit()
    logger.info("✅ %s logros y %s insignias verificados (%s nuevos)",
                len(ACHIEVEMENT_DEFINITIONS), len(BADGE_DEFINITIONS), added)
