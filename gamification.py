"""
=============================================================================
GAMIFICATION.PY — Motor de progresión y recompensas
=============================================================================
Convierte UNA entrega aprobada en:
  - un premio de XP (XP base + bonus acumulados, con desglose)
  - un cambio de rango / nivel
  - una actualización de la racha (incluido el comodín de un solo uso)

Piezas, de las hojas hacia arriba:
  - Rangos           → XP total → rango, subnivel, nivel, progreso
  - Racha            → último día de racha + hoy → siguiente racha
  - Estado de racha  → etiqueta de solo lectura para el panel
  - Reglas de bonus  → qué eventos de bonus aplican hoy
  - Recompensa       → XP base → suerte → finde/eventos → racha →
                       primera del día → eventos fijos

Todo es puro salvo load_active_bonuses (lee el catálogo) y
apply_reward / expire_lapsed_streak (modifican la fila MenteeStats que reciben).
Hacer commit es cosa de quien llama (quests.py es dueño de la transacción).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import logging

from sqlalchemy.orm import Session

from clock import Clock, days_between
from errors import ValidationError
from models import BonusEvent, BonusEventType, MenteeStats

logger = logging.getLogger("questline.gamification")


# =============================================================================
# ===================== TABLAS DE REGLAS ======================================
# =============================================================================
# XP mínimo de cada rango. Tiene que ser estrictamente creciente.

RANKS = [
    ("ROOKIE", 0),
    ("APPRENTICE", 500),
    ("PRO", 1500),
    ("ELITE", 3500),
    ("LEGEND", 7000),
]

RANK_TITLES = {
    "ROOKIE": "Rookie 🌱",
    "APPRENTICE": "Apprentice 🔧",
    "PRO": "Pro ⚡",
    "ELITE": "Elite 💎",
    "LEGEND": "Legend 👑",
}

# El rango más alto no tiene techo: sus subniveles salen de un tramo ficticio
TOP_RANK_SPAN = 5000
SUB_LEVELS_PER_RANK = 5

# Bonus de racha: racha mínima → XP fijo (escalones, gana el más alto alcanzado)
STREAK_BONUSES = {
    2: 100,   # 2 días seguidos → +100
    3: 200,   # 3 o más días → +200
}

# Valores por defecto si el catálogo no tiene evento first_daily / weekend
FIRST_DAILY_BONUS = 25
WEEKEND_MULTIPLIER = 2.0

LUCKY_MULTIPLIER = 1.5
REWARD_MILESTONE = 10
REWARD_NAME = "$30 Steam Credit"
REWARD_ICON = "🎮"


@dataclass
class RewardRules:
    """Todos los parámetros del motor, inyectables para tests y despliegues"""

    ranks: list = field(default_factory=lambda: list(RANKS))
    top_rank_span: int = TOP_RANK_SPAN
    sub_levels_per_rank: int = SUB_LEVELS_PER_RANK
    streak_bonuses: dict = field(default_factory=lambda: dict(STREAK_BONUSES))
    first_daily_bonus: int = FIRST_DAILY_BONUS
    weekend_multiplier: float = WEEKEND_MULTIPLIER
    lucky_multiplier: float = LUCKY_MULTIPLIER
    reward_milestone: int = REWARD_MILESTONE
    reward_name: str = REWARD_NAME
    reward_icon: str = REWARD_ICON

    def __post_init__(self):
        if not self.ranks:
            raise ValidationError("At least one rank is required")
        thresholds = [xp for _, xp in self.ranks]
        if thresholds[0] != 0:
            raise ValidationError("The first rank must start at 0 XP", {"thresholds": thresholds})
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValidationError("Rank thresholds must be strictly increasing", {"thresholds": thresholds})
        if self.top_rank_span <= 0 or self.sub_levels_per_rank <= 0:
            raise ValidationError("Rank spans and sub-levels must be positive")
        if self.reward_milestone <= 0:
            raise ValidationError("The reward milestone must be positive")

        # Escalones monótonos: una racha más larga nunca gana menos
        steps = sorted(self.streak_bonuses.items())
        if any(amount < 0 for _, amount in steps) or any(
            b[1] < a[1] for a, b in zip(steps, steps[1:])
        ):
            raise ValidationError("Streak bonuses must be non-negative and non-decreasing",
                                  {"streak_bonuses": self.streak_bonuses})


DEFAULT_RULES = RewardRules()


def round_half_up(value) -> int:
    """Redondea al entero más cercano, .5 sube (round() de Python iría al par)"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# ===================== RANGOS Y NIVELES ======================================
# =============================================================================
# El tramo de XP de cada rango se parte en 5 subtramos iguales:
#   sub_level = floor(xp_into_rank / (rank_span / 5)), limitado a [0, 4]
#   level     = rank_index * 5 + 1 + sub_level
# ROOKIE con 0 XP → nivel 1, LEGEND con todos los subtramos → nivel 25.

@dataclass
class RankInfo:
    rank: str
    title: str
    rank_index: int
    min_xp: int
    next_rank: Optional[str]
    next_rank_xp: Optional[int]
    xp_to_next_rank: int
    xp_into_rank: int
    rank_span: int
    sub_level: int
    level: int
    progress: float
    # progress → fracción del rango actual ya cubierta (0.0 - 1.0)

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "title": self.title,
            "rankIndex": self.rank_index,
            "minXp": self.min_xp,
            "nextRank": self.next_rank,
            "nextRankXp": self.next_rank_xp,
            "xpToNextRank": self.xp_to_next_rank,
            "xpIntoRank": self.xp_into_rank,
            "subLevel": self.sub_level,
            "level": self.level,
            "progress": round(self.progress * 100, 1),
        }


def derive_rank(total_xp: int, rules: RewardRules = DEFAULT_RULES) -> RankInfo:
    """
    XP total → información de rango. Vale para cualquier entrada: un XP
    negativo (solo posible con una edición manual errónea) se lee como 0.
    """
    xp = max(0, int(total_xp))
    ranks = rules.ranks

    index = 0
    for i, (_, threshold) in enumerate(ranks):
        if xp >= threshold:
            index = i

    name, min_xp = ranks[index]
    if index + 1 < len(ranks):
        next_name, next_xp = ranks[index + 1]
        span = next_xp - min_xp
        xp_to_next = next_xp - xp
    else:
        next_name, next_xp = None, None
        span = rules.top_rank_span
        xp_to_next = 0

    xp_into = xp - min_xp
    bands = rules.sub_levels_per_rank
    # versión entera de floor(xp_into / (span / bands))
    sub_level = min(max(xp_into * bands // span, 0), bands - 1)

    return RankInfo(
        rank=name,
        title=RANK_TITLES.get(name, name.title()),
        rank_index=index,
        min_xp=min_xp,
        next_rank=next_name,
        next_rank_xp=next_xp,
        xp_to_next_rank=xp_to_next,
        xp_into_rank=xp_into,
        rank_span=span,
        sub_level=sub_level,
        level=index * bands + 1 + sub_level,
        progress=min(xp_into / span, 1.0),
    )


def calculate_level(total_xp: int, rules: RewardRules = DEFAULT_RULES) -> int:
    """Nivel para una cantidad de XP total"""
    return derive_rank(total_xp, rules).level


def get_level_info(stats: MenteeStats, rules: RewardRules = DEFAULT_RULES) -> dict:
    """Información completa de nivel para el panel"""
    info = derive_rank(stats.total_xp, rules)
    return {"xp": stats.total_xp, **info.to_dict()}


# =============================================================================
# ===================== RACHAS ================================================
# =============================================================================
# Solo la aprobación mueve la racha:
#   - sin día anterior              → 1
#   - mismo día                     → igual, sin bonus
#   - el día anterior fue ayer      → +1
#   - falta justo un día y queda comodín → +1, comodín gastado
#   - cualquier cosa más antigua    → vuelve a 1
# Un día anterior en el futuro (reloj desfasado) cuenta como "mismo día".

@dataclass
class StreakOutcome:
    streak: int
    longest: int
    advanced: bool
    # advanced → la racha se movió hoy, solo entonces hay bonus de racha
    freeze_consumed: bool = False
    broken: bool = False
    anomaly: bool = False


def advance_streak(last_streak_date: Optional[date], current_streak: int,
                   longest_streak: int, freeze_available: bool,
                   today: date) -> StreakOutcome:
    """Calcula la siguiente racha. Pura: quien llama guarda el resultado"""
    diff = days_between(last_streak_date, today)
    anomaly = False

    if diff is not None and diff < 0:
        logger.warning(
            "⚠️ Reloj desfasado: el último día de racha %s es posterior a hoy %s, cuenta como mismo día",
            last_streak_date, today
        )
        diff = 0
        anomaly = True

    freeze_consumed = False
    broken = False

    if diff is None:
        streak, advanced = 1, True
    elif diff == 0:
        streak, advanced = current_streak, False
    elif diff == 1:
        streak, advanced = current_streak + 1, True
    elif diff == 2 and freeze_available:
        streak, advanced = current_streak + 1, True
        freeze_consumed = True
    else:
        streak, advanced = 1, True
        broken = current_streak > 0

    return StreakOutcome(
        streak=streak,
        longest=max(longest_streak, streak),
        advanced=advanced,
        freeze_consumed=freeze_consumed,
        broken=broken,
        anomaly=anomaly,
    )


def streak_bonus(streak: int, rules: RewardRules = DEFAULT_RULES) -> int:
    """Bonus fijo de racha: el escalón más alto cuyo mínimo se alcanza"""
    bonus = 0
    for min_streak, amount in sorted(rules.streak_bonuses.items()):
        if streak >= min_streak:
            bonus = amount
    return bonus


# =============================================================================
# ===================== ESTADO DE RACHA (solo lectura) ========================
# =============================================================================
# Etiqueta para el panel, nunca escribe:
#   0 días desde el último día de racha → active
#   1 día                               → at_risk (¡completa una misión hoy!)
#   2 días con comodín disponible       → frozen (el comodín la cubre)
#   más                                 → lost (se muestra como racha 0)

STREAK_ACTIVE = "active"
STREAK_AT_RISK = "at_risk"
STREAK_FROZEN = "frozen"
STREAK_LOST = "lost"


@dataclass
class StreakStatus:
    label: str
    current_streak: int
    # current_streak → lo que debe mostrar el panel (0 una vez perdida)
    days_since: Optional[int]


def streak_status(last_streak_date: Optional[date], current_streak: int,
                  freeze_available: bool, today: date) -> StreakStatus:
    diff = days_between(last_streak_date, today)

    if diff is None or diff <= 0:
        label = STREAK_ACTIVE
    elif diff == 1:
        label = STREAK_AT_RISK
    elif diff == 2 and freeze_available:
        label = STREAK_FROZEN
    else:
        label = STREAK_LOST

    shown = 0 if label == STREAK_LOST else current_streak
    return StreakStatus(label=label, current_streak=shown, days_since=diff)


def expire_lapsed_streak(stats: MenteeStats, today: date) -> bool:
    """
    Mantenimiento: pone a cero una racha que ya está perdida.
    Idempotente, devuelve True solo cuando ha cambiado algo.
    """
    status = streak_status(stats.last_streak_date, stats.current_streak,
                           stats.streak_freeze_available, today)
    if status.label == STREAK_LOST and stats.current_streak != 0:
        logger.info("💤 Racha de %s días caducada (último día %s)",
                    stats.current_streak, stats.last_streak_date)
        stats.current_streak = 0
        return True
    return False


# =============================================================================
# ===================== REGLAS DE BONUS =======================================
# =============================================================================

@dataclass
class ActiveBonuses:
    """Eventos de bonus que aplican hoy, ya resueltos"""

    weekend_multiplier: Optional[float] = None
    weekend_name: str = "Weekend Warrior"
    first_daily_xp: int = 0
    first_daily_name: str = "First Quest of the Day"
    multipliers: list = field(default_factory=list)
    # multipliers → [(nombre del evento, multiplicador)] de otros eventos
    flat_bonuses: list = field(default_factory=list)
    # flat_bonuses → [(nombre del evento, xp)] de otros eventos
    events: list = field(default_factory=list)


def event_in_window(event: BonusEvent, today: date, clock: Clock) -> bool:
    """Marca de activo + rango de fechas opcional + filtro opcional por día de la semana"""
    if not event.is_active:
        return False
    if event.start_date and event.start_date > today:
        return False
    if event.end_date and event.end_date < today:
        return False
    if event.event_type == BonusEventType.weekend.value:
        # qué es fin de semana lo decide el calendario
        return clock.is_weekend(today)
    if event.days_of_week:
        days = [d.lower() for d in event.days_of_week]
        return clock.day_name(today) in days
    return True


def resolve_active_bonuses(events: list, today: date, clock: Clock,
                           rules: RewardRules = DEFAULT_RULES) -> ActiveBonuses:
    """
    Construye el conjunto de bonus de hoy a partir de las filas del catálogo.
    Un catálogo sin ninguna fila first_daily (o weekend) usa los valores por
    defecto de las reglas; una fila que existe pero está inactiva desactiva
    ese bonus.
    """
    bonuses = ActiveBonuses()
    types_present = {e.event_type for e in events}

    if BonusEventType.first_daily.value not in types_present:
        bonuses.first_daily_xp = rules.first_daily_bonus
    if BonusEventType.weekend.value not in types_present and clock.is_weekend(today):
        bonuses.weekend_multiplier = rules.weekend_multiplier

    for event in events:
        if not event_in_window(event, today, clock):
            continue
        bonuses.events.append(event)

        if event.event_type == BonusEventType.first_daily.value:
            bonuses.first_daily_xp = max(0, event.bonus_xp or 0)
            bonuses.first_daily_name = event.name
        elif event.event_type == BonusEventType.weekend.value:
            bonuses.weekend_multiplier = event.multiplier or rules.weekend_multiplier
            bonuses.weekend_name = event.name
        else:
            if event.multiplier and event.multiplier > 1.0:
                bonuses.multipliers.append((event.name, event.multiplier))
            if event.bonus_xp and event.bonus_xp > 0:
                bonuses.flat_bonuses.append((event.name, event.bonus_xp))

    return bonuses


def load_active_bonuses(db: Session, today: date, clock: Clock,
                        rules: RewardRules = DEFAULT_RULES) -> ActiveBonuses:
    """Lee el catálogo de eventos de bonus y lo resuelve para hoy"""
    events = db.query(BonusEvent).order_by(BonusEvent.id).all()
    return resolve_active_bonuses(events, today, clock, rules)


def is_first_daily_available(stats: MenteeStats, today: date) -> bool:
    return stats.last_first_quest_date != today


# =============================================================================
# ===================== CÁLCULO DE RECOMPENSAS =================================
# =============================================================================

@dataclass
class BonusLine:
    """Una línea del desglose de XP que ve el mentee"""

    type: str
    name: str
    amount: int
    multiplier: Optional[float] = None

    def to_dict(self) -> dict:
        line = {"type": self.type, "name": self.name, "amount": self.amount}
        if self.multiplier is not None:
            line["multiplier"] = self.multiplier
        return line


@dataclass
class RewardBreakdown:
    base_xp: int
    total_xp_awarded: int
    lines: list
    streak: StreakOutcome
    first_daily_claimed: bool
    # first_daily_claimed → esta aprobación ocupa la primera misión de hoy

    @property
    def bonus_xp(self) -> int:
        return self.total_xp_awarded - self.base_xp


def _multiply(running: int, multiplier: float) -> tuple[int, int]:
    new_running = round_half_up(Decimal(running) * Decimal(str(multiplier)))
    return new_running, new_running - running


def calculate_reward(base_xp: int, *, streak: StreakOutcome,
                     bonuses: ActiveBonuses, first_daily_available: bool,
                     lucky_multiplier: Optional[float] = None,
                     rules: RewardRules = DEFAULT_RULES) -> RewardBreakdown:
    """
    Calcula el XP de una aprobación. El orden importa, primero multiplicadores:
      1. running = XP base
      2. misión de la suerte → running × multiplicador de suerte
      3. fin de semana       → running × multiplicador de finde
         otros eventos       → running × su multiplicador
      4. bonus de racha      → + valor de la tabla (solo si la racha se movió hoy)
      5. primera del día     → + bonus fijo
      6. otros eventos       → + su bonus fijo
    Ningún paso puede bajar el total acumulado.
    """
    if base_xp is None or base_xp < 0:
        raise ValidationError("Base XP must be a non-negative integer", {"base_xp": base_xp})

    running = int(base_xp)
    lines = []

    # ── 2. Misión de la suerte ──
    if lucky_multiplier is not None and lucky_multiplier > 1.0:
        running, bonus = _multiply(running, lucky_multiplier)
        lines.append(BonusLine("lucky", "Lucky Quest", bonus, lucky_multiplier))

    # ── 3. Fin de semana y otros eventos multiplicadores ──
    if bonuses.weekend_multiplier is not None and bonuses.weekend_multiplier > 1.0:
        running, bonus = _multiply(running, bonuses.weekend_multiplier)
        lines.append(BonusLine("weekend", bonuses.weekend_name, bonus, bonuses.weekend_multiplier))

    for name, multiplier in bonuses.multipliers:
        if multiplier <= 1.0:
            continue
        running, bonus = _multiply(running, multiplier)
        lines.append(BonusLine("event", name, bonus, multiplier))

    # ── 4. Racha ──
    if streak.advanced:
        amount = streak_bonus(streak.streak, rules)
        if amount > 0:
            running += amount
            lines.append(BonusLine("streak", f"{streak.streak}-day streak", amount))

    # ── 5. Primera misión del día ──
    if first_daily_available and bonuses.first_daily_xp > 0:
        running += bonuses.first_daily_xp
        lines.append(BonusLine("first_daily", bonuses.first_daily_name, bonuses.first_daily_xp))

    # ── 6. Eventos fijos ──
    for name, amount in bonuses.flat_bonuses:
        if amount > 0:
            running += amount
            lines.append(BonusLine("bonus", name, amount))

    return RewardBreakdown(
        base_xp=int(base_xp),
        total_xp_awarded=running,
        lines=lines,
        streak=streak,
        first_daily_claimed=first_daily_available,
    )


@dataclass
class AppliedReward:
    old_level: int
    new_level: int
    leveled_up: bool
    new_total_xp: int
    reward_earned: bool


def apply_reward(stats: MenteeStats, breakdown: RewardBreakdown, today: date,
                 now: datetime, rules: RewardRules = DEFAULT_RULES) -> AppliedReward:
    """
    Escribe una recompensa ya calculada en la fila del mentee (sin commit):
    XP, nivel, contadores, campos de racha, marcas de primera del día.
    """
    old_level = stats.level or 1
    stats.total_xp = (stats.total_xp or 0) + breakdown.total_xp_awarded
    new_level = calculate_level(stats.total_xp, rules)
    stats.level = new_level
    stats.quests_completed = (stats.quests_completed or 0) + 1
    stats.quests_toward_reward = (stats.quests_toward_reward or 0) + 1
    stats.total_bonus_xp = (stats.total_bonus_xp or 0) + breakdown.bonus_xp

    # ── Racha ──
    outcome = breakdown.streak
    stats.current_streak = outcome.streak
    stats.longest_streak = outcome.longest
    if outcome.freeze_consumed:
        stats.streak_freeze_available = False
        logger.info("🧊 Comodín de racha gastado, la racha se mantiene en %s", outcome.streak)
    stats.last_streak_date = today

    # ── Primera misión del día ──
    if breakdown.first_daily_claimed:
        stats.first_quest_today = True
        stats.last_first_quest_date = today

    stats.last_activity_at = now

    return AppliedReward(
        old_level=old_level,
        new_level=new_level,
        leveled_up=new_level > old_level,
        new_total_xp=stats.total_xp,
        reward_earned=stats.quests_toward_reward % rules.reward_milestone == 0,
    )


def reward_progress(stats: MenteeStats, rules: RewardRules = DEFAULT_RULES) -> dict:
    """Progreso hacia la siguiente recompensa por hito"""
    current = (stats.quests_toward_reward or 0) % rules.reward_milestone
    return {
        "current": current,
        "target": rules.reward_milestone,
        "rewardName": rules.reward_name,
        "rewardIcon": rules.reward_icon,
        "rewardsClaimed": stats.rewards_claimed or 0,
        "progress": round(current / rules.reward_milestone * 100, 1),
    }
