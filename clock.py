"""
=============================================================================
CLOCK.PY — "¿Qué día es hoy?"
=============================================================================
Las rachas, el bonus de fin de semana y el bonus de primera misión del día
trabajan con DÍAS DE CALENDARIO, nunca con timestamps. Toda comparación de
días pasa por un Clock para que:
  - el cambio de día siga la zona horaria configurada (APP_TIMEZONE)
  - los tests puedan congelar el tiempo con FixedClock
  - el fin de semana sea configurable en vez de estar fijo en el código
"""

import os
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

import pytz

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Europe/Madrid")

# date.weekday(): lunes=0 ... domingo=6
WEEKEND_DAYS = frozenset({5, 6})

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class Clock:
    """Reloj real en la zona horaria configurada"""

    def __init__(self, tz_name: str = APP_TIMEZONE, weekend_days: Iterable[int] = WEEKEND_DAYS):
        self.tz = pytz.timezone(tz_name)
        self.weekend_days = frozenset(weekend_days)

    def now(self) -> datetime:
        """Datetime local con zona horaria"""
        return datetime.now(pytz.utc).astimezone(self.tz)

    def utcnow(self) -> datetime:
        """Datetime UTC sin zona, el formato que guardan las columnas DateTime"""
        return self.now().astimezone(pytz.utc).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()

    def local_time(self, stored: datetime) -> datetime:
        """Convierte un timestamp guardado (UTC sin zona) a hora local"""
        return pytz.utc.localize(stored).astimezone(self.tz)

    def start_of_day_utc(self, day: date) -> datetime:
        """Medianoche local de `day` como datetime UTC sin zona (para filtrar columnas)"""
        midnight = self.tz.localize(datetime.combine(day, time.min))
        return midnight.astimezone(pytz.utc).replace(tzinfo=None)

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in self.weekend_days

    def day_name(self, day: date) -> str:
        return DAY_NAMES[day.weekday()]


class FixedClock(Clock):
    """
    Reloj congelado en un momento local dado. Lo usan los tests y los
    scripts de mantenimiento que reproducen un día concreto.
    """

    def __init__(self, moment: datetime, tz_name: str = APP_TIMEZONE,
                 weekend_days: Iterable[int] = WEEKEND_DAYS):
        super().__init__(tz_name, weekend_days)
        if moment.tzinfo is None:
            moment = self.tz.localize(moment)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0) -> "FixedClock":
        """Adelanta el momento congelado (in place) y devuelve el reloj"""
        naive = self.moment.replace(tzinfo=None) + timedelta(days=days, hours=hours, minutes=minutes)
        self.moment = self.tz.localize(naive)
        return self


def days_between(earlier: Optional[date], later: date) -> Optional[int]:
    """
    Días de calendario completos de `earlier` a `later`.
    Resta de fechas simple: sin milisegundos, sin sorpresas de horario de verano.
    """
    if earlier is None:
        return None
    return (later - earlier).days


default_clock = Clock()


def get_clock() -> Clock:
    """Dependencia de FastAPI (se sustituye en los tests)"""
    return default_clock
