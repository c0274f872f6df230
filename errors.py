"""
=============================================================================
ERRORS.PY — Errores de dominio
=============================================================================
Todos los fallos que el motor de progresión comunica a quien lo llama.

  ValidationError          → entrada inválida, rechazada antes de tocar nada (400)
  NotFoundError            → id de misión / entrega desconocido (404)
  StateConflictError       → la transición no vale desde el estado actual
                             (409); no se ha cambiado nada
  ConcurrencyConflictError → otro proceso actualizó al mentee antes (409),
                             hay que repetir la aprobación entera
  PersistenceError         → falló el almacén, la transacción se deshizo
                             (503), reintentar más tarde

main.py los convierte en respuestas JSON con el código de estado correspondiente.
"""

from typing import Any, Optional


class QuestlineError(Exception):
    """Clase base: mensaje + detalles estructurados para logs y respuestas"""

    status_code = 400
    is_retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def error_code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "type": self.error_code,
            "details": self.details,
            "retryable": self.is_retryable,
        }


class ValidationError(QuestlineError):
    status_code = 400


class NotFoundError(QuestlineError):
    status_code = 404


# ─────────────────────────────────────────────────────────────────────────────
# CONFLICTOS DE ESTADO (máquina de estados del progreso de misiones)
# ─────────────────────────────────────────────────────────────────────────────

class StateConflictError(QuestlineError):
    status_code = 409


class AlreadyStarted(StateConflictError):
    pass


class AlreadySubmitted(StateConflictError):
    pass


class NoActiveProgress(StateConflictError):
    pass


class AlreadyCompleted(StateConflictError):
    pass


class NotSubmitted(StateConflictError):
    pass


class QuestLocked(StateConflictError):
    pass


# ─────────────────────────────────────────────────────────────────────────────
# INFRAESTRUCTURA
# ─────────────────────────────────────────────────────────────────────────────

class ConcurrencyConflictError(QuestlineError):
    status_code = 409
    is_retryable = True


class PersistenceError(QuestlineError):
    status_code = 503
    is_retryable = True
