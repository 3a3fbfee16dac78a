"""
Errores de dominio del módulo de turnos y créditos.

Los servicios lanzan estas excepciones antes de cualquier escritura; el
handler registrado en main las convierte en respuestas JSON
``{"detail": ..., "error": ...}``.
"""
from fastapi import status


class SchedulingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Dato requerido ausente o mal formado."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation"


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class StateConflictError(SchedulingError):
    """La operación no es válida para el estado actual del turno."""
    status_code = status.HTTP_409_CONFLICT
    code = "state_conflict"


class InsufficientCreditError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_credit"


class AuthorizationError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "authorization"


class ConsistencyError(SchedulingError):
    """Datos inconsistentes (por ejemplo, un turno sin tipo de clase)."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_consistency"
