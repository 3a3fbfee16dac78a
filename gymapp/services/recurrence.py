"""
Expansión de reglas de recurrencia semanales en fechas concretas de turnos.

Funciones puras: no tocan la base de datos. Las fechas resultantes quedan a
las 12:00 UTC (naive) para que ninguna conversión de zona horaria cambie el día.
"""
import unicodedata
import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional

from dateutil.rrule import rrule, WEEKLY, MO, TU, WE, TH, FR, SA, SU

from gymapp.core.exceptions import ValidationError
from gymapp.core.timezone_utils import CLASS_DATE_HOUR_UTC

WEEKDAY_LABELS = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]

_RRULE_DAYS = [MO, TU, WE, TH, FR, SA, SU]


def _fold(label: str) -> str:
    normalized = unicodedata.normalize("NFKD", label.strip().lower())
    return "".join(c for c in normalized if not unicodedata.combining(c))


_LABEL_INDEX = {_fold(label): index for index, label in enumerate(WEEKDAY_LABELS)}


def weekday_index(label: str) -> int:
    """
    Índice 0-6 (lunes = 0) de una etiqueta de día. Acepta mayúsculas y
    etiquetas sin tilde ("miercoles", "Sabado").
    """
    index = _LABEL_INDEX.get(_fold(label))
    if index is None:
        raise ValidationError(f"Día de la semana inválido: '{label}'.")
    return index


def normalize_weekdays(labels: Iterable[str]) -> List[str]:
    """Etiquetas canónicas, sin repetir, en orden lunes a domingo."""
    indexes = sorted({weekday_index(label) for label in labels})
    return [WEEKDAY_LABELS[i] for i in indexes]


def weekday_label(value) -> str:
    return WEEKDAY_LABELS[value.weekday()]


def build_rule(weekdays: Iterable[str], start_date: date, end_date: date) -> Optional[rrule]:
    """
    Regla semanal entre ``start_date`` y ``end_date`` (inclusive). Devuelve
    None si no hay días o si el rango está invertido.
    """
    indexes = sorted({weekday_index(label) for label in weekdays})
    if not indexes or end_date < start_date:
        return None
    return rrule(
        WEEKLY,
        byweekday=[_RRULE_DAYS[i] for i in indexes],
        dtstart=datetime(start_date.year, start_date.month, start_date.day, CLASS_DATE_HOUR_UTC),
        until=datetime(end_date.year, end_date.month, end_date.day, 23, 59, 59),
    )


def expand(weekdays: Iterable[str], start_date: date, end_date: date) -> List[datetime]:
    """
    Fechas de turno (12:00 UTC, naive) que caen en ``weekdays`` dentro de
    ``[start_date, end_date]``, ordenadas y sin repetir. Vacío si no hay días
    o si ``end_date < start_date``.
    """
    rule = build_rule(weekdays, start_date, end_date)
    if rule is None:
        return []
    return list(rule)


def rule_token(weekdays: Iterable[str], start_date: date, end_date: date) -> Optional[str]:
    """
    Texto RFC 5545 de la regla más un identificador de serie. Lo comparten
    todos los turnos generados desde una misma definición, aunque otra serie
    use los mismos días y fechas.
    """
    rule = build_rule(weekdays, start_date, end_date)
    if rule is None:
        return None
    return f"{rule}\nX-SERIES:{uuid.uuid4().hex}"
