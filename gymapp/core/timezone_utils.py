"""
Utilidades para el manejo de zonas horarias en el sistema.

Los turnos guardan su fecha a las 12:00 UTC (naive) y la hora de inicio como
texto "HH:MM" en hora local del gimnasio. Estas funciones combinan ambas
cosas en un instante real usando la zona horaria configurada del tenant.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
import pytz

CLASS_DATE_HOUR_UTC = 12


def convert_naive_to_gym_timezone(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime naive (sin timezone) interpretándolo como hora local del gimnasio
    y lo convierte a un datetime aware en la zona horaria del gimnasio.

    Args:
        naive_dt: Datetime naive que representa la hora local del gimnasio
        gym_timezone: Zona horaria del gimnasio (ej: 'America/Argentina/Buenos_Aires')

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if naive_dt.tzinfo is not None:
        raise ValueError("El datetime debe ser naive (sin timezone)")

    tz = pytz.timezone(gym_timezone)
    return tz.localize(naive_dt)


def convert_gym_time_to_utc(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime naive (hora local del gimnasio) a UTC.
    """
    gym_aware = convert_naive_to_gym_timezone(naive_dt, gym_timezone)
    return gym_aware.astimezone(timezone.utc)


def convert_utc_to_local(utc_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime UTC a hora local del gimnasio.

    Args:
        utc_dt: Datetime en UTC (si es naive se asume UTC)
        gym_timezone: Zona horaria del gimnasio

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if utc_dt.tzinfo is None:
        # Si es naive, asumimos que es UTC
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    tz = pytz.timezone(gym_timezone)
    return utc_dt.astimezone(tz)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_time_of_day(value: str) -> time:
    """Convierte "HH:MM" en time. Lanza ValueError si el formato no es válido."""
    return datetime.strptime(value.strip(), "%H:%M").time()


def to_class_date(value) -> datetime:
    """
    Normaliza una fecha de turno a las 12:00 UTC (naive). Acepta date,
    datetime (se usa su día calendario) o un string ISO.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return datetime(value.year, value.month, value.day, CLASS_DATE_HOUR_UTC)


def class_start_instant(class_date: datetime, start_time: str, gym_timezone: str) -> datetime:
    """
    Instante real (aware, UTC) en que empieza un turno: el día calendario
    guardado combinado con la hora de inicio local del gimnasio.
    """
    local_naive = datetime.combine(class_date.date(), parse_time_of_day(start_time))
    return convert_gym_time_to_utc(local_naive, gym_timezone)


def gym_today(gym_timezone: str, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return convert_utc_to_local(now, gym_timezone).date()


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """Primer y último día del mes indicado."""
    first = date(year, month, 1)
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    return first, next_first - timedelta(days=1)


def format_class_moment(class_date: datetime, start_time: str) -> str:
    return f"{class_date.strftime('%d/%m/%Y')} a las {start_time}"
