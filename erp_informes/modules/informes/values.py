"""
Coerción de valores según el tipo de campo del catálogo.

Compartido por el validador (valores de filtros y parámetros) y por las
fuentes de datos (valores almacenados en los documentos), de forma que un
filtro y el dato filtrado se comparan siempre en la misma representación.
Las fechas se normalizan a datetime UTC sin zona horaria.
"""

import math
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from erp_informes.modules.informes.catalog import FieldDefinition, FieldType

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TRUE_VALUES = {"true", "1", "si", "sí", "yes"}
FALSE_VALUES = {"false", "0", "no"}


def is_date_only(value: Any) -> bool:
    """True para fechas sin hora (date o 'YYYY-MM-DD')"""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and bool(_DATE_ONLY.match(value.strip()))


def to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Fecha no válida (se espera ISO-8601): {value}")
    else:
        raise ValueError(f"Se esperaba una fecha: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def to_number(value: Any):
    if isinstance(value, bool):
        raise ValueError(f"Se esperaba un número: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            raise ValueError(f"Se esperaba un número: {value}")
    else:
        raise ValueError(f"Se esperaba un número: {value!r}")

    if not math.isfinite(number):
        raise ValueError(f"Número no válido: {value}")
    return number


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
    raise ValueError(f"Se esperaba un valor booleano: {value!r}")


def to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal, UUID)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"Se esperaba un texto: {value!r}")


def coerce_value(field: FieldDefinition, value: Any) -> Any:
    """
    Convierte un valor externo al tipo del campo.

    Raises:
        ValueError: con un mensaje apto para mostrar al usuario
    """
    if field.type == FieldType.NUMBER:
        return to_number(value)
    if field.type == FieldType.DATE:
        return to_datetime(value)
    if field.type == FieldType.BOOLEAN:
        return to_bool(value)
    text = to_text(value)
    if field.type == FieldType.ENUM and field.enum_values and text not in field.enum_values:
        raise ValueError(
            f"Valor no permitido: {text}. Valores válidos: {', '.join(field.enum_values)}"
        )
    return text


def coerce_stored(field: FieldDefinition, value: Any) -> Any:
    """
    Normaliza un valor almacenado para compararlo con un filtro.
    Los valores que no se pueden convertir se tratan como ausentes.
    """
    if value is None:
        return None
    try:
        if field.type == FieldType.NUMBER:
            return to_number(value)
        if field.type == FieldType.DATE:
            return to_datetime(value)
        if field.type == FieldType.BOOLEAN:
            return to_bool(value)
        return to_text(value)
    except ValueError:
        return None


def to_wire(value: Any) -> Any:
    """Valor serializable a JSON"""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value
