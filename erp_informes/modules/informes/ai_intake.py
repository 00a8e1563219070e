"""
Generación de informes desde lenguaje natural.

El servicio de IA es externo y su salida se trata como entrada no fiable:
se adapta su forma (titulo, tipoVisualizacion, tipoGrafico, limite) al
formato de intercambio, se resuelven las fechas relativas y siempre se pasa
por validate_definition. Un ValidationError se propaga tal cual, con la
misma lista de errores que produciría una definición de usuario.
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Tuple
from uuid import UUID

from erp_informes.modules.informes.catalog import CATALOG, FieldNotFound, FieldType, ModuloInforme
from erp_informes.modules.informes.definition import ReportDefinition
from erp_informes.modules.informes.engine import ReportExecutor
from erp_informes.modules.informes.exceptions import ValidationError
from erp_informes.modules.informes.schemas import ExecutionResult
from erp_informes.modules.informes.validator import validate_definition

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = {"alta": 0.9, "media": 0.6, "baja": 0.3}


@dataclass(frozen=True)
class AICandidate:
    """Definición candidata devuelta por el servicio de IA"""
    definition: Dict[str, Any]
    confidence: float
    explanation: str = ""


class NaturalLanguageInterpreter(Protocol):
    async def interpret(self, text: str) -> AICandidate:
        ...


# ============================================
# UTILIDADES
# ============================================

def extract_candidate_json(text: str) -> Dict[str, Any]:
    """
    Extrae el objeto JSON de la respuesta de un modelo de lenguaje.

    Raises:
        ValidationError: Si la respuesta no contiene un objeto JSON
    """
    candidates = [text]
    block = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if block:
        candidates.append(block.group(1))
    loose = re.search(r"(\{.*\})", text, re.DOTALL)
    if loose:
        candidates.append(loose.group(1))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ValidationError([("definicion", "La respuesta de la IA no contiene un objeto JSON válido")])


def _plain(text: str) -> str:
    """Minúsculas y sin tildes"""
    normalized = unicodedata.normalize("NFKD", text.lower().strip())
    return "".join(c for c in normalized if not unicodedata.combining(c))


def resolve_relative_date(value: Any, today: date) -> Optional[Tuple[str, Optional[str]]]:
    """
    Convierte una expresión de fecha relativa en fechas ISO.

    Returns:
        (desde, hasta) para rangos, (fecha, None) para "hoy" o None si el
        valor no es una fecha relativa reconocida
    """
    if not isinstance(value, str):
        return None
    text = _plain(value)

    if text == "hoy":
        return today.isoformat(), None
    if "este mes" in text or "mes actual" in text:
        return today.replace(day=1).isoformat(), today.isoformat()
    if "ultimo mes" in text or "mes pasado" in text:
        last_day = today.replace(day=1) - timedelta(days=1)
        return last_day.replace(day=1).isoformat(), last_day.isoformat()
    if "este ano" in text or "ano actual" in text:
        return date(today.year, 1, 1).isoformat(), today.isoformat()
    if "ultimo ano" in text or "ano pasado" in text:
        return date(today.year - 1, 1, 1).isoformat(), date(today.year - 1, 12, 31).isoformat()

    days = re.search(r"ultimos\s+(\d+)\s+dias", text)
    if days:
        return (today - timedelta(days=int(days.group(1)))).isoformat(), today.isoformat()
    return None


def _is_date_field(module: Any, collection: Any, path: str) -> bool:
    try:
        return CATALOG.resolve(ModuloInforme(module), collection, path).type == FieldType.DATE
    except (FieldNotFound, ValueError, TypeError):
        return "fecha" in path.lower()


def _resolve_filter_dates(filtro: Dict[str, Any], module: Any, collection: Any, today: date) -> Dict[str, Any]:
    campo = filtro.get("campo")
    if not isinstance(campo, str) or not _is_date_field(module, collection, campo):
        return filtro

    resolved = resolve_relative_date(filtro.get("valor"), today)
    if resolved is None:
        return filtro

    start, end = resolved
    filtro = dict(filtro)
    if end is None:
        filtro["valor"] = start
    else:
        filtro.update({"operador": "between", "valor": start, "valor2": end})
    return filtro


def map_candidate(raw: Mapping[str, Any], today: date) -> Dict[str, Any]:
    """
    Adapta la salida de la IA al formato de intercambio.

    No completa información ausente: si faltan los campos, el validador lo
    indicará.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError([("definicion", "La definición generada debe ser un objeto JSON")])

    data = dict(raw)
    for key in ("confianza", "sugerencias"):
        data.pop(key, None)

    if "titulo" in data and "nombre" not in data:
        data["nombre"] = data.pop("titulo")
    if "tipoVisualizacion" in data:
        data.setdefault("tipo", data.pop("tipoVisualizacion"))

    limite = data.pop("limite", None)
    if limite is not None and isinstance(data.get("config") or {}, Mapping):
        config = dict(data.get("config") or {})
        config["limite"] = limite
        data["config"] = config

    module, collection = data.get("modulo"), data.get("coleccion")
    if isinstance(data.get("filtros"), list):
        data["filtros"] = [
            _resolve_filter_dates(f, module, collection, today) if isinstance(f, dict) else f
            for f in data["filtros"]
        ]

    chart_type = data.pop("tipoGrafico", None)
    if isinstance(chart_type, str) and chart_type.lower() in ("null", "none", ""):
        chart_type = None
    if chart_type and data.get("tipo", "tabla") != "tabla" and "grafico" not in data:
        campos = [c for c in data.get("campos") or [] if isinstance(c, dict)]
        agrupaciones = [a for a in data.get("agrupaciones") or [] if isinstance(a, dict)]
        eje_x = (agrupaciones[0].get("campo") if agrupaciones else None) or (campos[0].get("campo") if campos else None)
        eje_y = [
            c.get("alias") or c.get("campo")
            for c in campos
            if c.get("agregacion") not in (None, "", "none", "ninguna")
        ]
        if eje_x and eje_y:
            data["grafico"] = {
                "tipo": chart_type,
                "ejeX": eje_x,
                "ejeY": eje_y,
                "mostrarLeyenda": True,
                "mostrarEtiquetas": chart_type == "circular",
            }
    return data


# ============================================
# ADAPTADOR
# ============================================

class AIReportIntake:
    """Punto de entrada de las definiciones generadas por IA"""

    def __init__(self, interpreter: NaturalLanguageInterpreter, today: Callable[[], date] = date.today):
        self.interpreter = interpreter
        self.today = today

    async def generate(
        self,
        text: str,
        tenant_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> Tuple[ReportDefinition, AICandidate]:
        """
        Interpreta un comando y valida la definición resultante.

        Raises:
            ValidationError: La definición generada no es válida
        """
        candidate = await self.interpreter.interpret(text)
        logger.info(f"Definición generada por IA (confianza {candidate.confidence!r}) para: {text!r}")

        wire = map_candidate(candidate.definition, self.today())
        definition = validate_definition(wire, tenant_id=tenant_id, owner_id=owner_id)
        return definition, candidate

    async def generate_and_execute(
        self,
        text: str,
        executor: ReportExecutor,
        page: int = 1,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        tenant_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> Tuple[ReportDefinition, AICandidate, ExecutionResult]:
        """Genera, valida y ejecuta sin guardar la definición"""
        definition, candidate = await self.generate(text, tenant_id=tenant_id, owner_id=owner_id)
        result = await executor.execute(definition, page=page, limit=limit, timeout=timeout)
        return definition, candidate, result


# ============================================
# INTÉRPRETE SOBRE UN MODELO DE TEXTO
# ============================================

PROMPT_TEMPLATE = """Eres un asistente especializado en interpretar solicitudes de informes empresariales en español.

COMANDO: "{comando}"

FECHA ACTUAL: {fecha}

CATÁLOGO (modulo/coleccion: campos):
{catalogo}

Responde SOLO con un JSON válido con esta estructura:
{{
  "modulo": "...",
  "coleccion": "...",
  "titulo": "Título descriptivo del informe",
  "descripcion": "Breve descripción",
  "campos": [{{"campo": "...", "etiqueta": "...", "agregacion": "ninguna|suma|promedio|conteo|min|max"}}],
  "filtros": [{{"campo": "...", "operador": "igual|diferente|contiene|mayor|menor|entre|...", "valor": "...", "valor2": "..."}}],
  "agrupaciones": [{{"campo": "...", "granularidad": "day|month|year"}}],
  "ordenamiento": [{{"campo": "...", "direccion": "asc|desc"}}],
  "tipoVisualizacion": "tabla|grafico|mixto",
  "tipoGrafico": "linea|barra|barra_horizontal|circular|area|null",
  "limite": null,
  "confianza": "alta|media|baja"
}}

Para periodos usa expresiones como "hoy", "este mes", "último mes", "este año", "último año" o "últimos N días" en el valor del filtro de fecha."""


def catalog_summary() -> str:
    lines = []
    for module in ModuloInforme:
        for collection in CATALOG.collections_for(module):
            fields = ", ".join(f"{f.path} ({f.type.value})" for f in collection.fields)
            lines.append(f"- {module.value}/{collection.name}: {fields}")
    return "\n".join(lines)


class TextCompletionInterpreter:
    """
    Intérprete sobre cualquier función de completado de texto
    (prompt -> respuesta del modelo).
    """

    def __init__(self, complete: Callable[[str], Awaitable[str]], today: Callable[[], date] = date.today):
        self.complete = complete
        self.today = today

    async def interpret(self, text: str) -> AICandidate:
        prompt = PROMPT_TEMPLATE.format(comando=text, fecha=self.today().isoformat(), catalogo=catalog_summary())
        response = await self.complete(prompt)
        parsed = extract_candidate_json(response)

        confianza = parsed.get("confianza")
        confidence = CONFIDENCE_LEVELS.get(confianza, 0.5) if isinstance(confianza, str) else 0.5
        return AICandidate(
            definition=parsed,
            confidence=confidence,
            explanation=f"Informe generado con confianza {confianza or 'desconocida'}",
        )


# ============================================
# SUGERENCIAS
# ============================================

SUGERENCIAS_BASE = [
    "Clientes que más han comprado este año",
    "Ventas por mes del último año",
    "Productos más vendidos",
    "Facturas pendientes de cobro",
    "Horas trabajadas por empleado este mes",
    "Proveedores con más compras",
]

SUGERENCIAS_POR_MODULO: Dict[ModuloInforme, List[str]] = {
    ModuloInforme.VENTAS: [
        "Ventas del último mes",
        "Top 10 clientes por facturación",
        "Ventas por familia de productos",
        "Presupuestos pendientes de aceptar",
        "Albaranes sin facturar",
    ],
    ModuloInforme.COMPRAS: [
        "Compras de los últimos 90 días",
        "Top proveedores por volumen",
        "Pedidos de compra pendientes",
    ],
    ModuloInforme.STOCK: [
        "Productos con stock bajo mínimo",
        "Stock valorado por familia",
        "Movimientos de stock del mes",
    ],
    ModuloInforme.TESORERIA: [
        "Flujo de caja mensual",
        "Vencimientos de cobro pendientes",
        "Pagos de este mes",
    ],
    ModuloInforme.PERSONAL: [
        "Horas trabajadas por proyecto",
        "Fichajes del mes actual",
        "Coste de personal por departamento",
    ],
    ModuloInforme.CLIENTES: [
        "Clientes nuevos este año",
        "Clientes con saldo pendiente",
    ],
    ModuloInforme.PROVEEDORES: [
        "Proveedores por volumen de compras",
        "Proveedores con saldo pendiente",
    ],
    ModuloInforme.PROYECTOS: [
        "Proyectos en curso",
        "Horas estimadas frente a reales",
    ],
    ModuloInforme.GENERAL: [
        "Actividad del sistema",
        "Usuarios más activos",
    ],
}


def command_suggestions(module: Optional[ModuloInforme] = None) -> List[str]:
    """Comandos de ejemplo para la interfaz, por módulo"""
    if module is not None:
        return list(SUGERENCIAS_POR_MODULO.get(ModuloInforme(module), SUGERENCIAS_BASE))
    return list(SUGERENCIAS_BASE)
