"""
Exportación de informes

El motor entrega un ExecutionResult sin formatear; aquí se convierte a
bytes en el formato pedido. Solo se incluye el renderizador CSV; Excel y
PDF los registra la aplicación que los necesite.
"""

import csv
import io
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from erp_informes.modules.informes.definition import ReportDefinition
from erp_informes.modules.informes.exceptions import ValidationError
from erp_informes.modules.informes.schemas import Column, ExecutionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedReport:
    content: bytes
    filename: str
    media_type: str


class ReportRenderer(Protocol):
    def render(self, result: ExecutionResult, title: str) -> RenderedReport:
        ...


# ============================================
# FORMATO DE VALORES
# ============================================

def format_number(value: Any, decimals: int = 2) -> str:
    """Número con separadores es-ES: 1.234,56"""
    text = f"{float(value):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_value(value: Any, column: Column) -> str:
    """
    Formatea un valor para exportación según el tipo de la columna

    Args:
        value: Valor de la fila
        column: Metadatos de la columna

    Returns:
        Texto listo para escribir en el fichero
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Sí" if value else "No"
    if isinstance(value, datetime):
        if value.hour or value.minute or value.second:
            return value.strftime("%d/%m/%Y %H:%M")
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, (int, float, Decimal)):
        if column.format == "currency":
            return f"{format_number(value)} €"
        if column.format == "percentage":
            return f"{format_number(value)} %"
        if isinstance(value, int):
            return str(value)
        return format_number(value)
    return str(value)


def slugify(title: str) -> str:
    normalized = unicodedata.normalize("NFKD", title)
    ascii_title = normalized.encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-zA-Z0-9]+", "_", ascii_title).strip("_").lower() or "informe"


# ============================================
# CSV
# ============================================

class CsvRenderer:
    """CSV con separador ';' (los decimales usan coma) y BOM para Excel"""

    media_type = "text/csv"
    extension = "csv"

    def __init__(self, delimiter: str = ";"):
        self.delimiter = delimiter

    def render(self, result: ExecutionResult, title: str) -> RenderedReport:
        output = io.StringIO()
        writer = csv.writer(output, delimiter=self.delimiter)

        writer.writerow([c.label for c in result.columns])
        for row in result.rows:
            writer.writerow([format_value(row.get(c.key), c) for c in result.columns])

        if result.totals:
            totals_row = []
            for i, column in enumerate(result.columns):
                if column.key in result.totals:
                    totals_row.append(format_value(result.totals[column.key], column))
                else:
                    totals_row.append("TOTAL" if i == 0 else "")
            writer.writerow(totals_row)

        content = output.getvalue()
        output.close()

        filename = f"{slugify(title)}_{datetime.now().strftime('%Y%m%d')}.{self.extension}"
        return RenderedReport(
            content=content.encode("utf-8-sig"),
            filename=filename,
            media_type=self.media_type,
        )


class RendererRegistry:
    """Renderizadores disponibles por formato"""

    def __init__(self):
        self._renderers: Dict[str, ReportRenderer] = {}

    def register(self, formato: str, renderer: ReportRenderer) -> None:
        self._renderers[formato.lower()] = renderer

    def formats(self) -> List[str]:
        return sorted(self._renderers)

    def get(self, formato: str) -> ReportRenderer:
        renderer = self._renderers.get((formato or "").lower())
        if renderer is None:
            raise ValidationError([("formato", f"Formato de exportación no disponible: {formato}")])
        return renderer


renderers = RendererRegistry()
renderers.register("csv", CsvRenderer())


def check_exportable(definition: ReportDefinition, formato: str) -> None:
    """
    Raises:
        ValidationError: Si el informe no admite la exportación pedida
    """
    if not definition.config.exportable:
        raise ValidationError([("formato", "Este informe no se puede exportar")])
    if definition.config.formats and formato.lower() not in definition.config.formats:
        raise ValidationError([
            ("formato", f"Formato no habilitado para este informe: {formato}"),
        ])


def render_report(
    result: ExecutionResult,
    title: str,
    formato: str,
    registry: Optional[RendererRegistry] = None,
) -> RenderedReport:
    renderer = (registry or renderers).get(formato)
    rendered = renderer.render(result, title)
    logger.info(f"Informe '{title}' exportado a {formato}: {len(result.rows)} filas")
    return rendered
