"""
Pydantic schemas for Informes module

Wire format of a report definition (Spanish keys, shared by HTTP bodies,
AI output and the persisted canonical form) plus the request/response
models of the endpoints.

Operator, aggregation and enum-like values are kept as plain strings here:
the semantic validator checks them against the catalog so that every error
of a definition is reported in one pass.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ============================================
# DEFINICIÓN (formato de intercambio)
# ============================================

class CampoIn(BaseModel):
    """Campo seleccionado"""
    campo: str = Field(..., min_length=1)
    coleccion: Optional[str] = None
    etiqueta: Optional[str] = None
    agregacion: Optional[str] = None
    alias: Optional[str] = None


class FiltroIn(BaseModel):
    """Filtro sobre un campo"""
    campo: str = Field(..., min_length=1)
    coleccion: Optional[str] = None
    operador: str
    valor: Any = None
    valor2: Any = None
    sensible_mayusculas: bool = Field(False, alias="sensibleMayusculas")
    parametro: Optional[str] = None
    etiqueta: Optional[str] = None

    class Config:
        populate_by_name = True


class AgrupacionIn(BaseModel):
    campo: str = Field(..., min_length=1)
    granularidad: Optional[str] = None


class OrdenamientoIn(BaseModel):
    campo: str = Field(..., min_length=1)
    direccion: str = "asc"


class GraficoIn(BaseModel):
    tipo: str
    eje_x: Optional[str] = Field(None, alias="ejeX")
    eje_y: List[str] = Field(default_factory=list, alias="ejeY")
    mostrar_leyenda: bool = Field(True, alias="mostrarLeyenda")
    mostrar_etiquetas: bool = Field(False, alias="mostrarEtiquetas")

    class Config:
        populate_by_name = True


class ParametroIn(BaseModel):
    """Parámetro solicitado al usuario en tiempo de ejecución"""
    nombre: str = Field(..., min_length=1)
    etiqueta: Optional[str] = None
    tipo: str = "texto"
    valor_defecto: Any = Field(None, alias="valorDefecto")
    opciones: List[Any] = Field(default_factory=list)
    requerido: bool = False

    class Config:
        populate_by_name = True


class ConfigIn(BaseModel):
    limite: Optional[int] = Field(None, ge=1)
    paginacion: bool = True
    mostrar_totales: bool = Field(True, alias="mostrarTotales")
    exportable: bool = True
    formatos: List[str] = Field(default_factory=lambda: ["csv"])

    class Config:
        populate_by_name = True


class InformeDefinicionIn(BaseModel):
    """Definición de informe tal y como llega desde fuera"""
    nombre: str = Field(..., min_length=1, max_length=200)
    descripcion: Optional[str] = None
    modulo: str
    coleccion: Optional[str] = None
    tipo: str = "tabla"
    campos: List[CampoIn]
    filtros: List[FiltroIn] = Field(default_factory=list)
    agrupaciones: List[AgrupacionIn] = Field(default_factory=list)
    ordenamiento: List[OrdenamientoIn] = Field(default_factory=list)
    grafico: Optional[GraficoIn] = None
    parametros: List[ParametroIn] = Field(default_factory=list)
    config: ConfigIn = Field(default_factory=ConfigIn)
    compartido: bool = False
    orden: int = 0

    @field_validator("ordenamiento", mode="before")
    @classmethod
    def single_sort_as_list(cls, v):
        # Las definiciones antiguas guardan un único criterio como objeto
        if isinstance(v, dict):
            return [v]
        return v

    @field_validator("filtros", "agrupaciones", "parametros", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v


class InformeUpdate(BaseModel):
    """Actualización parcial; se fusiona con la definición guardada"""
    nombre: Optional[str] = Field(None, min_length=1, max_length=200)
    descripcion: Optional[str] = None
    modulo: Optional[str] = None
    coleccion: Optional[str] = None
    tipo: Optional[str] = None
    campos: Optional[List[Dict[str, Any]]] = None
    filtros: Optional[List[Dict[str, Any]]] = None
    agrupaciones: Optional[List[Dict[str, Any]]] = None
    ordenamiento: Optional[List[Dict[str, Any]]] = None
    grafico: Optional[Dict[str, Any]] = None
    parametros: Optional[List[Dict[str, Any]]] = None
    config: Optional[Dict[str, Any]] = None
    compartido: Optional[bool] = None
    orden: Optional[int] = None


# ============================================
# RESPUESTAS DE INFORMES GUARDADOS
# ============================================

class InformeOut(BaseModel):
    id: UUID
    nombre: str
    descripcion: Optional[str] = None
    modulo: str
    coleccion: str
    tipo: str
    campos: List[Dict[str, Any]]
    filtros: List[Dict[str, Any]] = []
    agrupaciones: List[Dict[str, Any]] = []
    ordenamiento: List[Dict[str, Any]] = []
    grafico: Optional[Dict[str, Any]] = None
    parametros: List[Dict[str, Any]] = []
    config: Dict[str, Any] = {}
    compartido: bool = False
    orden: int = 0
    es_plantilla: bool = False
    es_favorito: bool = False
    propietario_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InformeList(BaseModel):
    informes: List[InformeOut]
    total: int
    limit: int
    offset: int


class SeedResponse(BaseModel):
    creados: int
    mensaje: str


# ============================================
# EJECUCIÓN
# ============================================

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Column(BaseModel):
    """Metadatos de una columna para el renderizador"""
    key: str
    label: str
    type: str
    aggregation: str = "none"
    format: Optional[str] = None


class ExecutionResult(BaseModel):
    rows: List[Dict[str, Any]]
    totals: Dict[str, Any]
    pagination: Pagination
    columns: List[Column]


class EjecutarRequest(BaseModel):
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1)
    parametros: Dict[str, Any] = Field(default_factory=dict)


class EjecutarDefinicionRequest(EjecutarRequest):
    """Ejecución de una definición sin guardarla"""
    definicion: Dict[str, Any]


class ExportarRequest(BaseModel):
    formato: str = "csv"
    parametros: Dict[str, Any] = Field(default_factory=dict)


# ============================================
# IA
# ============================================

class GenerarIARequest(BaseModel):
    texto: str = Field(..., min_length=3, max_length=2000)
    modulo: Optional[str] = None
    ejecutar: bool = True
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1)


class GenerarIAResponse(BaseModel):
    definicion: Dict[str, Any]
    confianza: float
    explicacion: str
    resultado: Optional[ExecutionResult] = None


class SugerenciasResponse(BaseModel):
    modulo: str
    sugerencias: List[str]
