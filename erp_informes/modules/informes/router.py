"""
Informes Router

Endpoints del motor de informes: catálogo de campos, informes guardados,
plantillas, ejecución (guardada o ad-hoc), exportación y generación desde
lenguaje natural.

Los errores del dominio (ValidationError, NotFoundError, ...) no se
capturan aquí: los traduce a HTTP el manejador registrado en main.py.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from erp_informes.core.config import settings
from erp_informes.dependencies.companyDependencies import TenantId
from erp_informes.dependencies.dbDependecies import async_db_dependency, db_dependency
from erp_informes.dependencies.userDependencies import user_dependency
from erp_informes.modules.informes.ai_intake import (
    AIReportIntake, NaturalLanguageInterpreter, command_suggestions,
)
from erp_informes.modules.informes.catalog import CATALOG, ModuloInforme
from erp_informes.modules.informes.datasources.base import TenantDataSource
from erp_informes.modules.informes.datasources.sql import SqlDataSource
from erp_informes.modules.informes.engine import ReportExecutor
from erp_informes.modules.informes.export import check_exportable, render_report
from erp_informes.modules.informes.schemas import (
    EjecutarDefinicionRequest, EjecutarRequest, ExecutionResult, ExportarRequest,
    GenerarIARequest, GenerarIAResponse, InformeDefinicionIn, InformeList,
    InformeOut, InformeUpdate, SeedResponse, SugerenciasResponse,
)
from erp_informes.modules.informes.service import InformeService
from erp_informes.modules.informes.validator import to_wire_definition, validate_definition

informes_router = APIRouter(prefix="/informes", tags=["Informes"])


def get_data_source(session: async_db_dependency, tenant_id: TenantId) -> TenantDataSource:
    """Fuente de datos de la empresa de la petición"""
    return SqlDataSource(session, tenant_id)


def get_ai_interpreter(request: Request) -> Optional[NaturalLanguageInterpreter]:
    """Intérprete de lenguaje natural configurado por la aplicación, si lo hay"""
    return getattr(request.app.state, "ai_interpreter", None)


# ============================================
# CATÁLOGO
# ============================================

@informes_router.get("/catalogo")
def get_catalog(tenant_id: TenantId):
    """Catálogo completo de módulos, colecciones y campos consultables"""
    return CATALOG.as_dict()


@informes_router.get("/catalogo/{modulo}")
def get_catalog_module(modulo: ModuloInforme, tenant_id: TenantId):
    return CATALOG.as_dict(modulo)


# ============================================
# PLANTILLAS
# ============================================

@informes_router.get("/plantillas", response_model=List[InformeOut])
def list_templates(
    db: db_dependency,
    tenant_id: TenantId,
    modulo: Optional[ModuloInforme] = Query(None, description="Filtrar por módulo"),
):
    service = InformeService(db, tenant_id)
    templates = service.list_templates(modulo.value if modulo else None)
    return [service.to_out(t) for t in templates]


@informes_router.post("/plantillas/inicializar", response_model=SeedResponse)
def seed_templates(db: db_dependency, tenant_id: TenantId, user_id: user_dependency):
    """
    Crea en la empresa las plantillas predefinidas que aún no existan.
    Repetir la llamada no crea duplicados.
    """
    creados = InformeService(db, tenant_id).seed_templates()
    return SeedResponse(creados=creados, mensaje=f"{creados} plantillas creadas")


# ============================================
# IA
# ============================================

@informes_router.get("/ia/sugerencias", response_model=SugerenciasResponse)
def get_ai_suggestions(
    tenant_id: TenantId,
    modulo: Optional[ModuloInforme] = Query(None),
):
    return SugerenciasResponse(
        modulo=modulo.value if modulo else "todos",
        sugerencias=command_suggestions(modulo),
    )


@informes_router.post("/ia/generar", response_model=GenerarIAResponse)
async def generate_with_ai(
    body: GenerarIARequest,
    tenant_id: TenantId,
    user_id: user_dependency,
    data_source: TenantDataSource = Depends(get_data_source),
    interpreter: Optional[NaturalLanguageInterpreter] = Depends(get_ai_interpreter),
):
    """
    Genera una definición desde un comando en lenguaje natural.

    La definición no se guarda; si `ejecutar` es true se devuelve también
    el resultado de la primera página.
    """
    if interpreter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="El servicio de generación con IA no está configurado",
        )

    texto = body.texto
    if body.modulo:
        texto = f"{texto} (módulo {body.modulo})"

    intake = AIReportIntake(interpreter)
    resultado = None
    if body.ejecutar:
        definition, candidate, resultado = await intake.generate_and_execute(
            texto,
            ReportExecutor(data_source),
            page=body.page,
            limit=body.limit,
            tenant_id=tenant_id,
            owner_id=user_id,
        )
    else:
        definition, candidate = await intake.generate(texto, tenant_id=tenant_id, owner_id=user_id)

    return GenerarIAResponse(
        definicion=to_wire_definition(definition),
        confianza=candidate.confidence,
        explicacion=candidate.explanation,
        resultado=resultado,
    )


# ============================================
# EJECUCIÓN AD-HOC
# ============================================

@informes_router.post("/ejecutar", response_model=ExecutionResult)
async def execute_definition(
    body: EjecutarDefinicionRequest,
    tenant_id: TenantId,
    user_id: user_dependency,
    data_source: TenantDataSource = Depends(get_data_source),
):
    """Valida y ejecuta una definición sin guardarla"""
    definition = validate_definition(body.definicion, tenant_id=tenant_id, owner_id=user_id)
    return await ReportExecutor(data_source).execute(
        definition, page=body.page, limit=body.limit, parameters=body.parametros
    )


# ============================================
# INFORMES GUARDADOS
# ============================================

@informes_router.get("", response_model=InformeList)
def list_informes(
    db: db_dependency,
    tenant_id: TenantId,
    user_id: user_dependency,
    modulo: Optional[ModuloInforme] = Query(None, description="Filtrar por módulo"),
    tipo: Optional[str] = Query(None, pattern="^(tabla|grafico|mixto)$"),
    es_plantilla: Optional[bool] = Query(None),
    favoritos: bool = Query(False),
    busqueda: Optional[str] = Query(None, description="Buscar en nombre y descripción"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    service = InformeService(db, tenant_id)
    informes, total = service.list_informes(
        user_id,
        modulo=modulo.value if modulo else None,
        tipo=tipo,
        es_plantilla=es_plantilla,
        favoritos=favoritos,
        busqueda=busqueda,
        limit=limit,
        offset=offset,
    )
    return InformeList(
        informes=[service.to_out(i) for i in informes],
        total=total,
        limit=limit,
        offset=offset,
    )


@informes_router.post("", response_model=InformeOut, status_code=status.HTTP_201_CREATED)
def create_informe(
    informe: InformeDefinicionIn,
    db: db_dependency,
    tenant_id: TenantId,
    user_id: user_dependency,
):
    service = InformeService(db, tenant_id)
    return service.to_out(service.create_informe(informe, user_id))


@informes_router.get("/{informe_id}", response_model=InformeOut)
def get_informe(informe_id: UUID, db: db_dependency, tenant_id: TenantId, user_id: user_dependency):
    service = InformeService(db, tenant_id)
    return service.to_out(service.get_informe(informe_id, user_id))


@informes_router.put("/{informe_id}", response_model=InformeOut)
def update_informe(
    informe_id: UUID,
    update: InformeUpdate,
    db: db_dependency,
    tenant_id: TenantId,
    user_id: user_dependency,
):
    service = InformeService(db, tenant_id)
    return service.to_out(service.update_informe(informe_id, update, user_id))


@informes_router.delete("/{informe_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_informe(informe_id: UUID, db: db_dependency, tenant_id: TenantId, user_id: user_dependency):
    InformeService(db, tenant_id).delete_informe(informe_id, user_id)


@informes_router.post("/{informe_id}/duplicar", response_model=InformeOut, status_code=status.HTTP_201_CREATED)
def duplicate_informe(informe_id: UUID, db: db_dependency, tenant_id: TenantId, user_id: user_dependency):
    service = InformeService(db, tenant_id)
    return service.to_out(service.duplicate_informe(informe_id, user_id))


@informes_router.post("/{informe_id}/favorito", response_model=InformeOut)
def toggle_favorite(informe_id: UUID, db: db_dependency, tenant_id: TenantId, user_id: user_dependency):
    service = InformeService(db, tenant_id)
    return service.to_out(service.toggle_favorite(informe_id, user_id))


@informes_router.post("/{informe_id}/ejecutar", response_model=ExecutionResult)
async def execute_informe(
    informe_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    user_id: user_dependency,
    body: Optional[EjecutarRequest] = None,
    data_source: TenantDataSource = Depends(get_data_source),
):
    """
    Ejecuta un informe guardado.

    Los totales se calculan sobre todo el conjunto filtrado y no dependen
    de la página solicitada.
    """
    body = body or EjecutarRequest()
    definition = InformeService(db, tenant_id).get_definition(informe_id, user_id)
    return await ReportExecutor(data_source).execute(
        definition, page=body.page, limit=body.limit, parameters=body.parametros
    )


@informes_router.post("/{informe_id}/exportar")
async def export_informe(
    informe_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    user_id: user_dependency,
    body: Optional[ExportarRequest] = None,
    data_source: TenantDataSource = Depends(get_data_source),
):
    """Exporta el informe completo (hasta INFORMES_EXPORT_MAX_ROWS filas)"""
    body = body or ExportarRequest()
    definition = InformeService(db, tenant_id).get_definition(informe_id, user_id)
    check_exportable(definition, body.formato)

    executor = ReportExecutor(data_source, max_page_size=settings.INFORMES_EXPORT_MAX_ROWS)
    result = await executor.execute(
        definition, page=1, limit=settings.INFORMES_EXPORT_MAX_ROWS, parameters=body.parametros
    )
    rendered = render_report(result, definition.name, body.formato)

    return Response(
        content=rendered.content,
        media_type=rendered.media_type,
        headers={"Content-Disposition": f"attachment; filename={rendered.filename}"},
    )
