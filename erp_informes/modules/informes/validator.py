"""
Validador de definiciones de informe.

Único punto de entrada para cualquier definición, venga del usuario, de una
plantilla o de la IA. Primero se comprueba la estructura con pydantic y
después, contra el catálogo, módulo, colección, campos, operadores, valores,
agrupaciones, ordenamiento, gráfico y parámetros. Se acumulan todos los
errores encontrados como pares (ruta, mensaje) antes de lanzar
ValidationError.

La única corrección automática es el intercambio de límites en `between`
cuando el inferior es mayor que el superior.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from erp_informes.modules.informes.catalog import (
    CATALOG, Aggregation, FieldDefinition, FieldNotFound, FieldType, ModuloInforme,
    Operator, PRESENCE_OPERATORS, SET_OPERATORS, parse_aggregation, parse_operator,
)
from erp_informes.modules.informes.definition import (
    ChartConfig, ChartType, EXPORT_FORMATS, FilterClause, GRANULARITY_ALIASES,
    Granularity, GroupKey, ParameterType, ReportConfig, ReportDefinition,
    ReportParameter, ReportType, SelectedField, SortDirection, SortSpec,
)
from erp_informes.modules.informes.exceptions import ValidationError
from erp_informes.modules.informes.schemas import FiltroIn, InformeDefinicionIn
from erp_informes.modules.informes.values import coerce_value, end_of_day, is_date_only, to_wire

logger = logging.getLogger(__name__)

Errors = List[Tuple[str, str]]

DIRECTION_ALIASES = {"ascendente": SortDirection.ASC, "descendente": SortDirection.DESC}


def _parse_enum(enum_cls: Type, value: Any, aliases: Optional[Dict[str, Any]] = None):
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return enum_cls(text)
    except ValueError:
        pass
    try:
        return enum_cls(text.lower())
    except ValueError:
        return (aliases or {}).get(text.lower())


def _loc_to_path(loc) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "definicion"


def _structural_errors(exc: PydanticValidationError) -> Errors:
    errors = []
    for err in exc.errors():
        if err["type"] == "missing":
            message = "Campo requerido"
        else:
            message = err["msg"]
        errors.append((_loc_to_path(err["loc"]), message))
    return errors


def parse_wire(raw: Any) -> InformeDefinicionIn:
    """Validación estructural del formato de intercambio"""
    if isinstance(raw, InformeDefinicionIn):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError([("definicion", "La definición debe ser un objeto")])
    try:
        return InformeDefinicionIn.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise ValidationError(_structural_errors(e))


# ============================================
# VALORES DE FILTRO
# ============================================

def _coerce_single(field: FieldDefinition, value: Any, path: str, errors: Errors):
    try:
        return coerce_value(field, value)
    except ValueError as e:
        errors.append((path, str(e)))
        return None


def coerce_filter_values(
    field: FieldDefinition,
    operator: Operator,
    value: Any,
    value2: Any,
    path: str,
    errors: Errors,
) -> Optional[Tuple[Any, ...]]:
    """
    Comprueba aridad y tipo de los valores de un filtro.

    Returns:
        Tupla de valores normalizados o None si hubo errores (añadidos a errors)
    """
    if operator in PRESENCE_OPERATORS:
        return ()

    if operator == Operator.BETWEEN:
        if isinstance(value, (list, tuple)):
            if len(value) != 2:
                errors.append((f"{path}.valor", "El operador between requiere exactamente dos valores"))
                return None
            bounds = list(value)
        elif value is None or value2 is None:
            errors.append((f"{path}.valor", "El operador between requiere valor y valor2"))
            return None
        else:
            bounds = [value, value2]

        before = len(errors)
        low = _coerce_single(field, bounds[0], f"{path}.valor", errors)
        high = _coerce_single(field, bounds[1], f"{path}.valor2", errors)
        if len(errors) > before:
            return None

        high_is_date_only = is_date_only(bounds[1])
        if low > high:
            low, high = high, low
            high_is_date_only = is_date_only(bounds[0])
        if field.type == FieldType.DATE and high_is_date_only:
            high = end_of_day(high)
        return (low, high)

    if operator in SET_OPERATORS:
        items = list(value) if isinstance(value, (list, tuple, set)) else ([] if value is None else [value])
        if not items:
            errors.append((f"{path}.valor", f"El operador {operator.value} requiere al menos un valor"))
            return None
        before = len(errors)
        coerced = tuple(
            _coerce_single(field, item, f"{path}.valor[{i}]", errors)
            for i, item in enumerate(items)
        )
        return None if len(errors) > before else coerced

    if value is None:
        errors.append((f"{path}.valor", "Valor requerido"))
        return None
    if isinstance(value, (list, tuple, dict, set)):
        errors.append((f"{path}.valor", f"El operador {operator.value} requiere un único valor"))
        return None

    coerced = _coerce_single(field, value, f"{path}.valor", errors)
    if coerced is None:
        return None
    # Fechas sin hora: lte y gt comparan contra el final del día
    if field.type == FieldType.DATE and operator in (Operator.LTE, Operator.GT) and is_date_only(value):
        coerced = end_of_day(coerced)
    return (coerced,)


# ============================================
# VALIDACIÓN
# ============================================

def _resolve_collection(dto: InformeDefinicionIn, module: ModuloInforme, errors: Errors) -> Optional[str]:
    if dto.coleccion:
        if not CATALOG.has_collection(module, dto.coleccion):
            errors.append(("coleccion", f"La colección '{dto.coleccion}' no existe en el módulo {module.value}"))
            return None
        return dto.coleccion

    for campo in dto.campos:
        if campo.coleccion and CATALOG.has_collection(module, campo.coleccion):
            return campo.coleccion

    collections = CATALOG.collections_for(module)
    if len(collections) == 1:
        return collections[0].name

    errors.append(("coleccion", f"Colección requerida para el módulo {module.value}"))
    return None


def _resolve_field(module, collection, path_value, own_collection, path, errors) -> Optional[FieldDefinition]:
    if own_collection and own_collection != collection:
        errors.append((
            f"{path}.coleccion",
            f"Solo se admiten campos de la colección base '{collection}'",
        ))
        return None
    try:
        return CATALOG.resolve(module, collection, path_value)
    except FieldNotFound:
        errors.append((f"{path}.campo", f"Campo desconocido en {collection}: {path_value}"))
        return None


def _validate_fields(dto, module, collection, errors) -> List[SelectedField]:
    if not dto.campos:
        errors.append(("campos", "Debe seleccionar al menos un campo"))
        return []

    selected: List[SelectedField] = []
    keys = set()
    for i, campo in enumerate(dto.campos):
        path = f"campos[{i}]"
        field = _resolve_field(module, collection, campo.campo, campo.coleccion, path, errors)

        aggregation = parse_aggregation(campo.agregacion)
        if aggregation is None:
            errors.append((f"{path}.agregacion", f"Agregación desconocida: {campo.agregacion}"))
        elif field is not None and aggregation != Aggregation.NONE and not field.aggregatable:
            errors.append((f"{path}.agregacion", f"El campo '{field.path}' no admite agregación"))

        if field is None or aggregation is None:
            continue

        item = SelectedField(
            field=field,
            aggregation=aggregation,
            label=campo.etiqueta or None,
            alias=campo.alias or None,
        )
        if item.key in keys:
            errors.append((f"{path}.alias" if item.alias else f"{path}.campo", f"Columna duplicada: {item.key}"))
            continue
        keys.add(item.key)
        selected.append(item)
    return selected


def _validate_filter(filtro: FiltroIn, index: int, module, collection, parameter_names, errors) -> Optional[FilterClause]:
    path = f"filtros[{index}]"
    field = _resolve_field(module, collection, filtro.campo, filtro.coleccion, path, errors)

    operator = parse_operator(filtro.operador)
    if operator is None:
        errors.append((f"{path}.operador", f"Operador desconocido: {filtro.operador}"))
    elif field is not None and operator not in field.allowed_operators:
        errors.append((
            f"{path}.operador",
            f"Operador '{operator.value}' no permitido para campos de tipo {field.type.value}",
        ))
        operator = None

    if filtro.parametro and filtro.parametro not in parameter_names:
        errors.append((f"{path}.parametro", f"Parámetro no declarado: {filtro.parametro}"))

    if field is None or operator is None:
        return None

    upper_bound = None
    if filtro.parametro and filtro.valor is None and operator not in PRESENCE_OPERATORS:
        # El valor llega al ejecutar
        values: Optional[Tuple[Any, ...]] = ()
        if operator == Operator.BETWEEN and filtro.valor2 is not None:
            upper_bound = _coerce_single(field, filtro.valor2, f"{path}.valor2", errors)
            if upper_bound is None:
                return None
            if field.type == FieldType.DATE and is_date_only(filtro.valor2):
                upper_bound = end_of_day(upper_bound)
    else:
        values = coerce_filter_values(field, operator, filtro.valor, filtro.valor2, path, errors)
    if values is None:
        return None

    return FilterClause(
        field=field,
        operator=operator,
        values=values,
        case_sensitive=filtro.sensible_mayusculas,
        parameter=filtro.parametro or None,
        label=filtro.etiqueta or None,
        upper_bound=upper_bound,
    )


def _find_column(fields: List[SelectedField], key: str) -> Optional[SelectedField]:
    for item in fields:
        if item.key == key:
            return item
    for item in fields:
        if item.field.path == key:
            return item
    return None


def _validate_grouping(dto, fields, errors) -> List[GroupKey]:
    group_by: List[GroupKey] = []
    for i, agrupacion in enumerate(dto.agrupaciones):
        path = f"agrupaciones[{i}]"
        column = _find_column(fields, agrupacion.campo)
        if column is None:
            errors.append((f"{path}.campo", f"La agrupación debe referirse a un campo seleccionado: {agrupacion.campo}"))
            continue
        if column.is_aggregated:
            errors.append((f"{path}.campo", f"No se puede agrupar por un campo agregado: {agrupacion.campo}"))
            continue

        granularity = None
        if agrupacion.granularidad:
            granularity = _parse_enum(Granularity, agrupacion.granularidad, GRANULARITY_ALIASES)
            if granularity is None:
                errors.append((f"{path}.granularidad", f"Granularidad desconocida: {agrupacion.granularidad}"))
                continue
            if column.field.type != FieldType.DATE:
                errors.append((f"{path}.granularidad", "La granularidad solo aplica a campos fecha"))
                continue

        if any(g.key == column.key for g in group_by):
            errors.append((f"{path}.campo", f"Agrupación duplicada: {column.key}"))
            continue
        group_by.append(GroupKey(column=column, granularity=granularity))

    if group_by or any(f.is_aggregated for f in fields):
        grouped_keys = {g.key for g in group_by}
        positions = {(c.alias or c.campo): i for i, c in enumerate(dto.campos)}
        for item in fields:
            if not item.is_aggregated and item.key not in grouped_keys:
                errors.append((
                    f"campos[{positions.get(item.key, 0)}]",
                    f"El campo '{item.key}' debe agregarse o incluirse en las agrupaciones",
                ))
    return group_by


def _validate_sort(dto, fields, errors) -> List[SortSpec]:
    sort_by: List[SortSpec] = []
    for i, orden in enumerate(dto.ordenamiento):
        path = f"ordenamiento[{i}]"
        column = _find_column(fields, orden.campo)
        direction = _parse_enum(SortDirection, orden.direccion, DIRECTION_ALIASES)
        if column is None:
            errors.append((f"{path}.campo", f"El ordenamiento debe referirse a una columna del informe: {orden.campo}"))
        if direction is None:
            errors.append((f"{path}.direccion", f"Dirección desconocida: {orden.direccion}"))
        if column is not None and direction is not None:
            sort_by.append(SortSpec(key=column.key, direction=direction))
    return sort_by


def _validate_chart(dto, report_type, fields, errors) -> Optional[ChartConfig]:
    if dto.grafico is None:
        if report_type in (ReportType.GRAFICO, ReportType.MIXTO):
            errors.append(("grafico", "Los informes con gráfico requieren la configuración del gráfico"))
        return None

    chart_type = _parse_enum(ChartType, dto.grafico.tipo)
    if chart_type is None:
        errors.append(("grafico.tipo", f"Tipo de gráfico desconocido: {dto.grafico.tipo}"))

    x_axis = None
    if dto.grafico.eje_x:
        column = _find_column(fields, dto.grafico.eje_x)
        if column is None:
            errors.append(("grafico.ejeX", f"El eje X debe ser una columna del informe: {dto.grafico.eje_x}"))
        else:
            x_axis = column.key

    y_axis = []
    for i, key in enumerate(dto.grafico.eje_y):
        column = _find_column(fields, key)
        if column is None:
            errors.append((f"grafico.ejeY[{i}]", f"El eje Y debe ser una columna del informe: {key}"))
        else:
            y_axis.append(column.key)

    if chart_type is None:
        return None
    return ChartConfig(
        type=chart_type,
        x_axis=x_axis,
        y_axis=tuple(y_axis),
        show_legend=dto.grafico.mostrar_leyenda,
        show_labels=dto.grafico.mostrar_etiquetas,
    )


def _validate_parameters(dto, errors) -> List[ReportParameter]:
    parameters: List[ReportParameter] = []
    names = set()
    for i, parametro in enumerate(dto.parametros):
        path = f"parametros[{i}]"
        if parametro.nombre in names:
            errors.append((f"{path}.nombre", f"Parámetro duplicado: {parametro.nombre}"))
            continue
        names.add(parametro.nombre)
        param_type = _parse_enum(ParameterType, parametro.tipo)
        if param_type is None:
            errors.append((f"{path}.tipo", f"Tipo de parámetro desconocido: {parametro.tipo}"))
            continue
        parameters.append(ReportParameter(
            name=parametro.nombre,
            label=parametro.etiqueta or parametro.nombre,
            type=param_type,
            default=parametro.valor_defecto,
            options=tuple(parametro.opciones),
            required=parametro.requerido,
        ))
    return parameters


def _validate_config(dto, errors) -> ReportConfig:
    formats = []
    for i, formato in enumerate(dto.config.formatos):
        value = formato.strip().lower() if isinstance(formato, str) else formato
        if value not in EXPORT_FORMATS:
            errors.append((f"config.formatos[{i}]", f"Formato de exportación desconocido: {formato}"))
        elif value not in formats:
            formats.append(value)
    return ReportConfig(
        limit=dto.config.limite,
        paginate=dto.config.paginacion,
        show_totals=dto.config.mostrar_totales,
        exportable=dto.config.exportable,
        formats=tuple(formats),
    )


def validate_definition(
    raw: Any,
    *,
    informe_id: Optional[UUID] = None,
    tenant_id: Optional[UUID] = None,
    owner_id: Optional[UUID] = None,
    is_template: bool = False,
    is_favorite: bool = False,
    created_at=None,
    updated_at=None,
) -> ReportDefinition:
    """
    Valida y normaliza una definición de informe.

    Args:
        raw: Definición en formato de intercambio (dict o InformeDefinicionIn)
        informe_id, tenant_id, owner_id: Identidad del informe guardado, si la hay

    Returns:
        ReportDefinition: Definición normalizada con los campos resueltos

    Raises:
        ValidationError: Con la lista completa de errores (ruta, mensaje)
    """
    dto = parse_wire(raw)
    errors: Errors = []

    name = dto.nombre.strip()
    if not name:
        errors.append(("nombre", "El nombre no puede estar vacío"))

    report_type = _parse_enum(ReportType, dto.tipo)
    if report_type is None:
        errors.append(("tipo", f"Tipo de informe desconocido: {dto.tipo}"))

    parameters = _validate_parameters(dto, errors)
    config = _validate_config(dto, errors)

    module = _parse_enum(ModuloInforme, dto.modulo)
    if module is None:
        errors.append(("modulo", f"Módulo desconocido: {dto.modulo}"))
        raise ValidationError(errors)

    collection = _resolve_collection(dto, module, errors)
    if collection is None:
        raise ValidationError(errors)

    fields = _validate_fields(dto, module, collection, errors)

    parameter_names = {p.nombre for p in dto.parametros}
    filters = [
        _validate_filter(filtro, i, module, collection, parameter_names, errors)
        for i, filtro in enumerate(dto.filtros)
    ]

    group_by = _validate_grouping(dto, fields, errors)
    sort_by = _validate_sort(dto, fields, errors)
    chart = _validate_chart(dto, report_type, fields, errors)

    if errors:
        logger.debug(f"Definición de informe rechazada: {errors}")
        raise ValidationError(errors)

    return ReportDefinition(
        id=informe_id,
        tenant_id=tenant_id,
        owner_id=owner_id,
        name=name,
        description=dto.descripcion,
        module=module,
        collection=collection,
        report_type=report_type,
        fields=tuple(fields),
        filters=tuple(f for f in filters if f is not None),
        group_by=tuple(group_by),
        sort_by=tuple(sort_by),
        chart=chart,
        parameters=tuple(parameters),
        config=config,
        is_template=is_template,
        is_favorite=is_favorite,
        is_shared=dto.compartido,
        order=dto.orden,
        created_at=created_at,
        updated_at=updated_at,
    )


# ============================================
# FORMA CANÓNICA
# ============================================

def _filter_to_wire(clause: FilterClause) -> Dict[str, Any]:
    data: Dict[str, Any] = {"campo": clause.field.path, "operador": clause.operator.value}
    if clause.operator in SET_OPERATORS or clause.operator == Operator.BETWEEN:
        if clause.values:
            data["valor"] = to_wire(list(clause.values))
    elif clause.values:
        data["valor"] = to_wire(clause.values[0])
    if clause.upper_bound is not None:
        data["valor2"] = to_wire(clause.upper_bound)
    if clause.case_sensitive:
        data["sensibleMayusculas"] = True
    if clause.parameter:
        data["parametro"] = clause.parameter
    if clause.label:
        data["etiqueta"] = clause.label
    return data


def to_wire_definition(definition: ReportDefinition) -> Dict[str, Any]:
    """Forma canónica persistida de una definición validada"""
    campos = []
    for item in definition.fields:
        campo: Dict[str, Any] = {"campo": item.field.path, "agregacion": item.aggregation.value}
        if item.label:
            campo["etiqueta"] = item.label
        if item.alias:
            campo["alias"] = item.alias
        campos.append(campo)

    agrupaciones = []
    for group in definition.group_by:
        agrupacion = {"campo": group.key}
        if group.granularity:
            agrupacion["granularidad"] = group.granularity.value
        agrupaciones.append(agrupacion)

    grafico = None
    if definition.chart:
        grafico = {
            "tipo": definition.chart.type.value,
            "ejeX": definition.chart.x_axis,
            "ejeY": list(definition.chart.y_axis),
            "mostrarLeyenda": definition.chart.show_legend,
            "mostrarEtiquetas": definition.chart.show_labels,
        }

    return {
        "nombre": definition.name,
        "descripcion": definition.description,
        "modulo": definition.module.value,
        "coleccion": definition.collection,
        "tipo": definition.report_type.value,
        "campos": campos,
        "filtros": [_filter_to_wire(clause) for clause in definition.filters],
        "agrupaciones": agrupaciones,
        "ordenamiento": [{"campo": s.key, "direccion": s.direction.value} for s in definition.sort_by],
        "grafico": grafico,
        "parametros": [
            {
                "nombre": p.name,
                "etiqueta": p.label,
                "tipo": p.type.value,
                "valorDefecto": to_wire(p.default),
                "opciones": list(p.options),
                "requerido": p.required,
            }
            for p in definition.parameters
        ],
        "config": {
            "limite": definition.config.limit,
            "paginacion": definition.config.paginate,
            "mostrarTotales": definition.config.show_totals,
            "exportable": definition.config.exportable,
            "formatos": list(definition.config.formats),
        },
        "compartido": definition.is_shared,
        "orden": definition.order,
    }


# ============================================
# PARÁMETROS EN TIEMPO DE EJECUCIÓN
# ============================================

def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == ()


def bind_parameters(definition: ReportDefinition, values: Optional[Mapping[str, Any]] = None) -> ReportDefinition:
    """
    Sustituye los valores de los filtros ligados a parámetros.

    Prioridad: valor recibido, valor propio del filtro y valor por defecto
    del parámetro. Un parámetro opcional sin valor elimina su filtro; uno
    requerido sin valor es un error.

    Raises:
        ValidationError: Parámetro requerido ausente o valor no válido
    """
    values = values or {}
    if not any(clause.parameter for clause in definition.filters):
        return definition

    parameters = {p.name: p for p in definition.parameters}
    errors: Errors = []
    filters: List[FilterClause] = []

    for clause in definition.filters:
        if not clause.parameter or clause.operator in PRESENCE_OPERATORS:
            filters.append(clause)
            continue

        parameter = parameters[clause.parameter]
        path = f"parametros.{parameter.name}"
        supplied = values.get(parameter.name)

        if not _is_empty(supplied):
            raw = supplied
        elif clause.values:
            filters.append(clause)
            continue
        elif not _is_empty(parameter.default):
            raw = parameter.default
        elif parameter.required:
            errors.append((path, f"El parámetro '{parameter.label}' es obligatorio"))
            continue
        else:
            continue

        if parameter.options and parameter.type in (ParameterType.SELECT, ParameterType.MULTISELECT):
            chosen = raw if isinstance(raw, (list, tuple)) else [raw]
            invalid = [v for v in chosen if v not in parameter.options]
            if invalid:
                errors.append((path, f"Valor fuera de las opciones permitidas: {invalid}"))
                continue

        # Un valor escalar en between conserva el límite superior guardado en el filtro
        stored_high = clause.values[1] if len(clause.values) == 2 else clause.upper_bound
        if clause.operator != Operator.BETWEEN:
            stored_high = None
        bound = coerce_filter_values(clause.field, clause.operator, raw, stored_high, path, errors)
        if bound is not None:
            filters.append(replace(clause, values=bound))

    if errors:
        raise ValidationError(errors)
    return replace(definition, filters=tuple(filters))
