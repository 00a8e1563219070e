"""
Servicio de informes guardados

Persistencia de definiciones de informe por empresa: listado, alta,
modificación, borrado, duplicado, favoritos y plantillas. Toda definición
pasa por el validador antes de guardarse.

El servicio se crea para una única empresa y todas sus consultas parten de
_base_query(), que ya está filtrada por tenant_id.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from erp_informes.modules.informes.definition import ReportDefinition
from erp_informes.modules.informes.exceptions import (
    NotFoundError, PermissionDeniedError, ValidationError,
)
from erp_informes.modules.informes.models import Informe
from erp_informes.modules.informes.schemas import InformeDefinicionIn, InformeUpdate
from erp_informes.modules.informes.templates import PLANTILLAS
from erp_informes.modules.informes.validator import to_wire_definition, validate_definition

logger = logging.getLogger(__name__)


class InformeService:
    """Servicio para gestión de informes de una empresa"""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _base_query(self) -> Query:
        return self.db.query(Informe).filter(Informe.tenant_id == self.tenant_id)

    def _visible_query(self, user_id: UUID) -> Query:
        return self._base_query().filter(or_(
            Informe.owner_id == user_id,
            Informe.is_shared.is_(True),
            Informe.is_template.is_(True),
        ))

    def _get_owned(self, informe_id: UUID, user_id: UUID) -> Informe:
        informe = self.get_informe(informe_id, user_id)
        if informe.is_template or informe.owner_id != user_id:
            raise PermissionDeniedError()
        return informe

    def _find_by_name(self, module: str, name: str, exclude_id: Optional[UUID] = None) -> Optional[Informe]:
        query = self._base_query().filter(Informe.module == module, Informe.name == name)
        if exclude_id is not None:
            query = query.filter(Informe.id != exclude_id)
        return query.first()

    def _check_unique_name(self, name: str, module: str, exclude_id: Optional[UUID] = None) -> None:
        if self._find_by_name(module, name, exclude_id):
            raise ValidationError([
                ("nombre", f"Ya existe un informe con el nombre '{name}' en el módulo {module}"),
            ])

    def _apply(self, informe: Informe, definition: ReportDefinition) -> None:
        informe.name = definition.name
        informe.description = definition.description
        informe.module = definition.module.value
        informe.collection = definition.collection
        informe.report_type = definition.report_type.value
        informe.is_shared = definition.is_shared
        informe.display_order = definition.order
        informe.definition = to_wire_definition(definition)

    def _commit(self, informe: Informe) -> Informe:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Conflicto guardando informe '{informe.name}': {e}")
            raise ValidationError([("nombre", f"Ya existe un informe con el nombre '{informe.name}'")])
        self.db.refresh(informe)
        return informe

    # ============================================
    # CONSULTAS
    # ============================================

    def list_informes(
        self,
        user_id: UUID,
        modulo: Optional[str] = None,
        tipo: Optional[str] = None,
        es_plantilla: Optional[bool] = None,
        favoritos: bool = False,
        busqueda: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Informe], int]:
        """
        Listar informes visibles para el usuario

        Sin filtro de plantilla se devuelven los propios, los compartidos y
        las plantillas de la empresa.

        Returns:
            Tuple[List[Informe], int]: Página de informes y total
        """
        query = self._visible_query(user_id)

        if modulo:
            query = query.filter(Informe.module == modulo)
        if tipo:
            query = query.filter(Informe.report_type == tipo)
        if es_plantilla is not None:
            query = query.filter(Informe.is_template.is_(es_plantilla))
        if favoritos:
            query = query.filter(Informe.is_favorite.is_(True))
        if busqueda:
            pattern = f"%{busqueda}%"
            query = query.filter(or_(
                Informe.name.ilike(pattern),
                Informe.description.ilike(pattern),
            ))

        total = query.count()
        informes = (
            query.order_by(Informe.display_order.asc(), Informe.name.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return informes, total

    def get_informe(self, informe_id: UUID, user_id: UUID) -> Informe:
        """
        Obtener un informe visible para el usuario

        Raises:
            NotFoundError: Si no existe en la empresa o no es visible
        """
        informe = self._visible_query(user_id).filter(Informe.id == informe_id).first()
        if not informe:
            raise NotFoundError(informe_id)
        return informe

    def to_definition(self, informe: Informe) -> ReportDefinition:
        return validate_definition(
            informe.definition,
            informe_id=informe.id,
            tenant_id=informe.tenant_id,
            owner_id=informe.owner_id,
            is_template=informe.is_template,
            is_favorite=informe.is_favorite,
            created_at=informe.created_at,
            updated_at=informe.updated_at,
        )

    def get_definition(self, informe_id: UUID, user_id: UUID) -> ReportDefinition:
        """Definición normalizada lista para ejecutar"""
        return self.to_definition(self.get_informe(informe_id, user_id))

    # ============================================
    # ALTA, MODIFICACIÓN Y BORRADO
    # ============================================

    def create_informe(self, data: Any, user_id: UUID) -> Informe:
        """
        Crear un informe

        Args:
            data: Definición en formato de intercambio (dict o InformeDefinicionIn)
            user_id: Usuario propietario

        Returns:
            Informe: Informe creado

        Raises:
            ValidationError: Si la definición no es válida o el nombre ya existe
        """
        if isinstance(data, InformeDefinicionIn):
            data = data.model_dump(by_alias=True)
        definition = validate_definition(data, tenant_id=self.tenant_id, owner_id=user_id)
        self._check_unique_name(definition.name, definition.module.value)

        informe = Informe(tenant_id=self.tenant_id, owner_id=user_id, is_template=False, is_favorite=False)
        self._apply(informe, definition)
        self.db.add(informe)
        informe = self._commit(informe)
        logger.info(f"Informe '{informe.name}' creado ({informe.id}) en empresa {self.tenant_id}")
        return informe

    def update_informe(self, informe_id: UUID, changes: Any, user_id: UUID) -> Informe:
        """
        Actualizar un informe; los cambios parciales se fusionan con la
        definición guardada y el resultado se valida completo.

        Raises:
            NotFoundError: Si el informe no existe
            PermissionDeniedError: Si el usuario no es el propietario
            ValidationError: Si la definición resultante no es válida
        """
        informe = self._get_owned(informe_id, user_id)

        if isinstance(changes, InformeUpdate):
            changes = changes.model_dump(exclude_unset=True)
        merged = copy.deepcopy(informe.definition)
        merged.update(changes)

        definition = validate_definition(merged, tenant_id=self.tenant_id, owner_id=user_id)
        self._check_unique_name(definition.name, definition.module.value, exclude_id=informe.id)

        self._apply(informe, definition)
        informe = self._commit(informe)
        logger.info(f"Informe {informe.id} actualizado")
        return informe

    def delete_informe(self, informe_id: UUID, user_id: UUID) -> None:
        informe = self._get_owned(informe_id, user_id)
        self.db.delete(informe)
        self.db.commit()
        logger.info(f"Informe {informe_id} eliminado de empresa {self.tenant_id}")

    def _copy_name(self, informe: Informe) -> str:
        base = f"{informe.name} (copia)"
        existing = {
            name for (name,) in self._base_query()
            .filter(Informe.module == informe.module, Informe.name.like(f"{informe.name} (copia%"))
            .with_entities(Informe.name)
            .all()
        }
        if base not in existing:
            return base
        n = 2
        while f"{informe.name} (copia {n})" in existing:
            n += 1
        return f"{informe.name} (copia {n})"

    def duplicate_informe(self, informe_id: UUID, user_id: UUID) -> Informe:
        """
        Duplicar un informe (propio, compartido o plantilla)

        La copia tiene nuevo id, nombre único "(copia N)", no es plantilla
        ni favorito, no se comparte y pertenece al usuario que la solicita.
        """
        source = self.get_informe(informe_id, user_id)

        data = copy.deepcopy(source.definition)
        data["nombre"] = self._copy_name(source)
        data["compartido"] = False
        definition = validate_definition(data, tenant_id=self.tenant_id, owner_id=user_id)

        informe = Informe(tenant_id=self.tenant_id, owner_id=user_id, is_template=False, is_favorite=False)
        self._apply(informe, definition)
        self.db.add(informe)
        informe = self._commit(informe)
        logger.info(f"Informe {informe_id} duplicado como {informe.id}")
        return informe

    def toggle_favorite(self, informe_id: UUID, user_id: UUID) -> Informe:
        informe = self.get_informe(informe_id, user_id)
        informe.is_favorite = not informe.is_favorite
        self.db.commit()
        self.db.refresh(informe)
        return informe

    # ============================================
    # PLANTILLAS
    # ============================================

    def list_templates(self, modulo: Optional[str] = None) -> List[Informe]:
        query = self._base_query().filter(Informe.is_template.is_(True))
        if modulo:
            query = query.filter(Informe.module == modulo)
        return query.order_by(Informe.display_order.asc(), Informe.name.asc()).all()

    def seed_templates(self, plantillas: Optional[List[Dict[str, Any]]] = None) -> int:
        """
        Sembrar las plantillas predefinidas en la empresa

        Solo se inserta una plantilla si no existe ya otra con el mismo
        (modulo, nombre); repetir la siembra no crea duplicados.

        Returns:
            int: Número de plantillas insertadas
        """
        created = 0
        for data in plantillas if plantillas is not None else PLANTILLAS:
            definition = validate_definition(data, tenant_id=self.tenant_id)
            existing = self._find_by_name(definition.module.value, definition.name)
            if existing:
                if not existing.is_template:
                    logger.warning(
                        f"Plantilla '{definition.name}' omitida: ya existe un informe con ese nombre"
                    )
                continue

            informe = Informe(tenant_id=self.tenant_id, owner_id=None, is_template=True, is_favorite=False)
            self._apply(informe, definition)
            self.db.add(informe)
            try:
                self.db.commit()
            except IntegrityError:
                # Otra siembra concurrente la insertó antes
                self.db.rollback()
                logger.info(f"Plantilla '{definition.name}' ya sembrada en empresa {self.tenant_id}")
                continue
            created += 1

        logger.info(f"{created} plantillas de informe creadas para empresa {self.tenant_id}")
        return created

    # ============================================
    # SERIALIZACIÓN
    # ============================================

    @staticmethod
    def to_out(informe: Informe) -> Dict[str, Any]:
        data = copy.deepcopy(informe.definition)
        data.update({
            "id": informe.id,
            "es_plantilla": informe.is_template,
            "es_favorito": informe.is_favorite,
            "propietario_id": informe.owner_id,
            "created_at": informe.created_at,
            "updated_at": informe.updated_at,
        })
        return data
