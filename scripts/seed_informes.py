"""
Seed script: prepara una empresa para el motor de informes.

Qué crea:
- Plantillas de informes predefinidas (idempotente por módulo y nombre).
- Opcionalmente, documentos de negocio de demostración en report_documents a
  partir de un fichero JSON {"coleccion": [documento, ...], ...}.

Uso:
    python scripts/seed_informes.py --tenant-id 6f1c... \
        --documentos demo/documentos.json

Nota: la carga de documentos está pensada solo para entornos de desarrollo.
"""

import argparse
import asyncio
import json
from pathlib import Path
from uuid import UUID

from erp_informes.database.database import AsyncSessionLocal, Base, SessionLocal, sync_engine
from erp_informes.modules.informes.datasources.sql import SqlDataSource
from erp_informes.modules.informes.service import InformeService

import erp_informes.modules.informes.models  # noqa: F401  (registra las tablas)


def seed_templates(tenant_id: UUID) -> int:
    db = SessionLocal()
    try:
        return InformeService(db, tenant_id).seed_templates()
    finally:
        db.close()


async def load_documents(tenant_id: UUID, path: Path) -> int:
    with path.open(encoding="utf-8") as fh:
        collections = json.load(fh)

    total = 0
    async with AsyncSessionLocal() as session:
        source = SqlDataSource(session, tenant_id)
        for collection, documents in collections.items():
            inserted = await source.insert(collection, documents)
            print(f"  {collection}: {inserted} documentos")
            total += inserted
        await session.commit()
    return total


def main():
    parser = argparse.ArgumentParser(description="Seed informes templates and demo documents")
    parser.add_argument("--tenant-id", required=True, type=UUID, help="Empresa (X-Company-ID)")
    parser.add_argument("--documentos", type=Path, default=None, help="JSON con documentos por colección")
    parser.add_argument("--create-tables", action="store_true", help="Crear tablas si no existen")
    args = parser.parse_args()

    if args.create_tables:
        Base.metadata.create_all(bind=sync_engine)

    print("Creating report templates...")
    created = seed_templates(args.tenant_id)
    print(f"Templates created: {created}")

    if args.documentos:
        print(f"Loading documents from {args.documentos}...")
        loaded = asyncio.run(load_documents(args.tenant_id, args.documentos))
        print(f"Documents loaded: {loaded}")

    print("\nSeed completed.")
    print("Headers for API requests:")
    print(f"  X-Company-ID: {args.tenant_id}")


if __name__ == "__main__":
    main()
