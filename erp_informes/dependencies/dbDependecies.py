from fastapi import Depends
from sqlalchemy.orm import Session
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Annotated
from erp_informes.database.database import get_db, get_async_db

# Sesión síncrona: almacén de definiciones
db_dependency = Annotated[Session, Depends(get_db)]

# Sesión asíncrona: ejecución de informes
async_db_dependency = Annotated[AsyncSession, Depends(get_async_db)]
