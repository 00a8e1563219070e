from typing import Annotated, Optional
from uuid import UUID
from fastapi import Depends, Header, HTTPException, status


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    """
    Usuario autenticado, resuelto por la capa de autenticación aguas arriba
    y propagado en la cabecera X-User-ID.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Falta la cabecera X-User-ID"
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID no es un UUID válido"
        )


user_dependency = Annotated[UUID, Depends(get_current_user_id)]
