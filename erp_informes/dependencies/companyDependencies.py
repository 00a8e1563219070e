from typing import Annotated
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID


def get_tenant_id(request: Request) -> UUID:
    """Empresa de la petición, fijada por TenantMiddleware"""
    if not hasattr(request.state, 'tenant_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sin contexto de empresa. Envíe la cabecera X-Company-ID."
        )
    return request.state.tenant_id


TenantId = Annotated[UUID, Depends(get_tenant_id)]
