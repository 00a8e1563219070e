"""
Middleware de contexto de empresa y cabeceras de seguridad
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging
import time

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Lee la empresa de la cabecera X-Company-ID y la deja en
    request.state.tenant_id. Los informes y documentos se consultan
    siempre dentro de esa empresa.
    """

    # Rutas sin contexto de empresa
    EXEMPT_PATHS = (
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == "/" or path.startswith(self.EXEMPT_PATHS) or request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get("X-Company-ID")
        if not tenant_header:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": "Falta la cabecera X-Company-ID"},
            )

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": "X-Company-ID no es un UUID válido"},
            )

        request.state.tenant_id = tenant_id
        started = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - started

        logger.debug(f"{request.method} {path} empresa={tenant_id} {response.status_code} {elapsed:.3f}s")
        response.headers["X-Tenant-ID"] = str(tenant_id)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Cabeceras de seguridad en todas las respuestas"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Los informes contienen datos de negocio: no se cachean en intermediarios
        if request.url.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
        return response
