from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from erp_informes.database.database import sync_engine, Base

# Import middleware
from erp_informes.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from erp_informes.modules.informes.router import informes_router
from erp_informes.modules.informes.exceptions import (
    ExecutionError,
    ExecutionTimeoutError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Import models for table creation
import erp_informes.modules.informes.models

from erp_informes.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="ERP Informes API",
    description="Motor de informes ad-hoc multiempresa: definición, validación, ejecución y exportación",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Generación con IA deshabilitada hasta que la aplicación registre un intérprete
app.state.ai_interpreter = None

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(informes_router, prefix="/api/v1")


# ============================================
# ERRORES DEL MOTOR DE INFORMES
# ============================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Definición de informe inválida", "errors": exc.as_list()},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ExecutionTimeoutError)
async def execution_timeout_handler(request: Request, exc: ExecutionTimeoutError):
    return JSONResponse(status_code=status.HTTP_504_GATEWAY_TIMEOUT, content={"detail": str(exc)})


@app.exception_handler(ExecutionError)
async def execution_error_handler(request: Request, exc: ExecutionError):
    logger.error(f"Error de ejecución en {request.url.path}: {exc} (intentos: {exc.attempts})")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "attempts": exc.attempts},
    )


# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "ERP Informes API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("ERP Informes API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(
        f"Informes: page size {settings.INFORMES_DEFAULT_PAGE_SIZE}/{settings.INFORMES_MAX_PAGE_SIZE}, "
        f"timeout {settings.INFORMES_EXECUTION_TIMEOUT}s, {settings.INFORMES_RETRY_ATTEMPTS} intentos"
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("ERP Informes API shutting down...")
