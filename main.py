"""
Punto de entrada del servicio de sincronizacion hojas de calculo -> base de datos.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.config import settings, get_cors_origins
from app.core.events import startup_handler, shutdown_handler
from app.api.v1.router import api_router
from app.api.middlewares.error_handler import ErrorHandlerMiddleware
from app.application.services.table_schemas import list_schemas
from app.application.use_cases.sync_use_cases import run_registry
from app.shared.exceptions.base import AppException


def create_application() -> FastAPI:
    """
    Factory de la aplicación FastAPI.

    Returns:
        FastAPI: Instancia con CORS, manejo de errores y rutas /api/v1/sync
    """
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Sincronizacion de hojas de calculo con la base de datos de operaciones de tours",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(settings.CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(ErrorHandlerMiddleware)

    application.add_event_handler("startup", startup_handler(application))
    application.add_event_handler("shutdown", shutdown_handler(application))

    application.include_router(api_router, prefix="/api")

    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        # Errores fatales de corrida (mapeo, hoja, concurrencia): nada se escribio
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )

    @application.get("/health", tags=["Health"])
    async def health_check():
        """Estado del servicio y corridas de sincronizacion activas."""
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "sync_tables": [schema.table for schema in list_schemas()],
            "active_runs": len(run_registry.active_runs()),
        }

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
