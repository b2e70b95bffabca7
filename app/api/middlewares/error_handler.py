"""
Middleware para errores no controlados.
Las AppException se renderizan en el handler global de main.py; aqui solo
llega lo inesperado.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Convierte excepciones no controladas al formato {error, message, details}.

    Los errores de base de datos que escapan a los repositorios se reportan
    como 503 (la base puede estar caida o saturada); el resto como 500.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).error(
                f"Error de base de datos en {request.method} {request.url.path}: {type(exc).__name__}"
            )
            transient = isinstance(exc, OperationalError)
            return JSONResponse(
                status_code=(
                    status.HTTP_503_SERVICE_UNAVAILABLE if transient
                    else status.HTTP_500_INTERNAL_SERVER_ERROR
                ),
                content={
                    "error": "DATABASE_UNAVAILABLE" if transient else "DATABASE_ERROR",
                    "message": "Error accediendo a la base de datos",
                    "details": {"path": request.url.path}
                }
            )
        except Exception as exc:
            # loguru interpreta llaves del mensaje como formato
            error_msg = str(exc).replace("{", "{{").replace("}", "}}")
            logger.opt(exception=exc).error(
                f"Error no manejado en {request.method} {request.url.path}: {error_msg}"
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "Ha ocurrido un error interno del servidor",
                    "details": {"path": request.url.path}
                }
            )
