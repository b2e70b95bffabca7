"""
Router de la API v1: endpoints REST de sync y WebSocket de progreso.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import sync, sync_ws


# Router principal de la API v1
api_router = APIRouter(prefix="/v1")

# Incluir routers de endpoints especificos
api_router.include_router(sync.router)
api_router.include_router(sync_ws.router)
