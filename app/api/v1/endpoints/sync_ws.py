"""
WebSocket endpoint para progreso de corridas de sincronizacion.
Permite recibir eventos en tiempo real ({type, processed, total, message}).
"""
import asyncio
from typing import Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from app.application.services.progress_channel import ProgressChannel
from app.application.use_cases.sync_use_cases import progress_channels, run_registry
from app.shared.utils.datetime_utils import DateTimeUtils


router = APIRouter(prefix="/sync", tags=["Sync WebSocket"])


class ConnectionManager:
    """
    Gestor de conexiones WebSocket por run_id.

    Solo lleva la cuenta de conexiones activas; los eventos llegan a cada
    conexion por su propia suscripcion al canal de progreso.
    """

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, run_id: str) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(run_id, set()).add(websocket)
        logger.debug(f"WebSocket conectado para corrida {run_id}")

    async def disconnect(self, websocket: WebSocket, run_id: str) -> None:
        async with self._lock:
            if run_id in self._connections:
                self._connections[run_id].discard(websocket)
                if not self._connections[run_id]:
                    del self._connections[run_id]
        logger.debug(f"WebSocket desconectado para corrida {run_id}")

    def get_connection_count(self, run_id: str) -> int:
        """Retorna el numero de conexiones activas para una corrida."""
        return len(self._connections.get(run_id, set()))


# Instancia global del gestor de conexiones
manager = ConnectionManager()


async def _forward_events(websocket: WebSocket, channel: ProgressChannel) -> None:
    async for event in channel.subscribe(replay=True):
        await websocket.send_json(event.to_dict())


def _release_unused_channel(run_id: str, channel: ProgressChannel) -> None:
    """
    Descarta el canal abierto por una conexion cuya corrida nunca arranco.
    Los canales de corridas registradas o terminadas se conservan.
    """
    if channel.closed or manager.get_connection_count(run_id) > 0:
        return
    if run_registry.get(run_id) is not None:
        return
    channel.close()
    if progress_channels.get(run_id) is channel:
        progress_channels.remove(run_id)
    logger.debug(f"Canal sin corrida descartado: {run_id}")


@router.websocket("/ws/{run_id}")
async def sync_progress_websocket(websocket: WebSocket, run_id: str):
    """
    WebSocket para recibir el progreso de una corrida.

    Se puede conectar antes de iniciar la corrida (enviando el mismo runId
    en POST /sync/sheets) o durante ella; los eventos ya emitidos se
    reenvian al conectar. La conexion se cierra al recibir "complete".

    Mensajes enviados:
    - type: "start" | "info" | "progress" | "error" | "complete"
    - type: "pong" - Respuesta a "ping" del cliente
    """
    await manager.connect(websocket, run_id)
    channel = progress_channels.get(run_id)
    if channel is None:
        channel = progress_channels.create(run_id)

    forward = asyncio.create_task(_forward_events(websocket, channel))
    try:
        while not forward.done():
            receive = asyncio.create_task(websocket.receive_text())
            done, _ = await asyncio.wait({forward, receive}, return_when=asyncio.FIRST_COMPLETED)
            if receive in done:
                if receive.result() == "ping":
                    await websocket.send_json({
                        "type": "pong",
                        "run_id": run_id,
                        "timestamp": DateTimeUtils.now_utc().isoformat(),
                    })
            else:
                receive.cancel()
        await forward
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug(f"Cliente desconectado de la corrida {run_id}")
    except Exception as e:
        logger.error(f"Error en WebSocket de la corrida {run_id}: {e}")
    finally:
        forward.cancel()
        # Sin puntos de suspension antes de liberar el canal
        await manager.disconnect(websocket, run_id)
        _release_unused_channel(run_id, channel)
        await asyncio.gather(forward, return_exceptions=True)
