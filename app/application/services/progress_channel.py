"""
Canal de eventos de progreso de una corrida de sync.

El executor publica ProgressEvent; los consumidores se suscriben como
iterador asincrono (WebSocket, CLI) o registran callbacks. El executor no
sabe como ni si alguien muestra el progreso.
"""
from __future__ import annotations

import asyncio
import inspect
from collections import OrderedDict
from typing import Any, AsyncIterator, Callable, List, Optional

from loguru import logger

from app.domain.entities.sync_run import ProgressEvent

ProgressCallback = Callable[[ProgressEvent], Any]

_CLOSED = object()


class ProgressChannel:
    """
    Canal de progreso de una corrida.

    Guarda el historial de eventos para que un suscriptor que llega tarde
    reciba lo ya emitido. La suscripcion termina con el evento complete o
    al cerrar el canal.

    Uso:
        channel = ProgressChannel(run_id)
        channel.add_callback(lambda event: print(event.message))
        async for event in channel.subscribe():
            ...
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self._history: List[ProgressEvent] = []
        self._queues: List[asyncio.Queue] = []
        self._callbacks: List[ProgressCallback] = []
        self._closed = False

    @property
    def events(self) -> List[ProgressEvent]:
        return list(self._history)

    @property
    def closed(self) -> bool:
        return self._closed

    def add_callback(self, callback: ProgressCallback) -> None:
        """Registra un callback (sync o async) invocado por cada evento."""
        self._callbacks.append(callback)

    async def publish(self, event: ProgressEvent) -> None:
        """
        Publica un evento a suscriptores y callbacks.

        Un callback que falla se loguea y no interrumpe la corrida.
        """
        if self._closed:
            logger.debug(f"Evento descartado en canal cerrado {self.run_id}: {event.type.value}")
            return

        if event.run_id is None:
            event.run_id = self.run_id
        self._history.append(event)

        for queue in list(self._queues):
            queue.put_nowait(event)

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Callback de progreso fallo ({self.run_id}): {e}")

        if event.is_terminal:
            self.close()

    def close(self) -> None:
        """Cierra el canal: los suscriptores terminan de iterar."""
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    async def subscribe(self, replay: bool = True) -> AsyncIterator[ProgressEvent]:
        """
        Itera los eventos de la corrida hasta complete o cierre.

        Args:
            replay: Si True, primero entrega los eventos ya emitidos
        """
        queue: asyncio.Queue = asyncio.Queue()
        if replay:
            for event in self._history:
                queue.put_nowait(event)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)

        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
                if item.is_terminal:
                    return
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def get_subscriber_count(self) -> int:
        return len(self._queues)


class ProgressChannelRegistry:
    """
    Registro en memoria de canales por run_id.

    Conserva los ultimos canales terminados para que un cliente que se
    conecta despues del final reciba el resumen.
    """

    def __init__(self, max_finished: int = 100):
        self._channels: "OrderedDict[str, ProgressChannel]" = OrderedDict()
        self._max_finished = max_finished

    def create(self, run_id: str) -> ProgressChannel:
        channel = ProgressChannel(run_id)
        self._channels[run_id] = channel
        self._prune()
        return channel

    def get(self, run_id: str) -> Optional[ProgressChannel]:
        return self._channels.get(run_id)

    def remove(self, run_id: str) -> None:
        self._channels.pop(run_id, None)

    def _prune(self) -> None:
        finished = [run_id for run_id, channel in self._channels.items() if channel.closed]
        excess = len(finished) - self._max_finished
        for run_id in finished[:max(excess, 0)]:
            del self._channels[run_id]

    def __len__(self) -> int:
        return len(self._channels)
