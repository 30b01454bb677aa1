from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional, Union

from complisite.application.background_sync import WakeMessage

logger = logging.getLogger(__name__)

WakeHandler = Callable[[WakeMessage], object]

_STOP = object()


class ThreadedBackgroundSyncHost:
    """Host de background sync basado en mensajes.

    Hace de registrador de etiquetas para ``BackgroundSyncTrigger`` y entrega
    cada ``WakeMessage`` al handler enlazado desde un único hilo consumidor.
    Con ``periodic_wake_seconds`` publica además un wake por etiqueta
    registrada en cada intervalo, aunque no haya interfaz abierta.
    """

    def __init__(self, *, periodic_wake_seconds: Optional[float] = None) -> None:
        self._periodic_wake_seconds = periodic_wake_seconds
        self._messages: "queue.Queue[object]" = queue.Queue()
        self._tags: list[str] = []
        self._tags_lock = threading.Lock()
        self._handler: WakeHandler | None = None
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self._scheduler: threading.Thread | None = None

    @property
    def tags(self) -> tuple[str, ...]:
        with self._tags_lock:
            return tuple(self._tags)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def register(self, tag: str) -> None:
        with self._tags_lock:
            if tag not in self._tags:
                self._tags.append(tag)

    def bind(self, handler: WakeHandler) -> None:
        self._handler = handler

    def post(self, message: Union[WakeMessage, str]) -> None:
        if isinstance(message, str):
            message = WakeMessage(tag=message)
        self._messages.put(message)

    def post_all(self) -> None:
        for tag in self.tags:
            self.post(tag)

    def process_pending(self) -> int:
        """Entrega en el hilo actual todos los mensajes encolados."""
        processed = 0
        while True:
            try:
                message = self._messages.get_nowait()
            except queue.Empty:
                return processed
            if message is _STOP:
                continue
            self._deliver(message)  # type: ignore[arg-type]
            processed += 1

    def start(self) -> None:
        if self.is_running:
            return
        if self._handler is None:
            raise RuntimeError("Host de background sync sin handler. Llama a bind() primero.")
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._consume, name="complisite-bg-sync", daemon=True)
        self._worker.start()
        if self._periodic_wake_seconds and self._periodic_wake_seconds > 0:
            self._scheduler = threading.Thread(
                target=self._schedule, name="complisite-bg-sync-timer", daemon=True
            )
            self._scheduler.start()
        logger.info("Host de background sync iniciado (tags=%s)", list(self.tags))

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        self._messages.put(_STOP)
        for thread in (self._scheduler, self._worker):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)
        self._worker = None
        self._scheduler = None

    def _consume(self) -> None:
        while True:
            message = self._messages.get()
            if message is _STOP:
                return
            self._deliver(message)  # type: ignore[arg-type]

    def _schedule(self) -> None:
        interval = float(self._periodic_wake_seconds or 0)
        while not self._stop_event.wait(interval):
            self.post_all()

    def _deliver(self, message: WakeMessage) -> None:
        if self._handler is None:
            logger.warning("Wake %s descartado: no hay handler", message.tag)
            return
        try:
            self._handler(message)
        except Exception:  # noqa: BLE001
            logger.exception("Fallo procesando wake %s", message.tag)
