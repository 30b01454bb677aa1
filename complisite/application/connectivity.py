from __future__ import annotations

import logging
import threading
from typing import Callable

from complisite.domain.ports import ConnectivityProbePort

logger = logging.getLogger(__name__)

Listener = Callable[[], object]


class ConnectivityMonitor:
    """Estado online/offline del proceso con eventos por flanco.

    ``update`` es la única puerta de entrada de la señal (sondeo propio,
    puente Qt o llamadas manuales); solo las transiciones disparan
    ``became_online``/``became_offline``. El estado no se persiste: al
    arrancar se deriva de la sonda.
    """

    def __init__(
        self,
        probe: ConnectivityProbePort | None = None,
        *,
        initial_online: bool = False,
        poll_interval_seconds: float = 15.0,
        probe_timeout_seconds: float = 3.0,
    ) -> None:
        self._probe = probe
        self._online = initial_online
        self._poll_interval_seconds = poll_interval_seconds
        self._probe_timeout_seconds = probe_timeout_seconds
        self._state_lock = threading.Lock()
        self._online_listeners: list[Listener] = []
        self._offline_listeners: list[Listener] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_online(self) -> bool:
        with self._state_lock:
            return self._online

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_became_online(self, listener: Listener) -> None:
        self._online_listeners.append(listener)

    def on_became_offline(self, listener: Listener) -> None:
        self._offline_listeners.append(listener)

    def update(self, online: bool) -> bool:
        """Aplica una lectura de conectividad; devuelve ``True`` si hubo flanco."""
        with self._state_lock:
            if online == self._online:
                return False
            self._online = online

        if online:
            logger.info("Conectividad recuperada")
            self._notify(self._online_listeners, "became_online")
        else:
            logger.info("Conectividad perdida; las mutaciones quedan en cola")
            self._notify(self._offline_listeners, "became_offline")
        return True

    def check_now(self) -> bool:
        if self._probe is None:
            return self.is_online
        reachable = self._probe.is_reachable(timeout_seconds=self._probe_timeout_seconds)
        self.update(reachable)
        return reachable

    def prime(self) -> bool:
        """Fija el estado inicial desde la sonda sin emitir eventos."""
        if self._probe is None:
            return self.is_online
        initial = self._probe.is_reachable(timeout_seconds=self._probe_timeout_seconds)
        with self._state_lock:
            self._online = initial
        return initial

    def start(self) -> None:
        if self.is_running:
            return
        logger.info("Monitor de conectividad iniciado (online=%s)", self.prime())
        if self._probe is None or self._poll_interval_seconds <= 0:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="complisite-connectivity", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self._poll_interval_seconds):
            try:
                self.check_now()
            except Exception:  # noqa: BLE001
                logger.exception("Fallo inesperado en la sonda de conectividad")

    def _notify(self, listeners: list[Listener], event_name: str) -> None:
        for listener in list(listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Listener de %s falló", event_name)
