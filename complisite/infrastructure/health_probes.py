from __future__ import annotations

import logging
import socket
import sqlite3
import time
from typing import Callable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


def _host_and_port(base_url: str) -> tuple[str, int]:
    parts = urlsplit(base_url)
    host = parts.hostname or "localhost"
    if parts.port:
        return host, parts.port
    return host, 443 if parts.scheme == "https" else 80


class SocketConnectivityProbe:
    """Comprueba si el host de la API acepta conexiones TCP.

    Es la señal de conectividad del monitor cuando no hay un backend de
    plataforma (p. ej. ``QNetworkInformation``) que la notifique.
    """

    def __init__(self, base_url: str, *, connector: Callable[..., socket.socket] = socket.create_connection) -> None:
        self._host, self._port = _host_and_port(base_url)
        self._connector = connector
        self.last_latency_ms: float | None = None

    @property
    def target(self) -> tuple[str, int]:
        return self._host, self._port

    def is_reachable(self, *, timeout_seconds: float = 3.0) -> bool:
        started = time.perf_counter()
        try:
            self._connector((self._host, self._port), timeout=timeout_seconds).close()
        except OSError as exc:
            logger.debug("API no alcanzable en %s:%s (%s)", self._host, self._port, exc)
            self.last_latency_ms = None
            return False
        self.last_latency_ms = (time.perf_counter() - started) * 1000
        return True


class SQLiteQueueProbe:
    def __init__(self, connection_factory: Callable[[], sqlite3.Connection]) -> None:
        self._connection_factory = connection_factory

    def check(self) -> dict[str, tuple[bool, str]]:
        connection = self._connection_factory()
        try:
            connection.row_factory = sqlite3.Row
            applied = connection.execute("SELECT COUNT(*) AS total FROM schema_migrations").fetchone()["total"]
            pending = connection.execute(
                "SELECT COUNT(*) AS total FROM queued_mutations WHERE synced = 0"
            ).fetchone()["total"]
        except sqlite3.Error as exc:
            return {
                "local_db": (False, f"Cola offline no accesible: {exc}"),
                "migrations": (False, "No se pudo validar el estado de migraciones."),
            }
        finally:
            connection.close()
        return {
            "local_db": (True, f"Cola offline accesible ({pending} pendientes)."),
            "migrations": (int(applied) > 0, f"{applied} migraciones aplicadas."),
        }
