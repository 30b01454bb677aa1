from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Optional

from complisite.core.errors import LocalStorageError
from complisite.domain.mutations import MutationKind, QueuedMutation, utc_now_iso
from complisite.infrastructure.mutation_codec import encode_payload, row_to_mutation
from complisite.infrastructure.sqlite_uow import transaction

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = "id, kind, payload_json, blob, created_at, synced, attempts, last_error"
_QUOTA_MARKERS = ("database or disk is full", "disk i/o error", "no space left")


def _storage_error(operation: str, exc: sqlite3.Error) -> LocalStorageError:
    text = str(exc).lower()
    if any(marker in text for marker in _QUOTA_MARKERS):
        return LocalStorageError(f"Sin espacio para la cola offline ({operation}): {exc}")
    return LocalStorageError(f"Fallo de la cola offline en {operation}: {exc}")


class SQLiteMutationStore:
    """Cola durable de mutaciones pendientes, una fila por ``QueuedMutation``.

    El orden de lectura es el de inserción (``seq``); ``put`` sobre un id
    existente reemplaza el contenido sin cambiar su posición en la cola.
    Todas las operaciones se serializan con un lock propio porque la misma
    conexión se comparte entre el hilo de UI y los hilos de disparo.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    def put(self, record: QueuedMutation) -> None:
        payload_json, blob = encode_payload(record.payload)
        params = (
            record.id,
            record.kind.value,
            payload_json,
            blob,
            record.created_at,
            int(record.synced),
            record.attempts,
            record.last_error,
        )
        with self._lock:
            try:
                with transaction(self._connection):
                    self._connection.execute(
                        """
                        INSERT INTO queued_mutations
                            (id, kind, payload_json, blob, created_at, synced, attempts, last_error)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            kind = excluded.kind,
                            payload_json = excluded.payload_json,
                            blob = excluded.blob,
                            created_at = excluded.created_at,
                            synced = excluded.synced,
                            attempts = excluded.attempts,
                            last_error = excluded.last_error
                        """,
                        params,
                    )
            except sqlite3.Error as exc:
                raise _storage_error("put", exc) from exc

    def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        with self._lock:
            try:
                row = self._connection.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM queued_mutations WHERE id = ?",
                    (mutation_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise _storage_error("get", exc) from exc
        return row_to_mutation(row) if row else None

    def get_all_unsynced(self, kind: Optional[MutationKind] = None) -> list[QueuedMutation]:
        sql = f"SELECT {_SELECT_COLUMNS} FROM queued_mutations WHERE synced = 0"
        params: tuple[object, ...] = ()
        if kind is not None:
            sql += " AND kind = ?"
            params = (kind.value,)
        sql += " ORDER BY seq ASC"
        with self._lock:
            try:
                rows = self._connection.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise _storage_error("get_all_unsynced", exc) from exc
        return [row_to_mutation(row) for row in rows]

    def count_unsynced(self, kind: Optional[MutationKind] = None) -> int:
        sql = "SELECT COUNT(*) AS total FROM queued_mutations WHERE synced = 0"
        params: tuple[object, ...] = ()
        if kind is not None:
            sql += " AND kind = ?"
            params = (kind.value,)
        with self._lock:
            try:
                row = self._connection.execute(sql, params).fetchone()
            except sqlite3.Error as exc:
                raise _storage_error("count_unsynced", exc) from exc
        return int(row["total"] if row else 0)

    def mark_synced(self, mutation_id: str) -> None:
        with self._lock:
            try:
                with transaction(self._connection):
                    self._connection.execute(
                        "UPDATE queued_mutations SET synced = 1, last_error = NULL WHERE id = ? AND synced = 0",
                        (mutation_id,),
                    )
            except sqlite3.Error as exc:
                raise _storage_error("mark_synced", exc) from exc

    def record_failure(self, mutation_id: str, error_text: str) -> None:
        with self._lock:
            try:
                with transaction(self._connection):
                    self._connection.execute(
                        """
                        UPDATE queued_mutations
                        SET attempts = attempts + 1, last_error = ?, last_attempt_at = ?
                        WHERE id = ? AND synced = 0
                        """,
                        (error_text[:500], utc_now_iso(), mutation_id),
                    )
            except sqlite3.Error as exc:
                raise _storage_error("record_failure", exc) from exc

    def delete_synced(self) -> int:
        with self._lock:
            try:
                with transaction(self._connection):
                    cursor = self._connection.execute("DELETE FROM queued_mutations WHERE synced = 1")
                    deleted = cursor.rowcount
            except sqlite3.Error as exc:
                raise _storage_error("delete_synced", exc) from exc
        if deleted:
            logger.info("Limpieza de cola offline: %s mutaciones sincronizadas eliminadas", deleted)
        return int(deleted)
