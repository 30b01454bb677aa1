from __future__ import annotations

import logging
import threading
import time
from time import perf_counter
from typing import Callable, Optional

from complisite.core.errors import LocalStorageError
from complisite.core.metrics import (
    DISPATCH_FAILURES,
    DRAIN_LATENCY_MS,
    DRAINS_EXECUTED,
    DRAINS_SKIPPED,
    MUTATIONS_SYNCED,
    metrics_registry,
)
from complisite.core.observability import OperationContext, log_event
from complisite.core.operational_logging import log_operational_error
from complisite.domain.mutations import (
    ChecklistPayload,
    CommentPayload,
    MutationKind,
    PhotoPayload,
    QueuedMutation,
    utc_now_iso,
)
from complisite.domain.ports import ConnectivityStatePort, MutationStorePort, RemoteApiPort
from complisite.domain.sync_models import (
    STATUS_IDLE,
    STATUS_TOTAL_FAILURE,
    DrainReport,
    resolve_status,
)

logger = logging.getLogger(__name__)

OFFLINE_ERROR = "Sin conexión al iniciar la pasada"


def _dispatch_checklist(remote: RemoteApiPort, record: QueuedMutation) -> None:
    payload = record.payload
    assert isinstance(payload, ChecklistPayload)
    remote.sync_checklist(payload, client_mutation_id=record.id)


def _dispatch_photo(remote: RemoteApiPort, record: QueuedMutation) -> None:
    payload = record.payload
    assert isinstance(payload, PhotoPayload)
    remote.upload_photo(payload, payload.checklist_item_id, client_mutation_id=record.id)


def _dispatch_comment(remote: RemoteApiPort, record: QueuedMutation) -> None:
    payload = record.payload
    assert isinstance(payload, CommentPayload)
    remote.sync_comment(payload, client_mutation_id=record.id)


_DISPATCHERS: dict[MutationKind, Callable[[RemoteApiPort, QueuedMutation], None]] = {
    MutationKind.CHECKLIST: _dispatch_checklist,
    MutationKind.PHOTO: _dispatch_photo,
    MutationKind.COMMENT: _dispatch_comment,
}

_MISSING_DISPATCHERS = set(MutationKind) - set(_DISPATCHERS)
if _MISSING_DISPATCHERS:
    raise RuntimeError(f"Tipos de mutación sin dispatcher: {sorted(kind.value for kind in _MISSING_DISPATCHERS)}")


class Synchronizer:
    """Vacía la cola offline hacia la API remota.

    Una pasada toma una foto de los registros pendientes y los envía de uno
    en uno, en el orden de la foto. Cada éxito se marca antes de pasar al
    siguiente; un fallo deja el registro en cola y no bloquea al resto. No
    hay reintentos dentro de la pasada: el siguiente disparo (reconexión,
    wake de background o ``enqueue`` online) es el reintento.

    Solo puede haber una pasada activa por proceso. Una petición que llega
    durante otra se descarta (no se encola) y devuelve un informe
    ``SKIPPED_IN_PROGRESS`` sin tocar el almacén.

    La entrega es al menos una vez: si el proceso cae entre la confirmación
    remota y ``mark_synced``, el registro se reenvía y la API lo absorbe por
    ``clientMutationId``.
    """

    def __init__(
        self,
        store: MutationStorePort,
        remote: RemoteApiPort,
        *,
        connectivity: ConnectivityStatePort | None = None,
    ) -> None:
        self._store = store
        self._remote = remote
        self._connectivity = connectivity
        self._in_progress = threading.Lock()
        self._last_report: DrainReport | None = None

    @property
    def is_draining(self) -> bool:
        return self._in_progress.locked()

    @property
    def last_report(self) -> DrainReport | None:
        return self._last_report

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Bloquea hasta que no haya pasada activa. ``False`` si vence ``timeout``."""
        acquired = self._in_progress.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._in_progress.release()
        return acquired

    def drain(self, kind: Optional[MutationKind] = None) -> DrainReport:
        if not self._in_progress.acquire(blocking=False):
            metrics_registry.increment(DRAINS_SKIPPED)
            logger.info("Pasada de sincronización en curso; se descarta la petición (kind=%s)", _kind_label(kind))
            return DrainReport.skipped(kind)
        try:
            with OperationContext("drain") as operation:
                report = self._run_pass(kind, operation.correlation_id)
            self._last_report = report
            return report
        finally:
            self._in_progress.release()

    def _run_pass(self, kind: Optional[MutationKind], correlation_id: str) -> DrainReport:
        started_at = utc_now_iso()
        started = perf_counter()
        metrics_registry.increment(DRAINS_EXECUTED)
        log_event(logger, "drain_started", {"kind": _kind_label(kind)}, correlation_id)

        try:
            snapshot = self._store.get_all_unsynced(kind)
        except LocalStorageError as exc:
            log_operational_error("No se pudo leer la cola offline", exc=exc, extra={"kind": _kind_label(kind)})
            return self._finish(
                DrainReport(
                    status=STATUS_TOTAL_FAILURE,
                    kind=kind,
                    errors=(str(exc),),
                    started_at=started_at,
                    finished_at=utc_now_iso(),
                    correlation_id=correlation_id,
                ),
                started,
            )

        if not snapshot:
            return self._finish(
                DrainReport(
                    status=STATUS_IDLE,
                    kind=kind,
                    started_at=started_at,
                    finished_at=utc_now_iso(),
                    correlation_id=correlation_id,
                ),
                started,
            )

        if self._connectivity is not None and not self._connectivity.is_online:
            return self._finish(
                DrainReport(
                    status=STATUS_TOTAL_FAILURE,
                    kind=kind,
                    failed=len(snapshot),
                    failed_ids=tuple(record.id for record in snapshot),
                    errors=(OFFLINE_ERROR,),
                    started_at=started_at,
                    finished_at=utc_now_iso(),
                    correlation_id=correlation_id,
                ),
                started,
            )

        synced = 0
        failed_ids: list[str] = []
        errors: list[str] = []
        for record in snapshot:
            try:
                _DISPATCHERS[record.kind](self._remote, record)
            except Exception as exc:  # noqa: BLE001
                failed_ids.append(record.id)
                errors.append(f"{record.id}: {exc}")
                metrics_registry.increment(DISPATCH_FAILURES)
                logger.warning("No se pudo sincronizar %s (%s): %s", record.id, record.kind.value, exc)
                self._record_failure(record, exc)
                continue

            try:
                self._store.mark_synced(record.id)
            except LocalStorageError as exc:
                # La API ya la tiene; se reenviará en la próxima pasada.
                failed_ids.append(record.id)
                errors.append(f"{record.id}: {exc}")
                log_operational_error("Mutación enviada pero no marcada como sincronizada", exc=exc, extra={"id": record.id})
                continue
            synced += 1
            metrics_registry.increment(MUTATIONS_SYNCED)

        return self._finish(
            DrainReport(
                status=resolve_status(len(snapshot), synced),
                kind=kind,
                attempted=len(snapshot),
                synced=synced,
                failed=len(failed_ids),
                failed_ids=tuple(failed_ids),
                errors=tuple(errors),
                started_at=started_at,
                finished_at=utc_now_iso(),
                correlation_id=correlation_id,
            ),
            started,
        )

    def _record_failure(self, record: QueuedMutation, exc: Exception) -> None:
        try:
            self._store.record_failure(record.id, f"{type(exc).__name__}: {exc}")
        except LocalStorageError:
            logger.exception("No se pudo anotar el fallo de %s", record.id)

    def _finish(self, report: DrainReport, started: float) -> DrainReport:
        metrics_registry.record_timing(DRAIN_LATENCY_MS, (perf_counter() - started) * 1000)
        log_event(logger, "drain_finished", report.to_dict(), report.correlation_id)
        if report.has_failures:
            logger.warning(
                "Pasada %s: %s sincronizadas, %s siguen en cola",
                report.status,
                report.synced,
                report.failed,
            )
        return report


class BackgroundDrainRequester:
    """Lanza ``drain`` en un hilo aparte para no bloquear a quien lo pide.

    Conserva los hilos lanzados para que ``shutdown`` pueda esperar a la
    pasada en curso antes de cerrar la conexión compartida.
    """

    def __init__(self, synchronizer: Synchronizer, *, thread_name: str = "complisite-drain") -> None:
        self._synchronizer = synchronizer
        self._thread_name = thread_name
        self._threads: list[threading.Thread] = []
        self._threads_lock = threading.Lock()
        self._closed = False

    def __call__(self, kind: Optional[MutationKind] = None) -> threading.Thread | None:
        if self._synchronizer.is_draining:
            metrics_registry.increment(DRAINS_SKIPPED)
            logger.debug("Drain ya en curso; no se lanza otro hilo")
            return None
        with self._threads_lock:
            if self._closed:
                logger.info("Cierre en curso; no se lanza una nueva pasada")
                return None
            self._threads = [thread for thread in self._threads if thread.is_alive()]
            thread = threading.Thread(target=self._run, args=(kind,), name=self._thread_name, daemon=True)
            self._threads.append(thread)
            thread.start()
        return thread

    def shutdown(self, timeout: float | None = None) -> bool:
        """Deja de aceptar peticiones y espera a los hilos lanzados."""
        with self._threads_lock:
            self._closed = True
            threads = list(self._threads)
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in threads)

    def _run(self, kind: Optional[MutationKind]) -> None:
        try:
            self._synchronizer.drain(kind)
        except Exception:  # noqa: BLE001
            logger.exception("Fallo inesperado en la pasada de sincronización")


def _kind_label(kind: Optional[MutationKind]) -> str:
    return kind.value if kind else "all"
