from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Optional, Union

from complisite.core.errors import LocalStorageError, ValidationError
from complisite.core.metrics import MUTATIONS_ENQUEUED, metrics_registry
from complisite.core.operational_logging import log_operational_error
from complisite.domain.mutations import (
    ChecklistPayload,
    CommentPayload,
    MutationKind,
    MutationPayload,
    PhotoPayload,
    QueuedMutation,
    build_mutation,
    utc_now_iso,
)
from complisite.domain.ports import ConnectivityStatePort, DrainRequester, MutationStorePort
from complisite.domain.sync_models import PendingSummary

logger = logging.getLogger(__name__)


class MutationQueueManager:
    """Punto de entrada único para registrar cambios hechos en campo.

    ``enqueue`` vuelve en cuanto la escritura local es durable. Si el
    dispositivo está online se pide además una pasada de sincronización,
    pero su resultado no llega al llamante: la mutación ya está a salvo en
    la cola y la recogerá el siguiente disparo si esta pasada falla.
    """

    def __init__(
        self,
        store: MutationStorePort,
        *,
        connectivity: ConnectivityStatePort | None = None,
        drain_requester: DrainRequester | None = None,
    ) -> None:
        self._store = store
        self._connectivity = connectivity
        self._drain_requester = drain_requester

    def enqueue(self, kind: Union[MutationKind, str], payload: MutationPayload) -> QueuedMutation:
        try:
            resolved_kind = MutationKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Tipo de mutación desconocido: {kind!r}") from exc

        record = build_mutation(resolved_kind, payload)
        try:
            self._store.put(record)
        except LocalStorageError as exc:
            log_operational_error(
                "No se pudo guardar la mutación en la cola offline",
                exc=exc,
                extra={"id": record.id, "kind": resolved_kind.value},
            )
            raise

        metrics_registry.increment(MUTATIONS_ENQUEUED)
        logger.info("Mutación encolada id=%s kind=%s", record.id, resolved_kind.value)
        if self._is_online():
            self._request_drain()
        return record

    def record_checklist_completion(
        self,
        checklist_item_id: str,
        completed: bool,
        *,
        project_id: Optional[str] = None,
        notes: Optional[str] = None,
        completed_at: Optional[str] = None,
    ) -> QueuedMutation:
        if completed and completed_at is None:
            completed_at = utc_now_iso()
        payload = ChecklistPayload(
            checklist_item_id=checklist_item_id,
            completed=completed,
            completed_at=completed_at if completed else None,
            project_id=project_id,
            notes=notes,
        )
        return self.enqueue(MutationKind.CHECKLIST, payload)

    def queue_photo(
        self,
        checklist_item_id: str,
        filename: str,
        content: bytes,
        *,
        content_type: str = "image/jpeg",
        project_id: Optional[str] = None,
    ) -> QueuedMutation:
        payload = PhotoPayload(
            checklist_item_id=checklist_item_id,
            filename=filename,
            content_type=content_type,
            content=content,
            project_id=project_id,
        )
        return self.enqueue(MutationKind.PHOTO, payload)

    def queue_photo_file(
        self,
        path: Path,
        checklist_item_id: str,
        *,
        content_type: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> QueuedMutation:
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise ValidationError(f"No se pudo leer la foto {path}: {exc}") from exc
        guessed = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return self.queue_photo(
            checklist_item_id,
            path.name,
            content,
            content_type=guessed,
            project_id=project_id,
        )

    def queue_comment(self, target_id: str, text: str, *, author_id: Optional[str] = None) -> QueuedMutation:
        return self.enqueue(MutationKind.COMMENT, CommentPayload(target_id=target_id, text=text, author_id=author_id))

    def pending(self, kind: Optional[MutationKind] = None) -> list[QueuedMutation]:
        return self._store.get_all_unsynced(kind)

    def pending_count(self, kind: Optional[MutationKind] = None) -> int:
        return self._store.count_unsynced(kind)

    def pending_summary(self) -> PendingSummary:
        by_kind = {kind.value: self._store.count_unsynced(kind) for kind in MutationKind}
        return PendingSummary(total=sum(by_kind.values()), by_kind=by_kind, online=self._is_online())

    def clear_synced(self) -> int:
        return self._store.delete_synced()

    def _is_online(self) -> bool:
        return self._connectivity is not None and self._connectivity.is_online

    def _request_drain(self) -> None:
        if self._drain_requester is None:
            return
        try:
            self._drain_requester()
        except Exception:  # noqa: BLE001
            logger.warning("No se pudo lanzar la sincronización inmediata; queda en cola", exc_info=True)
