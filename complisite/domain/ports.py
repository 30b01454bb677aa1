from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from complisite.domain.mutations import CommentPayload, ChecklistPayload, MutationKind, PhotoPayload, QueuedMutation


class MutationStorePort(Protocol):
    def put(self, record: QueuedMutation) -> None:
        ...

    def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        ...

    def get_all_unsynced(self, kind: Optional[MutationKind] = None) -> list[QueuedMutation]:
        ...

    def count_unsynced(self, kind: Optional[MutationKind] = None) -> int:
        ...

    def mark_synced(self, mutation_id: str) -> None:
        ...

    def record_failure(self, mutation_id: str, error_text: str) -> None:
        ...

    def delete_synced(self) -> int:
        ...


class RemoteApiPort(Protocol):
    """Los tres endpoints idempotentes que consume la sincronización.

    Cada método devuelve ``None`` si la API confirma y lanza una excepción
    en cualquier otro caso.
    """

    def sync_checklist(self, payload: ChecklistPayload, *, client_mutation_id: str | None = None) -> None:
        ...

    def upload_photo(self, file: PhotoPayload, checklist_item_id: str, *, client_mutation_id: str | None = None) -> None:
        ...

    def sync_comment(self, payload: CommentPayload, *, client_mutation_id: str | None = None) -> None:
        ...


class ConnectivityProbePort(Protocol):
    def is_reachable(self, *, timeout_seconds: float = 3.0) -> bool:
        ...


class ConnectivityStatePort(Protocol):
    @property
    def is_online(self) -> bool:
        ...


class SyncTagRegistrarPort(Protocol):
    def register(self, tag: str) -> None:
        ...


DrainRequester = Callable[[], Any]
