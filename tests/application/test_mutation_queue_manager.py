from __future__ import annotations

from pathlib import Path

import pytest

from complisite.application.connectivity import ConnectivityMonitor
from complisite.application.mutation_queue import MutationQueueManager
from complisite.core.errors import LocalStorageError, ValidationError
from complisite.core.metrics import MUTATIONS_ENQUEUED, metrics_registry
from complisite.domain.mutations import ChecklistPayload, MutationKind, PhotoPayload
from complisite.infrastructure.mutation_store_sqlite import SQLiteMutationStore


class _RequesterFake:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self._error = error

    def __call__(self) -> None:
        self.calls += 1
        if self._error is not None:
            raise self._error


class _StoreLleno:
    def put(self, record) -> None:  # noqa: ANN001
        raise LocalStorageError("Sin espacio para la cola offline (put): database or disk is full")


def test_enqueue_offline_persiste_y_no_sincroniza(store: SQLiteMutationStore) -> None:
    requester = _RequesterFake()
    manager = MutationQueueManager(store, connectivity=ConnectivityMonitor(initial_online=False), drain_requester=requester)

    record = manager.record_checklist_completion("item-1", True)

    assert store.get(record.id) == record
    assert requester.calls == 0
    assert metrics_registry.counter(MUTATIONS_ENQUEUED) == 1


def test_enqueue_online_pide_drain(store: SQLiteMutationStore) -> None:
    requester = _RequesterFake()
    manager = MutationQueueManager(store, connectivity=ConnectivityMonitor(initial_online=True), drain_requester=requester)

    manager.queue_comment("item-1", "Falta casco")

    assert requester.calls == 1


def test_fallo_del_requester_no_llega_al_llamante(store: SQLiteMutationStore) -> None:
    requester = _RequesterFake(RuntimeError("sin hilos"))
    manager = MutationQueueManager(store, connectivity=ConnectivityMonitor(initial_online=True), drain_requester=requester)

    record = manager.queue_comment("item-1", "Falta casco")

    assert store.get(record.id) is not None


def test_tipo_desconocido(store: SQLiteMutationStore) -> None:
    manager = MutationQueueManager(store)

    with pytest.raises(ValidationError):
        manager.enqueue("video", ChecklistPayload("item-1", True))


def test_tipo_como_texto(store: SQLiteMutationStore) -> None:
    manager = MutationQueueManager(store)

    record = manager.enqueue("checklist", ChecklistPayload("item-1", True))

    assert record.kind is MutationKind.CHECKLIST


def test_payload_invalido_no_se_guarda(store: SQLiteMutationStore) -> None:
    manager = MutationQueueManager(store)

    with pytest.raises(ValidationError):
        manager.queue_photo("item-1", "doc.pdf", b"%PDF", content_type="application/pdf")

    assert store.count_unsynced() == 0


def test_error_de_almacenamiento_se_propaga() -> None:
    manager = MutationQueueManager(_StoreLleno())  # type: ignore[arg-type]

    with pytest.raises(LocalStorageError):
        manager.record_checklist_completion("item-1", True)

    assert metrics_registry.counter(MUTATIONS_ENQUEUED) == 0


def test_checklist_desmarcado_sin_fecha(store: SQLiteMutationStore) -> None:
    manager = MutationQueueManager(store)

    record = manager.record_checklist_completion("item-1", False, completed_at="2024-05-01T10:00:00Z")

    assert record.payload == ChecklistPayload("item-1", False, completed_at=None)


def test_queue_photo_file_deduce_content_type(store: SQLiteMutationStore, tmp_path: Path) -> None:
    photo_path = tmp_path / "grieta.png"
    photo_path.write_bytes(b"\x89PNG\r\n")
    manager = MutationQueueManager(store)

    record = manager.queue_photo_file(photo_path, "item-4", project_id="p-2")

    assert isinstance(record.payload, PhotoPayload)
    assert record.payload.content_type == "image/png"
    assert record.payload.filename == "grieta.png"
    assert record.payload.content == b"\x89PNG\r\n"


def test_queue_photo_file_inexistente(store: SQLiteMutationStore, tmp_path: Path) -> None:
    manager = MutationQueueManager(store)

    with pytest.raises(ValidationError):
        manager.queue_photo_file(tmp_path / "no-existe.jpg", "item-4")


def test_pending_summary_y_limpieza(store: SQLiteMutationStore) -> None:
    manager = MutationQueueManager(store, connectivity=ConnectivityMonitor(initial_online=False))
    checklist = manager.record_checklist_completion("item-1", True)
    manager.queue_photo("item-1", "a.jpg", b"jpg")
    manager.queue_comment("item-1", "ok")
    store.mark_synced(checklist.id)

    summary = manager.pending_summary()

    assert summary.total == 2
    assert summary.by_kind == {"checklist": 0, "photo": 1, "comment": 1}
    assert summary.online is False
    assert manager.pending_count(MutationKind.PHOTO) == 1
    assert manager.clear_synced() == 1
    assert len(manager.pending()) == 2
