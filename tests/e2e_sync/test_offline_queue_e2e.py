from __future__ import annotations

import sqlite3
import threading
import time

from complisite.bootstrap.container import build_container
from complisite.domain.mutations import MutationKind
from complisite.domain.sync_models import STATUS_PARTIAL_FAILURE, STATUS_SUCCESS
from complisite.infrastructure.local_config import SyncConfig
from tests.fakes import FakeRemoteApi, StaticProbe


def _config() -> SyncConfig:
    return SyncConfig(api_base_url="https://api.complisite.test", device_id="dev-e2e", periodic_wake_seconds=0)


def _build(tmp_path, remote: FakeRemoteApi, probe: StaticProbe):
    db_path = tmp_path / "cola.db"
    return build_container(
        _config(),
        connection_factory=lambda: sqlite3.connect(db_path, check_same_thread=False),
        remote=remote,
        probe=probe,
    )


def _pending_ids(container) -> list[str]:  # noqa: ANN001
    return [record.id for record in container.store.get_all_unsynced()]


def test_jornada_sin_red_y_reconexion(tmp_path) -> None:
    remote = FakeRemoteApi()
    probe = StaticProbe(reachable=False)
    container = _build(tmp_path, remote, probe)
    try:
        container.connectivity.prime()
        queue = container.queue
        checklist = queue.record_checklist_completion("item-1", True)
        first_photo = queue.queue_photo("item-1", "a.jpg", b"jpg-a")
        second_photo = queue.queue_photo("item-2", "b.jpg", b"jpg-b")
        queue.queue_comment("item-1", "Sin barandilla")
        assert remote.calls == []
        assert queue.pending_count() == 4

        remote.failing_ids.add(first_photo.id)
        done = threading.Event()
        container.connectivity.on_became_online(done.set)
        probe.reachable = True
        container.connectivity.check_now()
        assert done.wait(2.0)

        for _ in range(200):
            report = container.synchronizer.last_report
            if report is not None and not container.synchronizer.is_draining:
                break
            time.sleep(0.01)

        report = container.synchronizer.last_report
        assert report.status == STATUS_PARTIAL_FAILURE
        assert report.failed_ids == (first_photo.id,)
        assert _pending_ids(container) == [first_photo.id]
        assert remote.ids_for("upload_photo")[:2] == [first_photo.id, second_photo.id]
        assert container.store.get(checklist.id).synced is True

        remote.failing_ids.clear()
        container.background_trigger.register_all()
        container.background_host.post("sync-photos")
        container.background_host.process_pending()

        assert container.synchronizer.last_report.status == STATUS_SUCCESS
        assert container.queue.pending_count() == 0
        assert container.queue.clear_synced() == 4
    finally:
        container.close()


def test_la_cola_sobrevive_a_un_reinicio(tmp_path) -> None:
    remote = FakeRemoteApi()
    container = _build(tmp_path, remote, StaticProbe(reachable=False))
    container.connectivity.prime()
    record = container.queue.queue_photo("item-1", "a.jpg", b"\xff\xd8persistente")
    container.close()

    restarted = _build(tmp_path, remote, StaticProbe(reachable=True))
    try:
        restarted.connectivity.prime()
        pending = restarted.queue.pending(MutationKind.PHOTO)
        assert [item.id for item in pending] == [record.id]
        assert pending[0].payload.content == b"\xff\xd8persistente"

        report = restarted.synchronizer.drain()
        assert report.status == STATUS_SUCCESS
    finally:
        restarted.close()
