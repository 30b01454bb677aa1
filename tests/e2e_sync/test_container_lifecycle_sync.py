from __future__ import annotations

import sqlite3
import threading
import time

from complisite.bootstrap.container import build_container
from complisite.core.metrics import DRAINS_EXECUTED, DRAINS_SKIPPED, metrics_registry
from complisite.infrastructure.local_config import SyncConfig
from tests.fakes import FakeRemoteApi, StaticProbe


def _build(db_path, remote: FakeRemoteApi, probe: StaticProbe):  # noqa: ANN001
    return build_container(
        SyncConfig(api_base_url="https://api.complisite.test", periodic_wake_seconds=0),
        connection_factory=lambda: sqlite3.connect(db_path, check_same_thread=False),
        remote=remote,
        probe=probe,
    )


def _synced_flags(db_path) -> dict[str, int]:  # noqa: ANN001
    with sqlite3.connect(db_path) as connection:
        rows = connection.execute("SELECT id, synced FROM queued_mutations").fetchall()
    return {row[0]: row[1] for row in rows}


def test_close_espera_a_la_pasada_en_vuelo(tmp_path) -> None:
    db_path = tmp_path / "cola.db"
    remote = FakeRemoteApi()
    entered = threading.Event()

    def _api_lenta(method: str, mutation_id: str | None) -> None:
        entered.set()
        time.sleep(0.3)

    remote.before_call = _api_lenta
    container = _build(db_path, remote, StaticProbe(reachable=True))
    container.connectivity.prime()

    record = container.queue.queue_comment("item-1", "Falta señalización")
    assert entered.wait(2.0)
    container.close()

    assert _synced_flags(db_path) == {record.id: 1}
    assert remote.ids_for("sync_comment") == [record.id]


def test_close_no_lanza_pasadas_nuevas(tmp_path) -> None:
    db_path = tmp_path / "cola.db"
    remote = FakeRemoteApi()
    container = _build(db_path, remote, StaticProbe(reachable=False))
    container.connectivity.prime()
    record = container.queue.queue_comment("item-1", "Pendiente")
    container.close()

    assert container.drain_requester() is None
    assert remote.calls == []
    assert _synced_flags(db_path) == {record.id: 0}


def test_una_sola_pasada_con_flancos_y_wake_simultaneos(tmp_path) -> None:
    db_path = tmp_path / "cola.db"
    remote = FakeRemoteApi()
    container = _build(db_path, remote, StaticProbe(reachable=False))
    release = threading.Event()
    entered = threading.Event()

    def _bloquear(method: str, mutation_id: str | None) -> None:
        entered.set()
        release.wait(5.0)

    try:
        container.connectivity.prime()
        checklist = container.queue.record_checklist_completion("item-1", True)
        photo = container.queue.queue_photo("item-1", "a.jpg", b"jpg-a")
        remote.before_call = _bloquear

        container.connectivity.update(True)
        assert entered.wait(2.0)

        container.connectivity.update(False)
        container.connectivity.update(True)
        container.background_trigger.register_all()
        container.background_host.post("sync-photos")
        assert container.background_host.process_pending() == 1

        release.set()
    finally:
        release.set()
        container.close()

    assert metrics_registry.counter(DRAINS_EXECUTED) == 1
    assert metrics_registry.counter(DRAINS_SKIPPED) == 2
    assert remote.ids_for("sync_checklist") == [checklist.id]
    assert remote.ids_for("upload_photo") == [photo.id]
    assert _synced_flags(db_path) == {checklist.id: 1, photo.id: 1}
