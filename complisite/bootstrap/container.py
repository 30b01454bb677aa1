from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable

from complisite.application.background_sync import BackgroundSyncTrigger
from complisite.application.connectivity import ConnectivityMonitor
from complisite.application.mutation_queue import MutationQueueManager
from complisite.application.synchronizer import BackgroundDrainRequester, Synchronizer
from complisite.core.errors import ValidationError
from complisite.domain.ports import ConnectivityProbePort, RemoteApiPort
from complisite.infrastructure.background_host import ThreadedBackgroundSyncHost
from complisite.infrastructure.db import get_connection
from complisite.infrastructure.health_probes import SocketConnectivityProbe
from complisite.infrastructure.local_config import SyncConfig, SyncConfigStore
from complisite.infrastructure.migrations import run_migrations
from complisite.infrastructure.mutation_store_sqlite import SQLiteMutationStore
from complisite.infrastructure.remote_api_client import RemoteApiClient

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 60.0


@dataclass
class AppContainer:
    config: SyncConfig
    connection: sqlite3.Connection
    store: SQLiteMutationStore
    remote: RemoteApiPort
    connectivity: ConnectivityMonitor
    synchronizer: Synchronizer
    queue: MutationQueueManager
    background_trigger: BackgroundSyncTrigger
    background_host: ThreadedBackgroundSyncHost
    drain_requester: BackgroundDrainRequester
    shutdown_timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS

    def start(self) -> None:
        self.connectivity.start()
        self.background_trigger.register_all()
        self.background_host.start()

    def stop(self) -> None:
        """Detiene los disparadores y espera a la pasada que siga en vuelo."""
        self.background_host.stop()
        self.connectivity.stop()
        timeout = self.shutdown_timeout_seconds
        if not (self.drain_requester.shutdown(timeout) and self.synchronizer.wait_idle(timeout)):
            logger.warning("La pasada de sincronización no terminó en %ss; se cierra igualmente", timeout)

    def close(self) -> None:
        self.stop()
        close_remote = getattr(self.remote, "close", None)
        if callable(close_remote):
            close_remote()
        self.connection.close()


ConnectionFactory = Callable[[], sqlite3.Connection]


def load_config(config_store: SyncConfigStore | None = None) -> SyncConfig:
    config = (config_store or SyncConfigStore()).load()
    if config is None:
        raise ValidationError(
            "Falta configurar la URL de la API (config.json 'api_base_url' o COMPLISITE_API_URL)."
        )
    return config


def build_container(
    config: SyncConfig | None = None,
    *,
    connection_factory: ConnectionFactory = get_connection,
    remote: RemoteApiPort | None = None,
    probe: ConnectivityProbePort | None = None,
) -> AppContainer:
    resolved_config = config or load_config()
    connection = connection_factory()
    run_migrations(connection)

    store = SQLiteMutationStore(connection)
    remote_api = remote or RemoteApiClient(
        resolved_config.api_base_url,
        api_token=resolved_config.api_token or None,
        device_id=resolved_config.device_id or None,
        timeout_seconds=resolved_config.request_timeout_seconds,
    )
    connectivity = ConnectivityMonitor(
        probe or SocketConnectivityProbe(resolved_config.api_base_url),
        poll_interval_seconds=resolved_config.poll_interval_seconds,
    )
    synchronizer = Synchronizer(store, remote_api, connectivity=connectivity)
    requester = BackgroundDrainRequester(synchronizer)
    connectivity.on_became_online(requester)

    queue_manager = MutationQueueManager(store, connectivity=connectivity, drain_requester=requester)

    background_host = ThreadedBackgroundSyncHost(periodic_wake_seconds=resolved_config.periodic_wake_seconds)
    background_trigger = BackgroundSyncTrigger(synchronizer, registrar=background_host)
    background_host.bind(background_trigger.handle_wake)

    return AppContainer(
        config=resolved_config,
        connection=connection,
        store=store,
        remote=remote_api,
        connectivity=connectivity,
        synchronizer=synchronizer,
        queue=queue_manager,
        background_trigger=background_trigger,
        background_host=background_host,
        drain_requester=requester,
    )
