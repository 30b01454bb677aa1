from __future__ import annotations

import logging

from PySide6.QtCore import QThread, QTimer, Slot
from PySide6.QtWidgets import QLabel, QPushButton, QVBoxLayout, QWidget

from complisite.application.mutation_queue import MutationQueueManager
from complisite.application.synchronizer import Synchronizer
from complisite.domain.sync_models import DrainReport
from complisite.ui.workers.sync_workers import DrainWorker, start_drain_thread

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_MS = 2000


def describe_pending(total: int, by_kind: dict[str, int]) -> str:
    detail = ", ".join(f"{kind}: {count}" for kind, count in sorted(by_kind.items()) if count)
    return f"Pendientes: {total} ({detail})" if detail else f"Pendientes: {total}"


def describe_report(report: DrainReport) -> str:
    return f"Última pasada: {report.status} ({report.synced} enviadas, {report.failed} en cola)"


class SyncStatusWindow(QWidget):
    """Estado de red, cola pendiente y botón de sincronización manual.

    La pasada manual corre en un ``QThread`` propio; los avisos de conexión
    los sigue atendiendo el monitor, así que la ventana solo refresca lo que
    ya hay en la cola.
    """

    def __init__(
        self,
        queue: MutationQueueManager,
        synchronizer: Synchronizer,
        *,
        refresh_interval_ms: int = REFRESH_INTERVAL_MS,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._queue = queue
        self._synchronizer = synchronizer
        self._drain_in_progress = False
        self._drain_thread: QThread | None = None
        self._drain_worker: DrainWorker | None = None

        self.setWindowTitle("CompliSite · Sincronización")
        self.connectivity_label = QLabel(self)
        self.pending_label = QLabel(self)
        self.last_report_label = QLabel("Sin sincronizaciones en esta sesión", self)
        self.sync_button = QPushButton("Sincronizar ahora", self)
        self.sync_button.clicked.connect(self.request_drain)

        layout = QVBoxLayout(self)
        layout.addWidget(self.connectivity_label)
        layout.addWidget(self.pending_label)
        layout.addWidget(self.last_report_label)
        layout.addWidget(self.sync_button)

        self._refresh_timer = QTimer(self)
        self._refresh_timer.setInterval(refresh_interval_ms)
        self._refresh_timer.timeout.connect(self.refresh)
        self._refresh_timer.start()
        self.refresh()

    @property
    def drain_in_progress(self) -> bool:
        return self._drain_in_progress

    @Slot()
    def refresh(self) -> None:
        summary = self._queue.pending_summary()
        self.connectivity_label.setText("Conectado" if summary.online else "Sin conexión")
        self.pending_label.setText(describe_pending(summary.total, summary.by_kind))
        self.sync_button.setEnabled(not self._drain_in_progress)

    @Slot()
    def request_drain(self) -> None:
        if self._drain_in_progress:
            return
        self.wait_for_drain()
        self._drain_in_progress = True
        self.sync_button.setEnabled(False)
        logger.info("Sincronización manual solicitada desde la ventana")
        self._drain_thread, self._drain_worker = start_drain_thread(
            self._synchronizer,
            on_finished=self._on_drain_finished,
            on_failed=self._on_drain_failed,
        )

    def wait_for_drain(self, timeout_ms: int = 30000) -> bool:
        """Espera a que termine el hilo de la pasada manual, si lo hay."""
        if self._drain_thread is None:
            return True
        return self._drain_thread.wait(timeout_ms)

    @Slot(object)
    def _on_drain_finished(self, report: DrainReport) -> None:
        self._drain_in_progress = False
        self.last_report_label.setText(describe_report(report))
        self.refresh()

    @Slot(object)
    def _on_drain_failed(self, payload: dict) -> None:
        self._drain_in_progress = False
        self.last_report_label.setText(f"Error al sincronizar: {payload['error']}")
        self.refresh()
