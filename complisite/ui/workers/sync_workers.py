from __future__ import annotations

import logging
import traceback
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QThread, Signal, Slot

from complisite.application.background_sync import BackgroundSyncTrigger, WakeMessage
from complisite.application.synchronizer import Synchronizer
from complisite.domain.mutations import MutationKind

logger = logging.getLogger(__name__)


class DrainWorker(QObject):
    finished = Signal(object)
    failed = Signal(object)

    def __init__(self, synchronizer: Synchronizer, kind: Optional[MutationKind] = None) -> None:
        super().__init__()
        self._synchronizer = synchronizer
        self._kind = kind

    @Slot()
    def run(self) -> None:
        try:
            report = self._synchronizer.drain(self._kind)
        except Exception as exc:
            logger.exception("Error durante la sincronización")
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(report)


class WakeWorker(QObject):
    finished = Signal(object)
    failed = Signal(object)

    def __init__(self, trigger: BackgroundSyncTrigger, tag: str) -> None:
        super().__init__()
        self._trigger = trigger
        self._tag = tag

    @Slot()
    def run(self) -> None:
        try:
            report = self._trigger.handle_wake(WakeMessage(tag=self._tag))
        except Exception as exc:
            logger.exception("Error procesando wake %s", self._tag)
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(report)


def start_drain_thread(
    synchronizer: Synchronizer,
    *,
    on_finished: Callable[[object], None],
    on_failed: Callable[[object], None],
    kind: Optional[MutationKind] = None,
) -> tuple[QThread, DrainWorker]:
    """Arranca un ``DrainWorker`` en su propio ``QThread``; el llamante conserva ambos.

    ``quit`` se invoca desde el propio hilo del worker para que ``thread.wait()``
    no dependa del bucle de eventos de la interfaz.
    """
    thread = QThread()
    worker = DrainWorker(synchronizer, kind)
    worker.moveToThread(thread)
    thread.started.connect(worker.run)
    worker.finished.connect(on_finished)
    worker.failed.connect(on_failed)
    worker.finished.connect(thread.quit, Qt.ConnectionType.DirectConnection)
    worker.failed.connect(thread.quit, Qt.ConnectionType.DirectConnection)
    worker.finished.connect(worker.deleteLater)
    worker.failed.connect(worker.deleteLater)
    thread.start()
    return thread, worker
