from __future__ import annotations

import logging

from PySide6.QtCore import QObject, Slot
from PySide6.QtNetwork import QNetworkInformation

from complisite.application.connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)


def is_reachable(reachability: QNetworkInformation.Reachability) -> bool:
    return reachability == QNetworkInformation.Reachability.Online


class QtConnectivityBridge(QObject):
    """Alimenta el ``ConnectivityMonitor`` con la señal de red de Qt.

    Si la plataforma no ofrece backend de ``QNetworkInformation`` el puente
    queda inactivo y el monitor sigue dependiendo de su sonda propia.
    """

    def __init__(self, monitor: ConnectivityMonitor, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._monitor = monitor
        self._information: QNetworkInformation | None = None

    @property
    def is_active(self) -> bool:
        return self._information is not None

    def attach(self) -> bool:
        if self._information is not None:
            return True
        if not QNetworkInformation.loadDefaultBackend():
            logger.info("QNetworkInformation sin backend; se usa la sonda del monitor")
            return False
        information = QNetworkInformation.instance()
        if information is None:
            return False
        self._information = information
        information.reachabilityChanged.connect(self.on_reachability_changed)
        self._monitor.update(is_reachable(information.reachability()))
        return True

    def detach(self) -> None:
        if self._information is None:
            return
        self._information.reachabilityChanged.disconnect(self.on_reachability_changed)
        self._information = None

    @Slot(QNetworkInformation.Reachability)
    def on_reachability_changed(self, reachability: QNetworkInformation.Reachability) -> None:
        self._monitor.update(is_reachable(reachability))
