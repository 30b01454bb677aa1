from __future__ import annotations

import faulthandler
import logging
import sys
from types import TracebackType
from typing import Callable

from complisite.bootstrap.container import AppContainer, build_container
from complisite.bootstrap.exception_handler import handle_global_exception
from complisite.bootstrap.logging import configure_logging
from complisite.bootstrap.settings import resolve_log_dir
from complisite.core.errors import AppError

logger = logging.getLogger(__name__)

EXIT_ERROR = 2

_SHOWING_FATAL_ERROR_DIALOG = False

ContainerFactory = Callable[[], AppContainer]


def build_ui_error_message(incident_id: str) -> str:
    return f"Ha ocurrido un error inesperado.\nID de incidente: {incident_id}"


def handle_ui_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> str:
    global _SHOWING_FATAL_ERROR_DIALOG
    from PySide6.QtWidgets import QApplication, QMessageBox

    incident_id = handle_global_exception(exc_type, exc_value, exc_traceback)
    if QApplication.instance() is None or _SHOWING_FATAL_ERROR_DIALOG:
        return incident_id
    _SHOWING_FATAL_ERROR_DIALOG = True
    try:
        QMessageBox.critical(None, "Error inesperado", build_ui_error_message(incident_id))
    except Exception:  # noqa: BLE001
        logger.exception("No se pudo mostrar el diálogo de error (incident_id=%s)", incident_id)
    finally:
        _SHOWING_FATAL_ERROR_DIALOG = False
    return incident_id


def run_ui(container: AppContainer) -> int:
    """Arranca la ventana de sincronización y cierra el contenedor al salir."""
    from PySide6.QtWidgets import QApplication

    from complisite.ui.connectivity_bridge import QtConnectivityBridge
    from complisite.ui.sync_status_window import SyncStatusWindow

    app = QApplication.instance() or QApplication([])
    bridge = QtConnectivityBridge(container.connectivity)
    window: SyncStatusWindow | None = None
    try:
        container.start()
        if not bridge.attach():
            logger.info("Sin señal de red de Qt; el monitor sigue sondeando la API")
        window = SyncStatusWindow(container.queue, container.synchronizer)
        window.show()
        if container.connectivity.is_online:
            window.request_drain()
        return app.exec()
    except Exception:  # noqa: BLE001
        exc_type, exc_value, exc_traceback = sys.exc_info()
        if exc_type is not None and exc_value is not None:
            handle_ui_exception(exc_type, exc_value, exc_traceback)
        return EXIT_ERROR
    finally:
        if window is not None and not window.wait_for_drain():
            logger.warning("La sincronización manual sigue en curso al cerrar la interfaz")
        bridge.detach()
        container.close()


def main(*, container_factory: ContainerFactory | None = None) -> int:
    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    faulthandler.enable()
    sys.excepthook = handle_ui_exception
    logger.info("Interfaz de sincronización; log dir: %s", log_dir)

    try:
        container = (container_factory or build_container)()
    except AppError as exc:
        logger.error("No se pudo iniciar la interfaz: %s", exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_ERROR
    return run_ui(container)


if __name__ == "__main__":
    raise SystemExit(main())
