from __future__ import annotations

from complisite.core.errors import AppError, ExternalServiceError, TransientExternalError


class RemoteRejectedError(ExternalServiceError):
    """La API remota respondió, pero rechazó la mutación (4xx/5xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteUnavailableError(TransientExternalError):
    """Sin red, timeout o DNS: la mutación sigue en cola."""


class SyncError(AppError):
    pass


class PartialSyncFailure(SyncError):
    def __init__(self, synced: int, failed_ids: tuple[str, ...], errors: tuple[str, ...] = ()) -> None:
        super().__init__(f"Sincronización parcial: {synced} enviadas, {len(failed_ids)} siguen en cola.")
        self.synced = synced
        self.failed_ids = failed_ids
        self.errors = errors


class TotalSyncFailure(SyncError):
    def __init__(self, failed_ids: tuple[str, ...], errors: tuple[str, ...] = ()) -> None:
        super().__init__(f"No se pudo sincronizar ninguna mutación ({len(failed_ids)} en cola).")
        self.failed_ids = failed_ids
        self.errors = errors
