from __future__ import annotations


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class LocalStorageError(PersistenceError):
    """La cola local no pudo escribir o leer (cuota agotada, disco, corrupción)."""


class ExternalServiceError(InfraError):
    pass


class TransientExternalError(ExternalServiceError):
    pass
