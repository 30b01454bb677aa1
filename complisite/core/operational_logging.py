from __future__ import annotations

import logging
from typing import Any

from complisite.core.observability import get_correlation_id, get_operation_name

operational_logger = logging.getLogger("complisite.operational_error")


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    extra: dict[str, Any] | None = None,
) -> None:
    """Registra fallos locales que el usuario debe conocer (p. ej. cola llena)."""
    metadata = dict(extra or {})
    correlation_id = metadata.get("correlation_id") or get_correlation_id()
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    operation = get_operation_name()
    if operation and "operation" not in metadata:
        metadata["operation"] = operation
    operational_logger.error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"correlation_id": correlation_id, "extra": metadata},
    )
