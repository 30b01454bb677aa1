from __future__ import annotations

import requests

from complisite.domain.sync_errors import RemoteRejectedError, RemoteUnavailableError
from complisite.infrastructure.remote_errors import classify_status, map_requests_exception


def test_classify_status_credenciales() -> None:
    error = classify_status(403, "/api/photos/upload")

    assert isinstance(error, RemoteRejectedError)
    assert "credenciales" in str(error)


def test_http_error_sin_respuesta_es_transitorio() -> None:
    mapped = map_requests_exception(requests.HTTPError("sin respuesta"), "/api/checklists/sync")

    assert isinstance(mapped, RemoteUnavailableError)


def test_errores_ya_mapeados_se_respetan() -> None:
    original = RemoteRejectedError("ya mapeado", 422)

    assert map_requests_exception(original, "/x") is original


def test_error_desconocido_se_rechaza() -> None:
    mapped = map_requests_exception(ValueError("json"), "/api/comments/sync")

    assert isinstance(mapped, RemoteRejectedError)
    assert mapped.status_code is None
