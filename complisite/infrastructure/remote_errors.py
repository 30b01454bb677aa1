from __future__ import annotations

import requests

from complisite.domain.sync_errors import RemoteRejectedError, RemoteUnavailableError

_TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _response_excerpt(response: requests.Response | None) -> str:
    if response is None:
        return ""
    text = (getattr(response, "text", "") or "").strip()
    return text[:200]


def classify_status(status_code: int, endpoint: str, excerpt: str = "") -> Exception:
    detail = f" {excerpt}" if excerpt else ""
    if status_code in _TRANSIENT_STATUS:
        return RemoteUnavailableError(f"La API no está disponible ({status_code}) en {endpoint}.{detail}")
    if status_code in (401, 403):
        return RemoteRejectedError(f"La API rechazó las credenciales ({status_code}) en {endpoint}.", status_code)
    return RemoteRejectedError(f"La API rechazó la mutación ({status_code}) en {endpoint}.{detail}", status_code)


def map_requests_exception(ex: Exception, endpoint: str) -> Exception:
    if isinstance(ex, (RemoteRejectedError, RemoteUnavailableError)):
        return ex
    if isinstance(ex, requests.HTTPError):
        status_code = extract_response_status_code(ex)
        if status_code is None:
            return RemoteUnavailableError(f"Respuesta HTTP inválida en {endpoint}: {ex}")
        return classify_status(status_code, endpoint, _response_excerpt(ex.response))
    if isinstance(ex, requests.Timeout):
        return RemoteUnavailableError(f"Timeout al contactar {endpoint}.")
    if isinstance(ex, requests.ConnectionError):
        return RemoteUnavailableError(f"Sin conexión con {endpoint}: {ex}")
    if isinstance(ex, requests.RequestException):
        return RemoteUnavailableError(f"Fallo de red en {endpoint}: {ex}")
    return RemoteRejectedError(f"Error inesperado en {endpoint}: {ex}")
