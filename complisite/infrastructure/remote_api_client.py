"""Cliente HTTP de la API remota de CompliSite.

Implementa los tres endpoints que drena la cola offline. Cada método
devuelve ``None`` cuando la API responde 2xx y lanza ``RemoteRejectedError``
o ``RemoteUnavailableError`` en cualquier otro caso; la decisión de reintentar
es del sincronizador, no del cliente.
"""
from __future__ import annotations

import logging
from typing import Any

import requests

from complisite.domain.mutations import ChecklistPayload, CommentPayload, PhotoPayload
from complisite.infrastructure.remote_errors import map_requests_exception

logger = logging.getLogger(__name__)

CHECKLIST_SYNC_PATH = "/api/checklists/sync"
PHOTO_UPLOAD_PATH = "/api/photos/upload"
COMMENT_SYNC_PATH = "/api/comments/sync"
DEFAULT_TIMEOUT_SECONDS = 30.0


def checklist_body(payload: ChecklistPayload, client_mutation_id: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "checklistItemId": payload.checklist_item_id,
        "completed": payload.completed,
        "completedAt": payload.completed_at,
    }
    if payload.project_id:
        body["projectId"] = payload.project_id
    if payload.notes:
        body["notes"] = payload.notes
    if client_mutation_id:
        body["clientMutationId"] = client_mutation_id
    return body


def comment_body(payload: CommentPayload, client_mutation_id: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"targetId": payload.target_id, "text": payload.text}
    if payload.author_id:
        body["authorId"] = payload.author_id
    if client_mutation_id:
        body["clientMutationId"] = client_mutation_id
    return body


class RemoteApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        device_id: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        if api_token:
            self._session.headers["Authorization"] = f"Bearer {api_token}"
        if device_id:
            self._session.headers["X-Device-Id"] = device_id
        self._calls_count = 0

    @property
    def base_url(self) -> str:
        return self._base_url

    def get_calls_count(self) -> int:
        return self._calls_count

    def sync_checklist(self, payload: ChecklistPayload, *, client_mutation_id: str | None = None) -> None:
        self._post(CHECKLIST_SYNC_PATH, json=checklist_body(payload, client_mutation_id))

    def upload_photo(
        self,
        file: PhotoPayload,
        checklist_item_id: str,
        *,
        client_mutation_id: str | None = None,
    ) -> None:
        data: dict[str, str] = {"checklistItemId": checklist_item_id}
        if file.project_id:
            data["projectId"] = file.project_id
        if client_mutation_id:
            data["clientMutationId"] = client_mutation_id
        files = {"file": (file.filename, file.content, file.content_type)}
        self._post(PHOTO_UPLOAD_PATH, data=data, files=files)

    def sync_comment(self, payload: CommentPayload, *, client_mutation_id: str | None = None) -> None:
        self._post(COMMENT_SYNC_PATH, json=comment_body(payload, client_mutation_id))

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, **kwargs: Any) -> None:
        url = f"{self._base_url}{path}"
        self._calls_count += 1
        try:
            response = self._session.post(url, timeout=self._timeout_seconds, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            mapped = map_requests_exception(exc, path)
            logger.debug("POST %s falló: %s", path, mapped)
            raise mapped from exc
        logger.debug("POST %s -> %s", path, response.status_code)
