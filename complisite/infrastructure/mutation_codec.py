from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Mapping

from complisite.domain.mutations import (
    ChecklistPayload,
    CommentPayload,
    MutationKind,
    MutationPayload,
    PhotoPayload,
    QueuedMutation,
)


def encode_payload(payload: MutationPayload) -> tuple[str, bytes | None]:
    """Devuelve ``(payload_json, blob)``; solo las fotos llevan blob."""
    if isinstance(payload, PhotoPayload):
        fields = asdict(payload)
        blob = fields.pop("content")
        return json.dumps(fields, ensure_ascii=False, sort_keys=True), bytes(blob)
    if isinstance(payload, (ChecklistPayload, CommentPayload)):
        return json.dumps(asdict(payload), ensure_ascii=False, sort_keys=True), None
    raise TypeError(f"Payload no soportado: {type(payload).__name__}")


def decode_payload(kind: MutationKind, payload_json: str, blob: bytes | None) -> MutationPayload:
    data: dict[str, Any] = json.loads(payload_json or "{}")
    if kind is MutationKind.CHECKLIST:
        return ChecklistPayload(
            checklist_item_id=str(data["checklist_item_id"]),
            completed=bool(data["completed"]),
            completed_at=data.get("completed_at"),
            project_id=data.get("project_id"),
            notes=data.get("notes"),
        )
    if kind is MutationKind.PHOTO:
        return PhotoPayload(
            checklist_item_id=str(data["checklist_item_id"]),
            filename=str(data["filename"]),
            content_type=str(data["content_type"]),
            content=bytes(blob or b""),
            project_id=data.get("project_id"),
        )
    if kind is MutationKind.COMMENT:
        return CommentPayload(
            target_id=str(data["target_id"]),
            text=str(data["text"]),
            author_id=data.get("author_id"),
        )
    raise ValueError(f"Tipo de mutación desconocido: {kind!r}")


def row_to_mutation(row: Mapping[str, Any]) -> QueuedMutation:
    kind = MutationKind(row["kind"])
    return QueuedMutation(
        id=row["id"],
        kind=kind,
        payload=decode_payload(kind, row["payload_json"], row["blob"]),
        created_at=row["created_at"],
        synced=bool(row["synced"]),
        attempts=int(row["attempts"] or 0),
        last_error=row["last_error"],
    )
