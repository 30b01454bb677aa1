from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from complisite.core.errors import ValidationError


class MutationKind(str, Enum):
    CHECKLIST = "checklist"
    PHOTO = "photo"
    COMMENT = "comment"


@dataclass(frozen=True)
class ChecklistPayload:
    """Marca (o desmarca) un ítem de checklist como completado."""

    checklist_item_id: str
    completed: bool
    completed_at: Optional[str] = None
    project_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class PhotoPayload:
    """Foto de evidencia asociada a un ítem de checklist.

    El binario viaja con el registro para que la subida pueda reintentarse
    aunque el fichero original ya no exista en el dispositivo.
    """

    checklist_item_id: str
    filename: str
    content_type: str
    content: bytes = field(repr=False)
    project_id: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class CommentPayload:
    target_id: str
    text: str
    author_id: Optional[str] = None


MutationPayload = Union[ChecklistPayload, PhotoPayload, CommentPayload]

PAYLOAD_TYPES: dict[MutationKind, type] = {
    MutationKind.CHECKLIST: ChecklistPayload,
    MutationKind.PHOTO: PhotoPayload,
    MutationKind.COMMENT: CommentPayload,
}


@dataclass(frozen=True)
class QueuedMutation:
    id: str
    kind: MutationKind
    payload: MutationPayload
    created_at: str
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None

    def mark_synced(self) -> "QueuedMutation":
        return replace(self, synced=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_mutation_id(kind: MutationKind, *, now_ms: int | None = None) -> str:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{kind.value}-{timestamp}-{secrets.token_hex(6)}"


def _require_text(value: object, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"El campo '{field_name}' es obligatorio.")


def validate_payload(kind: MutationKind, payload: object) -> MutationPayload:
    expected = PAYLOAD_TYPES.get(kind)
    if expected is None:
        raise ValidationError(f"Tipo de mutación desconocido: {kind!r}")
    if not isinstance(payload, expected):
        raise ValidationError(
            f"Payload {type(payload).__name__} no corresponde al tipo '{kind.value}' (se esperaba {expected.__name__})."
        )
    if isinstance(payload, ChecklistPayload):
        _require_text(payload.checklist_item_id, "checklist_item_id")
    elif isinstance(payload, PhotoPayload):
        _require_text(payload.checklist_item_id, "checklist_item_id")
        _require_text(payload.filename, "filename")
        if not payload.content_type.lower().startswith("image/"):
            raise ValidationError(f"Solo se aceptan imágenes (content_type={payload.content_type!r}).")
        if not payload.content:
            raise ValidationError("La foto está vacía.")
    elif isinstance(payload, CommentPayload):
        _require_text(payload.target_id, "target_id")
        _require_text(payload.text, "text")
    return payload


def build_mutation(kind: MutationKind, payload: MutationPayload, *, created_at: str | None = None) -> QueuedMutation:
    validate_payload(kind, payload)
    return QueuedMutation(
        id=new_mutation_id(kind),
        kind=kind,
        payload=payload,
        created_at=created_at or utc_now_iso(),
        synced=False,
    )
