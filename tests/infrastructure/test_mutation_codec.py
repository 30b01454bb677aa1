from __future__ import annotations

import json

import pytest

from complisite.domain.mutations import ChecklistPayload, CommentPayload, MutationKind, PhotoPayload
from complisite.infrastructure.mutation_codec import decode_payload, encode_payload


def test_foto_guarda_binario_fuera_del_json() -> None:
    payload = PhotoPayload("item-1", "a.jpg", "image/jpeg", b"\x00\x01binario", project_id="p-1")

    payload_json, blob = encode_payload(payload)

    assert blob == b"\x00\x01binario"
    assert "content" not in json.loads(payload_json)
    assert decode_payload(MutationKind.PHOTO, payload_json, blob) == payload


def test_checklist_sin_blob_y_json_estable() -> None:
    payload = ChecklistPayload("item-1", True, completed_at="2024-05-01T10:00:00Z", notes="ok")

    payload_json, blob = encode_payload(payload)

    assert blob is None
    assert payload_json == json.dumps(json.loads(payload_json), ensure_ascii=False, sort_keys=True)
    assert decode_payload(MutationKind.CHECKLIST, payload_json, None) == payload


def test_comentario_conserva_acentos() -> None:
    payload = CommentPayload("item-1", "Señalización dañada")

    payload_json, _ = encode_payload(payload)

    assert "Señalización" in payload_json


def test_payload_desconocido() -> None:
    with pytest.raises(TypeError):
        encode_payload({"checklist_item_id": "x"})  # type: ignore[arg-type]
