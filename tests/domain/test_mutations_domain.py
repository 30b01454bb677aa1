from __future__ import annotations

import re

import pytest

from complisite.core.errors import ValidationError
from complisite.domain.mutations import (
    ChecklistPayload,
    CommentPayload,
    MutationKind,
    PhotoPayload,
    build_mutation,
    new_mutation_id,
    utc_now_iso,
    validate_payload,
)


def _photo(**overrides) -> PhotoPayload:
    values = {
        "checklist_item_id": "item-1",
        "filename": "evidencia.jpg",
        "content_type": "image/jpeg",
        "content": b"\xff\xd8\xff",
    }
    values.update(overrides)
    return PhotoPayload(**values)


def test_build_mutation_nace_sin_sincronizar() -> None:
    record = build_mutation(MutationKind.CHECKLIST, ChecklistPayload("item-1", True))

    assert record.synced is False
    assert record.attempts == 0
    assert record.last_error is None
    assert record.id.startswith("checklist-")
    assert record.created_at.endswith("Z")


def test_ids_unicos_aunque_coincida_el_milisegundo() -> None:
    ids = {new_mutation_id(MutationKind.PHOTO, now_ms=1_700_000_000_000) for _ in range(200)}

    assert len(ids) == 200
    assert all(re.fullmatch(r"photo-1700000000000-[0-9a-f]{12}", value) for value in ids)


def test_mark_synced_devuelve_copia() -> None:
    record = build_mutation(MutationKind.COMMENT, CommentPayload("item-1", "Falta señalización"))

    synced = record.mark_synced()

    assert synced.synced is True
    assert record.synced is False
    assert synced.id == record.id


def test_payload_de_otro_tipo_es_rechazado() -> None:
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.PHOTO, ChecklistPayload("item-1", True))


@pytest.mark.parametrize(
    "payload",
    [
        ChecklistPayload("", True),
        ChecklistPayload("   ", False),
    ],
)
def test_checklist_requiere_item(payload: ChecklistPayload) -> None:
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.CHECKLIST, payload)


def test_foto_debe_ser_imagen_y_no_vacia() -> None:
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.PHOTO, _photo(content_type="application/pdf"))
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.PHOTO, _photo(content=b""))
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.PHOTO, _photo(filename=""))


def test_comentario_requiere_texto() -> None:
    with pytest.raises(ValidationError):
        validate_payload(MutationKind.COMMENT, CommentPayload("item-1", "  "))


def test_repr_de_foto_no_incluye_binario() -> None:
    photo = _photo(content=b"x" * 2048)

    assert "content=" not in repr(photo)
    assert photo.size_bytes == 2048


def test_utc_now_iso_termina_en_z() -> None:
    assert utc_now_iso().endswith("Z")
