from __future__ import annotations

import logging
from dataclasses import dataclass, field

from complisite.domain.mutations import MutationKind, utc_now_iso
from complisite.domain.ports import SyncTagRegistrarPort
from complisite.domain.sync_models import DrainReport
from complisite.application.synchronizer import Synchronizer

logger = logging.getLogger(__name__)

SYNC_CHECKLISTS_TAG = "sync-checklists"
SYNC_PHOTOS_TAG = "sync-photos"
SYNC_COMMENTS_TAG = "sync-comments"

TAG_KINDS: dict[str, MutationKind] = {
    SYNC_CHECKLISTS_TAG: MutationKind.CHECKLIST,
    SYNC_PHOTOS_TAG: MutationKind.PHOTO,
    SYNC_COMMENTS_TAG: MutationKind.COMMENT,
}


@dataclass(frozen=True)
class WakeMessage:
    tag: str
    requested_at: str = field(default_factory=utc_now_iso)


class BackgroundSyncTrigger:
    """Traduce wakes del host en pasadas de un solo tipo de mutación.

    Un wake de ``sync-checklists`` nunca envía fotos ni comentarios: así el
    host puede aplicar su propia política de batería por etiqueta.
    """

    def __init__(self, synchronizer: Synchronizer, registrar: SyncTagRegistrarPort | None = None) -> None:
        self._synchronizer = synchronizer
        self._registrar = registrar
        self._registered: set[str] = set()

    @property
    def registered_tags(self) -> frozenset[str]:
        return frozenset(self._registered)

    def register(self, tag: str) -> None:
        if tag not in TAG_KINDS:
            raise ValueError(f"Etiqueta de sync desconocida: {tag!r}")
        if self._registrar is not None:
            self._registrar.register(tag)
        self._registered.add(tag)
        logger.info("Etiqueta de background sync registrada: %s", tag)

    def register_all(self) -> None:
        for tag in TAG_KINDS:
            self.register(tag)

    def handle_wake(self, message: WakeMessage) -> DrainReport | None:
        kind = TAG_KINDS.get(message.tag)
        if kind is None or message.tag not in self._registered:
            logger.warning("Wake ignorado para etiqueta no registrada: %s", message.tag)
            return None
        logger.info("Wake de background sync: %s", message.tag)
        return self._synchronizer.drain(kind)
