from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from complisite.domain.mutations import MutationKind
from complisite.domain.sync_errors import PartialSyncFailure, TotalSyncFailure

STATUS_IDLE = "IDLE"
STATUS_SUCCESS = "SUCCESS"
STATUS_PARTIAL_FAILURE = "PARTIAL_FAILURE"
STATUS_TOTAL_FAILURE = "TOTAL_FAILURE"
STATUS_SKIPPED_IN_PROGRESS = "SKIPPED_IN_PROGRESS"


@dataclass(frozen=True)
class DrainReport:
    status: str
    kind: Optional[MutationKind] = None
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    failed_ids: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    started_at: str = ""
    finished_at: str = ""
    correlation_id: str = ""

    @classmethod
    def skipped(cls, kind: Optional[MutationKind] = None) -> "DrainReport":
        return cls(status=STATUS_SKIPPED_IN_PROGRESS, kind=kind)

    @property
    def has_failures(self) -> bool:
        return self.status in (STATUS_PARTIAL_FAILURE, STATUS_TOTAL_FAILURE)

    def raise_for_status(self) -> None:
        if self.status == STATUS_PARTIAL_FAILURE:
            raise PartialSyncFailure(self.synced, self.failed_ids, self.errors)
        if self.status == STATUS_TOTAL_FAILURE:
            raise TotalSyncFailure(self.failed_ids, self.errors)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value if self.kind else None
        return payload


def resolve_status(attempted: int, synced: int) -> str:
    if attempted == 0:
        return STATUS_IDLE
    if synced == attempted:
        return STATUS_SUCCESS
    if synced == 0:
        return STATUS_TOTAL_FAILURE
    return STATUS_PARTIAL_FAILURE


@dataclass(frozen=True)
class PendingSummary:
    total: int
    by_kind: dict[str, int] = field(default_factory=dict)
    online: bool = False
