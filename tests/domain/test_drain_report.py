from __future__ import annotations

import pytest

from complisite.domain.mutations import MutationKind
from complisite.domain.sync_errors import PartialSyncFailure, TotalSyncFailure
from complisite.domain.sync_models import (
    STATUS_IDLE,
    STATUS_PARTIAL_FAILURE,
    STATUS_SKIPPED_IN_PROGRESS,
    STATUS_SUCCESS,
    STATUS_TOTAL_FAILURE,
    DrainReport,
    resolve_status,
)


@pytest.mark.parametrize(
    ("attempted", "synced", "expected"),
    [
        (0, 0, STATUS_IDLE),
        (3, 3, STATUS_SUCCESS),
        (3, 0, STATUS_TOTAL_FAILURE),
        (3, 1, STATUS_PARTIAL_FAILURE),
    ],
)
def test_resolve_status(attempted: int, synced: int, expected: str) -> None:
    assert resolve_status(attempted, synced) == expected


def test_skipped_no_cuenta_como_fallo() -> None:
    report = DrainReport.skipped(MutationKind.PHOTO)

    assert report.status == STATUS_SKIPPED_IN_PROGRESS
    assert report.has_failures is False
    report.raise_for_status()


def test_raise_for_status_parcial() -> None:
    report = DrainReport(status=STATUS_PARTIAL_FAILURE, attempted=2, synced=1, failed=1, failed_ids=("photo-1",))

    with pytest.raises(PartialSyncFailure) as exc_info:
        report.raise_for_status()

    assert exc_info.value.failed_ids == ("photo-1",)
    assert exc_info.value.synced == 1


def test_raise_for_status_total() -> None:
    report = DrainReport(status=STATUS_TOTAL_FAILURE, attempted=1, failed=1, failed_ids=("checklist-1",))

    with pytest.raises(TotalSyncFailure):
        report.raise_for_status()


def test_to_dict_serializa_kind_como_texto() -> None:
    payload = DrainReport(status=STATUS_SUCCESS, kind=MutationKind.CHECKLIST, attempted=1, synced=1).to_dict()

    assert payload["kind"] == "checklist"
    assert payload["status"] == STATUS_SUCCESS
    assert payload["failed_ids"] == ()
