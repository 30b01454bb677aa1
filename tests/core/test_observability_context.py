from __future__ import annotations

import logging

from complisite.core.observability import (
    OperationContext,
    generate_correlation_id,
    get_correlation_id,
    get_operation_name,
    log_event,
)


def test_operation_context_genera_uuid4() -> None:
    with OperationContext("drain") as operation:
        correlation_id = operation.correlation_id
        assert get_correlation_id() == correlation_id
        assert get_operation_name() == "drain"

    assert len(correlation_id) == 36
    assert correlation_id.count("-") == 4


def test_operation_context_restaura_el_contexto_anterior() -> None:
    with OperationContext("wake", correlation_id="cid-externo"):
        with OperationContext("drain"):
            assert get_operation_name() == "drain"
        assert get_correlation_id() == "cid-externo"
        assert get_operation_name() == "wake"

    assert get_correlation_id() is None
    assert get_operation_name() is None


def test_log_event_devuelve_evento_estructurado(caplog) -> None:
    logger = logging.getLogger("tests.observability")

    with caplog.at_level(logging.INFO, logger="tests.observability"):
        event = log_event(logger, "drain_started", {"kind": "all"}, "cid-123")

    assert event["event"] == "drain_started"
    assert event["correlation_id"] == "cid-123"
    assert event["payload"] == {"kind": "all"}
    assert caplog.records[-1].correlation_id == "cid-123"


def test_generate_correlation_id_es_unico() -> None:
    assert generate_correlation_id() != generate_correlation_id()
