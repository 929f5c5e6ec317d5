import structlog

from src.core.logger import (
    CONTEXT_KEYS,
    _add_default_context,
    bind_request_context,
    clear_request_context,
    current_log_context,
    log_context,
)


def setup_function() -> None:
    clear_request_context()


def teardown_function() -> None:
    clear_request_context()


def test_default_context_fills_every_id() -> None:
    event = _add_default_context(None, "info", {"event": "x", "workflow_id": "wf-1"})

    assert event["workflow_id"] == "wf-1"
    for key in CONTEXT_KEYS:
        assert key in event
    assert event["message_sid"] is None


def test_request_context_skips_missing_user() -> None:
    bind_request_context(request_id="req-1")

    assert current_log_context() == {"request_id": "req-1"}


def test_log_context_binds_known_ids_and_restores_outer_values() -> None:
    bind_request_context(request_id="req-1", user_id="user-1")

    with log_context(workflow_id="wf-1", message_sid=None, user_id="user-2"):
        inner = current_log_context()
    outer = current_log_context()

    assert inner == {"request_id": "req-1", "user_id": "user-2", "workflow_id": "wf-1"}
    assert outer == {"request_id": "req-1", "user_id": "user-1"}


def test_log_context_values_reach_merged_events() -> None:
    with log_context(message_sid="SM1"):
        event = structlog.contextvars.merge_contextvars(None, "info", {"event": "x"})

    assert event["message_sid"] == "SM1"
