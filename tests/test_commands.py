from __future__ import annotations

import pytest

from src.messaging.commands import (
    INTENT_APPROVE,
    INTENT_CUSTOM,
    INTENT_EDIT,
    INTENT_HELP,
    INTENT_REJECT,
    INTENT_SELECT,
    INTENT_STATUS,
    INTENT_SUGGESTIONS,
    INTENT_UNKNOWN,
    INTENT_VIEW,
    normalize_text,
    parse_command,
)


@pytest.mark.parametrize(
    ("text", "intent"),
    [
        ("APPROVE", INTENT_APPROVE),
        ("approve", INTENT_APPROVE),
        ("  Yes! ", INTENT_APPROVE),
        ("✅", INTENT_APPROVE),
        ("oui", INTENT_APPROVE),
        ("EDIT", INTENT_EDIT),
        ("✏️", INTENT_EDIT),
        ("Modifier", INTENT_EDIT),
        ("reject", INTENT_REJECT),
        ("❌", INTENT_REJECT),
        ("Non.", INTENT_REJECT),
        ("VIEW", INTENT_VIEW),
        ("📱", INTENT_VIEW),
        ("voir", INTENT_VIEW),
        ("help", INTENT_HELP),
        ("?", INTENT_HELP),
        ("AIDE", INTENT_HELP),
        ("suggestions", INTENT_SUGGESTIONS),
        ("idées", INTENT_SUGGESTIONS),
        ("STATUS", INTENT_STATUS),
        ("statut", INTENT_STATUS),
        ("custom", INTENT_CUSTOM),
        ("perso", INTENT_CUSTOM),
    ],
)
def test_vocabulary_maps_to_intents(text: str, intent: str) -> None:
    assert parse_command(text).intent == intent


def test_numeric_reply_selects_suggestion() -> None:
    command = parse_command("3")
    assert command.intent == INTENT_SELECT
    assert command.selection == 3

    hashed = parse_command("#5")
    assert hashed.intent == INTENT_SELECT
    assert hashed.selection == 5


def test_out_of_range_numbers_are_unknown() -> None:
    assert parse_command("0").intent == INTENT_UNKNOWN
    assert parse_command("9").intent == INTENT_UNKNOWN


def test_keyword_with_short_reference() -> None:
    command = parse_command("APPROVE a1b2c3")
    assert command.intent == INTENT_APPROVE
    assert command.reference == "a1b2c3"


def test_free_text_is_unknown_and_keeps_raw_text() -> None:
    command = parse_command("  Make it spicier and mention the truffle  ")
    assert command.intent == INTENT_UNKNOWN
    assert command.raw_text == "Make it spicier and mention the truffle"
    assert command.is_global is False


def test_empty_text_is_unknown() -> None:
    assert parse_command("").intent == INTENT_UNKNOWN
    assert parse_command("   ").intent == INTENT_UNKNOWN


def test_global_intents_are_flagged() -> None:
    assert parse_command("HELP").is_global is True
    assert parse_command("status").is_global is True
    assert parse_command("approve").is_global is False


def test_normalize_text_collapses_whitespace_and_punctuation() -> None:
    assert normalize_text("  Approve   NOW!! ") == "approve now"
    assert normalize_text("✅️") == "✅"
