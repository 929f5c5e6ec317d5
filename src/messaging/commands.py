"""Inbound text normalization into the reply-command vocabulary."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Dict, Optional


INTENT_APPROVE = "approve"
INTENT_REJECT = "reject"
INTENT_EDIT = "edit"
INTENT_VIEW = "view"
INTENT_HELP = "help"
INTENT_SUGGESTIONS = "suggestions"
INTENT_STATUS = "status"
INTENT_SELECT = "select"
INTENT_CUSTOM = "custom"
INTENT_UNKNOWN = "unknown"

GLOBAL_INTENTS = frozenset({INTENT_HELP, INTENT_STATUS, INTENT_SUGGESTIONS})
APPROVAL_INTENTS = frozenset({INTENT_APPROVE, INTENT_REJECT, INTENT_EDIT, INTENT_VIEW})
SUGGESTION_INTENTS = frozenset({INTENT_SELECT, INTENT_CUSTOM})

MIN_SELECTION = 1
MAX_SELECTION = 5

# Stable contract with messaging clients; keys are compared after normalization.
VOCABULARY: Dict[str, str] = {
    "approve": INTENT_APPROVE,
    "✅": INTENT_APPROVE,
    "yes": INTENT_APPROVE,
    "ok": INTENT_APPROVE,
    "oui": INTENT_APPROVE,
    "approuver": INTENT_APPROVE,
    "edit": INTENT_EDIT,
    "✏": INTENT_EDIT,
    "modifier": INTENT_EDIT,
    "reject": INTENT_REJECT,
    "❌": INTENT_REJECT,
    "no": INTENT_REJECT,
    "non": INTENT_REJECT,
    "rejeter": INTENT_REJECT,
    "view": INTENT_VIEW,
    "📱": INTENT_VIEW,
    "👀": INTENT_VIEW,
    "voir": INTENT_VIEW,
    "help": INTENT_HELP,
    "?": INTENT_HELP,
    "aide": INTENT_HELP,
    "suggestions": INTENT_SUGGESTIONS,
    "ideas": INTENT_SUGGESTIONS,
    "idées": INTENT_SUGGESTIONS,
    "idees": INTENT_SUGGESTIONS,
    "status": INTENT_STATUS,
    "statut": INTENT_STATUS,
    "custom": INTENT_CUSTOM,
    "perso": INTENT_CUSTOM,
}

_WHITESPACE_PATTERN = re.compile(r"\s+")
_SELECTION_PATTERN = re.compile(r"^#?(?P<number>\d{1,2})$")
_REFERENCE_PATTERN = re.compile(r"^#?(?P<reference>[0-9a-f]{6}[0-9a-f-]{0,30})$")
_TRAILING_PUNCTUATION = ".!,;:"
_VARIATION_SELECTOR = "️"


@dataclass(frozen=True)
class Command:
    intent: str
    raw_text: str = ""
    selection: Optional[int] = None
    reference: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.intent in GLOBAL_INTENTS


def normalize_text(text: str) -> str:
    """Case-fold, collapse whitespace, drop emoji variation selectors and trailing punctuation."""

    normalized = (text or "").replace(_VARIATION_SELECTOR, "").casefold()
    normalized = _WHITESPACE_PATTERN.sub(" ", normalized).strip()
    stripped = normalized.rstrip(_TRAILING_PUNCTUATION).strip()
    return stripped or normalized


def _match_keyword(token: str) -> Optional[Command]:
    intent = VOCABULARY.get(token)
    if intent is not None:
        return Command(intent=intent)
    selection_match = _SELECTION_PATTERN.match(token)
    if selection_match is not None:
        number = int(selection_match.group("number"))
        if MIN_SELECTION <= number <= MAX_SELECTION:
            return Command(intent=INTENT_SELECT, selection=number)
    return None


def parse_command(text: str) -> Command:
    raw_text = (text or "").strip()
    normalized = normalize_text(raw_text)
    if not normalized:
        return Command(intent=INTENT_UNKNOWN, raw_text=raw_text)

    matched = _match_keyword(normalized)
    if matched is not None:
        return Command(intent=matched.intent, raw_text=raw_text, selection=matched.selection)

    parts = normalized.split(" ")
    if len(parts) == 2:
        keyword = parts[0].rstrip(_TRAILING_PUNCTUATION)
        reference_match = _REFERENCE_PATTERN.match(parts[1])
        matched = _match_keyword(keyword)
        if matched is not None and reference_match is not None:
            return Command(
                intent=matched.intent,
                raw_text=raw_text,
                selection=matched.selection,
                reference=reference_match.group("reference"),
            )

    return Command(intent=INTENT_UNKNOWN, raw_text=raw_text)
