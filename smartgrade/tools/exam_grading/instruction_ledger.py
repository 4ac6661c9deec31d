"""Append-only record of grading rules learned from teacher feedback."""

import logging
from typing import Iterable, Optional, Tuple

from .errors import InvalidRequest

LOG = logging.getLogger(__name__)

RULE_TAG = "[Updated Rule]"
RULE_SEPARATOR = "\n\n"


class InstructionLedger:
    """
    Accumulated grading rules, rendered as one text blob for every request.

    Rules keep the order they were appended in; later rules are expected to
    refine earlier ones purely through their position in the prompt. Each
    rule is tagged so a reader can tell machine-appended corrections from
    the teacher's own instructions.
    """

    def __init__(self, rules: Optional[Iterable[str]] = None):
        self._rules = []
        for rule in rules or []:
            self.append(rule)

    def append(self, rule: str) -> None:
        """Add a rule after all existing ones."""
        rule = (rule or "").strip()
        if not rule:
            raise InvalidRequest("Cannot append an empty rule")
        self._rules.append(rule)
        LOG.info("Appended grading rule #%d", len(self._rules))

    def render(self) -> str:
        return RULE_SEPARATOR.join(f"{RULE_TAG}: {rule}" for rule in self._rules)

    def clear(self) -> None:
        """Drop every rule; only used when the whole session is reset."""
        self._rules = []

    @property
    def rules(self) -> Tuple[str, ...]:
        return tuple(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"InstructionLedger(rules={len(self._rules)})"


def combine_instructions(teacher_instructions: str, ledger_text: str) -> str:
    """Teacher text first, then the ledger, separated like ledger entries."""
    parts = [p for p in (teacher_instructions.strip(), ledger_text.strip()) if p]
    return RULE_SEPARATOR.join(parts)
