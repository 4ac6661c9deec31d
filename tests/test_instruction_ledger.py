"""Tests for the instruction ledger."""

import pytest

from smartgrade.tools.exam_grading.errors import InvalidRequest
from smartgrade.tools.exam_grading.instruction_ledger import (
    InstructionLedger, RULE_TAG, combine_instructions
)


class TestInstructionLedger:
    """Test appending and rendering rules."""

    def test_empty_ledger_renders_empty(self):
        ledger = InstructionLedger()
        assert ledger.render() == ""
        assert len(ledger) == 0

    def test_append_tags_and_separates_rules(self):
        ledger = InstructionLedger()
        ledger.append("Ignore spelling mistakes.")
        ledger.append("  Deduct one point when units are missing.  ")

        assert ledger.render() == (
            "[Updated Rule]: Ignore spelling mistakes.\n\n"
            "[Updated Rule]: Deduct one point when units are missing."
        )
        assert ledger.rules == ("Ignore spelling mistakes.", "Deduct one point when units are missing.")

    def test_render_is_idempotent(self):
        ledger = InstructionLedger(["Rule A", "Rule B"])
        assert ledger.render() == ledger.render()

    def test_later_rules_follow_earlier_rules(self):
        ledger = InstructionLedger(["Rule A"])
        before = ledger.render()
        ledger.append("Rule B")
        after = ledger.render()

        assert after.startswith(before)
        assert after.index("Rule A") < after.index("Rule B")
        assert after.count(RULE_TAG) == 2

    def test_append_empty_rule_rejected(self):
        ledger = InstructionLedger()
        with pytest.raises(InvalidRequest):
            ledger.append("   ")
        assert len(ledger) == 0

    def test_clear(self):
        ledger = InstructionLedger(["Rule A"])
        ledger.clear()
        assert ledger.render() == ""


def test_combine_instructions():
    """Test that teacher text comes before learned rules."""
    assert combine_instructions("Be strict.", "[Updated Rule]: X") == "Be strict.\n\n[Updated Rule]: X"
    assert combine_instructions("", "[Updated Rule]: X") == "[Updated Rule]: X"
    assert combine_instructions("Be strict.", "") == "Be strict."
    assert combine_instructions("  ", "") == ""
