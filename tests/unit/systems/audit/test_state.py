"""
Unit tests for DecisionStateStore and the manual edit boundary.
"""

from __future__ import annotations

import pytest

from lucid.systems.audit.errors import InvalidUserInput
from lucid.systems.audit.state import DecisionStateStore, parse_edit


def _make_store() -> DecisionStateStore:
    return DecisionStateStore(
        input_data={"income": 75000, "loanAmount": 25000},
        output_data={"decision": "Approved"},
        confidence=0.87,
    )


class TestParseEdit:
    def test_valid_edit(self):
        triple = parse_edit('{"income": 1}', '{"decision": "Denied"}', "0.42")
        assert triple.input == {"income": 1}
        assert triple.output == {"decision": "Denied"}
        assert triple.confidence == 0.42

    @pytest.mark.parametrize(
        ("input_text", "output_text", "confidence"),
        [
            ("{income: 1}", "{}", 0.5),
            ("{}", "not json", 0.5),
            ("[1, 2]", "{}", 0.5),
            ("{}", '"Approved"', 0.5),
            ("{}", "{}", 1.5),
            ("{}", "{}", -0.1),
            ("{}", "{}", "high"),
            ("{}", "{}", float("nan")),
            ("{}", "{}", None),
        ],
    )
    def test_malformed_edit_raises(self, input_text, output_text, confidence):
        with pytest.raises(InvalidUserInput):
            parse_edit(input_text, output_text, confidence)


class TestDecisionStateStore:
    def test_snapshot_is_by_value(self):
        store = _make_store()
        snap = store.snapshot()
        snap.input["income"] = 1
        assert store.input["income"] == 75000

    def test_apply_edit_replaces_whole_triple(self):
        store = _make_store()
        store.apply_edit('{"age": 30}', '{"decision": "Denied"}', 0.55)

        snap = store.snapshot()
        assert snap.input == {"age": 30}
        assert snap.output == {"decision": "Denied"}
        assert snap.confidence == 0.55
        assert store.revision == 1

    def test_rejected_edit_leaves_state_untouched(self):
        store = _make_store()
        before = store.snapshot()

        with pytest.raises(InvalidUserInput):
            store.apply_edit('{"age": 30}', '{"decision": ', 0.55)

        assert store.snapshot() == before
        assert store.revision == 0

    def test_partial_update_keeps_omitted_parts(self):
        store = _make_store()
        store.update(confidence=0.6)
        assert store.confidence == 0.6
        assert store.input == {"income": 75000, "loanAmount": 25000}
        assert store.output == {"decision": "Approved"}

    def test_update_rejects_out_of_range_confidence(self):
        store = _make_store()
        with pytest.raises(InvalidUserInput):
            store.update(input_data={"x": 1}, confidence=2.0)
        assert store.input == {"income": 75000, "loanAmount": 25000}
