"""Unit tests for free-text response matching."""

import pytest

from core.errors import ValidationError
from core.matching import EdgeMatcher, normalize_utterance
from graph.schema import FlowEdge


def _edges(*conditions):
    return [FlowEdge(from_node_id="q", to_node_id=f"t{i}", condition_value=c) for i, c in enumerate(conditions)]


class TestNormalizeUtterance:
    def test_punctuation_case_and_spacing(self):
        assert normalize_utterance("  Yes,   PLEASE! ") == "yes please"

    def test_empty(self):
        assert normalize_utterance(None) == ""


class TestExactMatching:
    """Tests for the default strategy."""

    def test_matches_condition_ignoring_case_and_punctuation(self):
        edges = _edges("yes", "no")

        assert EdgeMatcher().match(edges, "Yes!") is edges[0]

    def test_matches_edge_label(self):
        edge = FlowEdge(from_node_id="q", to_node_id="t", condition_value="agent", label="Talk to a person")

        assert EdgeMatcher().match([edge], "talk to a person") is edge

    def test_no_match_returns_none(self):
        assert EdgeMatcher().match(_edges("yes", "no"), "maybe") is None

    def test_ambiguous_match_returns_none(self):
        """
        GIVEN two responses with the same wording
        WHEN the customer says that wording
        THEN no edge is picked
        """
        assert EdgeMatcher().match(_edges("yes", "Yes"), "yes") is None

    def test_empty_text_or_no_edges(self):
        assert EdgeMatcher().match(_edges("yes"), "  ") is None
        assert EdgeMatcher().match([], "yes") is None


class TestContainsMatching:
    """Tests for the whole-word containment strategy."""

    def test_condition_inside_longer_sentence(self):
        edges = _edges("reschedule", "cancel")

        assert EdgeMatcher("contains").match(edges, "I need to reschedule please") is edges[0]

    def test_partial_words_do_not_match(self):
        assert EdgeMatcher("contains").match(_edges("no"), "I know") is None

    def test_exact_match_wins_over_containment(self):
        edges = _edges("yes", "yes please")

        assert EdgeMatcher("contains").match(edges, "yes please") is edges[1]

    def test_several_contained_conditions_are_ambiguous(self):
        assert EdgeMatcher("contains").match(_edges("yes", "no"), "yes and no") is None


class TestStrategies:
    def test_unknown_strategy(self):
        with pytest.raises(ValidationError) as exc_info:
            EdgeMatcher("semantic")

        assert exc_info.value.field == "strategy"

    def test_registered_strategy_is_used(self):
        edges = _edges("yes", "no")
        matcher = EdgeMatcher()
        matcher.register("first", lambda es, text: list(es[:1]))
        matcher.strategy = "first"

        assert matcher.match(edges, "anything") is edges[0]
