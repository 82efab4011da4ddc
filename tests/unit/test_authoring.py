"""Unit tests for branch authoring."""

import pytest

from core.errors import InvariantError, NotFoundError, TerminalNodeError, ValidationError
from graph.authoring import LABEL_MAX_LENGTH, branch_node_type
from graph.schema import NodeType
from graph.validator import orphans


class TestBranchNodeType:
    """Tests for mapping author checkboxes to a node type."""

    @pytest.mark.parametrize(
        "flags,expected",
        [
            ({}, NodeType.QUESTION),
            ({"capture_answer": True}, NodeType.CAPTURE),
            ({"ends_conversation": True}, NodeType.END),
            ({"transfer_to_human": True}, NodeType.TRANSFER),
            ({"ends_conversation": True, "transfer_to_human": True}, NodeType.TRANSFER),
            ({"ends_conversation": True, "capture_answer": True}, NodeType.END),
        ],
    )
    def test_precedence(self, flags, expected):
        assert branch_node_type(**flags) is expected


class TestAddBranch:
    """Tests for adding a response and the step it leads to."""

    def test_adds_node_and_edge(self, store, authoring):
        """
        GIVEN a flow holding only its root
        WHEN a branch is added under the root
        THEN one node and one edge are created and linked
        """
        branch = authoring.add_branch(store.root_id, "yes", "Great!", NodeType.STATEMENT)

        assert len(store.nodes) == 2
        assert store.edges == [branch.edge]
        assert branch.edge.from_node_id == store.root_id
        assert branch.edge.to_node_id == branch.node.id
        assert branch.node.label == "yes"
        assert branch.edge.label == "yes"

    def test_terminal_parent_is_rejected_and_graph_unchanged(self, appointment, authoring):
        nodes_before = len(appointment.store.nodes)
        edges_before = len(appointment.store.edges)

        with pytest.raises(TerminalNodeError) as exc_info:
            authoring.add_branch(appointment.b.id, "wait", "Yes?")

        assert exc_info.value.node_id == appointment.b.id
        assert len(appointment.store.nodes) == nodes_before
        assert len(appointment.store.edges) == edges_before

    @pytest.mark.parametrize(
        "condition,message,field",
        [("", "Hello", "condition_value"), ("  ", "Hello", "condition_value"), ("yes", "", "ai_message")],
    )
    def test_required_fields(self, store, authoring, condition, message, field):
        with pytest.raises(ValidationError) as exc_info:
            authoring.add_branch(store.root_id, condition, message)

        assert exc_info.value.field == field
        assert len(store.nodes) == 1

    def test_missing_parent_raises_not_found(self, authoring):
        with pytest.raises(NotFoundError):
            authoring.add_branch("ghost", "yes", "Hi")

    def test_start_child_is_rejected(self, store, authoring):
        with pytest.raises(ValidationError) as exc_info:
            authoring.add_branch(store.root_id, "yes", "Hi", NodeType.START)

        assert exc_info.value.field == "node_type"

    def test_extras_follow_the_type(self, store, authoring):
        capture = authoring.add_branch(
            store.root_id, "later", "When suits you?", "capture",
            capture_field="preferred_date", outcome="ignored",
        )
        end = authoring.add_branch(
            store.root_id, "no", "Bye.", NodeType.END,
            capture_field="ignored", outcome="declined",
        )

        assert capture.node.capture_field == "preferred_date"
        assert capture.node.outcome is None
        assert end.node.outcome == "declined"
        assert end.node.capture_field is None

    def test_default_label_is_truncated(self, store, authoring):
        condition = "I would rather talk about this some other time please"

        branch = authoring.add_branch(store.root_id, condition, "Sure.")

        assert branch.node.label == condition[:LABEL_MAX_LENGTH]
        assert branch.edge.condition_value == condition

    def test_failed_edge_insert_rolls_back_node(self, store, authoring, monkeypatch):
        """
        GIVEN an edge insert that fails after the node was inserted
        WHEN a branch is added
        THEN the new node is not left behind
        """
        def boom(edge):
            raise InvariantError("refused")

        monkeypatch.setattr(store, "add_edge", boom)

        with pytest.raises(InvariantError):
            authoring.add_branch(store.root_id, "yes", "Hi")

        assert [n.id for n in store.nodes] == [store.root_id]


class TestDeleteBranch:
    """Tests for removing responses and steps."""

    def test_delete_branch_keeps_child_as_orphan(self, appointment, authoring):
        authoring.delete_branch(appointment.edge_ab.id)

        assert appointment.store.has_node(appointment.b.id)
        assert [n.id for n in orphans(appointment.store.flow)] == [appointment.b.id]

    def test_delete_missing_branch(self, authoring):
        with pytest.raises(NotFoundError):
            authoring.delete_branch("ghost")

    def test_delete_node_detaches_descendants(self, appointment, authoring):
        """
        GIVEN R -> A -> B
        WHEN A is deleted
        THEN both of A's edges go away and B survives as an orphan
        """
        removed = authoring.delete_node(appointment.a.id)

        assert {e.id for e in removed} == {appointment.edge_ra.id, appointment.edge_ab.id}
        assert appointment.store.edges == []
        assert [n.id for n in orphans(appointment.store.flow)] == [appointment.b.id]
