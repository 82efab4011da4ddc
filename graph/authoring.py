from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from core.errors import TerminalNodeError, ValidationError

from .schema import FlowEdge, FlowNode, NodeType, type_extras
from .store import GraphStore

logger = logging.getLogger(__name__)

LABEL_MAX_LENGTH = 30


@dataclass
class Branch:
    node: FlowNode
    edge: FlowEdge


def branch_node_type(
    ends_conversation: bool = False,
    transfer_to_human: bool = False,
    capture_answer: bool = False,
) -> NodeType:
    """Pick the type of a new step from the author's checkboxes."""
    if transfer_to_human:
        return NodeType.TRANSFER
    if ends_conversation:
        return NodeType.END
    if capture_answer:
        return NodeType.CAPTURE
    return NodeType.QUESTION


class BranchAuthoring:
    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def add_branch(
        self,
        parent_id: str,
        condition_value: str,
        ai_message: str,
        node_type: Union[NodeType, str] = NodeType.QUESTION,
        *,
        label: Optional[str] = None,
        outcome: Optional[str] = None,
        capture_field: Optional[str] = None,
    ) -> Branch:
        """Add a customer response to ``parent_id`` and the step it leads to.

        The node and its edge are inserted together: if either insert fails
        the flow is left exactly as it was.
        """
        parent = self.store.get_node(parent_id)
        if parent.is_terminal:
            raise TerminalNodeError(
                f"Cannot add a response after a '{parent.node_type.value}' step",
                node_id=parent_id,
            )

        condition_value = (condition_value or "").strip()
        ai_message = (ai_message or "").strip()
        if not condition_value:
            raise ValidationError("Customer response is required", field="condition_value")
        if not ai_message:
            raise ValidationError("AI message is required", field="ai_message")

        node_type = NodeType.from_string(node_type)
        if node_type is NodeType.START:
            raise ValidationError("Only the root can be a start step", field="node_type")

        node = FlowNode(
            label=(label or condition_value)[:LABEL_MAX_LENGTH],
            ai_message=ai_message,
            node_type=node_type,
            **type_extras(node_type, outcome, capture_field),
        )
        edge = FlowEdge(
            from_node_id=parent_id,
            to_node_id=node.id,
            condition_value=condition_value,
        )

        with self.store.transaction():
            self.store.add_node(node)
            self.store.add_edge(edge)

        logger.info(f"Added branch {condition_value!r} under {parent_id} -> {node.id} ({node_type.value})")
        return Branch(node=node, edge=edge)

    def delete_branch(self, edge_id: str) -> FlowEdge:
        """Remove only the response; the step it led to stays, possibly orphaned."""
        edge = self.store.remove_edge(edge_id)
        logger.info(f"Deleted branch {edge_id}")
        return edge

    def delete_node(self, node_id: str) -> List[FlowEdge]:
        """Remove a step and its incident responses. Descendants are detached, not deleted."""
        removed = self.store.remove_node(node_id)
        logger.info(f"Deleted node {node_id} ({len(removed)} response(s) detached)")
        return removed
