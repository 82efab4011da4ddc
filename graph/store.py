from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.errors import InvariantError, NotFoundError, ValidationError

from .schema import Flow, FlowEdge, FlowNode, NodeType, type_extras

logger = logging.getLogger(__name__)

# Fields an update may touch; id and is_root are fixed at creation.
NODE_PATCH_FIELDS = (
    "label",
    "ai_message",
    "node_type",
    "outcome",
    "capture_field",
    "position_x",
    "position_y",
)


def _as_validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    loc = first.get("loc") or ()
    return ValidationError(
        first.get("msg", str(exc)),
        field=str(loc[0]) if loc else None,
    )


def _check_root_type(node: FlowNode) -> None:
    # only the root is a start step, and the root never ends the call
    if node.is_root and node.node_type.is_terminal:
        raise ValidationError(
            f"The root step cannot be '{node.node_type.value}'",
            field="node_type",
            node_id=node.id,
        )
    if not node.is_root and node.node_type is NodeType.START:
        raise ValidationError(
            "Only the root can be a start step",
            field="node_type",
            node_id=node.id,
        )


class GraphStore:
    """In-memory node/edge store for one flow.

    Every mutation either applies completely or raises and leaves the flow
    untouched. Nodes and edges keep insertion order, which is the order
    customer responses are listed in.
    """

    def __init__(self, flow: Flow) -> None:
        self.flow = flow

    # ========================================
    # Queries
    # ========================================

    @property
    def flow_id(self) -> str:
        return self.flow.id

    @property
    def root_id(self) -> Optional[str]:
        root = self.flow.root
        return root.id if root else None

    @property
    def nodes(self) -> List[FlowNode]:
        return list(self.flow.nodes.values())

    @property
    def edges(self) -> List[FlowEdge]:
        return list(self.flow.edges.values())

    def has_node(self, node_id: str) -> bool:
        return node_id in self.flow.nodes

    def get_node(self, node_id: str) -> FlowNode:
        node = self.flow.nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node not found: {node_id}", node_id=node_id)
        return node

    def get_edge(self, edge_id: str) -> FlowEdge:
        edge = self.flow.edges.get(edge_id)
        if edge is None:
            raise NotFoundError(f"Edge not found: {edge_id}", edge_id=edge_id)
        return edge

    def outgoing_edges(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.flow.edges.values() if e.from_node_id == node_id]

    def incoming_edges(self, node_id: str) -> List[FlowEdge]:
        return [e for e in self.flow.edges.values() if e.to_node_id == node_id]

    # ========================================
    # Node mutations
    # ========================================

    def add_node(self, node: FlowNode) -> str:
        if node.id in self.flow.nodes:
            raise ValidationError(f"Duplicate node id: {node.id}", field="id", node_id=node.id)
        if node.is_root and self.root_id is not None:
            raise ValidationError(
                "Flow already has a root node",
                field="is_root",
                node_id=node.id,
            )
        _check_root_type(node)
        if node.outcome or node.capture_field:
            node = node.model_copy(update=type_extras(node.node_type, node.outcome, node.capture_field))
        self.flow.nodes[node.id] = node
        logger.debug(f"Added node {node.id} ({node.node_type.value}) to flow {self.flow_id}")
        return node.id

    def update_node(self, node_id: str, patch: Dict[str, Any]) -> FlowNode:
        node = self.get_node(node_id)

        unknown = [k for k in patch if k not in NODE_PATCH_FIELDS]
        if unknown:
            raise ValidationError(
                f"Field cannot be updated: {unknown[0]}",
                field=unknown[0],
                node_id=node_id,
            )

        data = node.model_dump()
        data.update(patch)
        try:
            updated = FlowNode.model_validate(data)
        except PydanticValidationError as e:
            err = _as_validation_error(e)
            err.node_id = node_id
            raise err from e

        _check_root_type(updated)
        if updated.node_type.is_terminal and self.outgoing_edges(node_id):
            raise InvariantError(
                f"Node {node_id} has responses and cannot become '{updated.node_type.value}'",
                field="node_type",
                node_id=node_id,
            )

        updated = updated.model_copy(
            update=type_extras(updated.node_type, updated.outcome, updated.capture_field)
        )
        self.flow.nodes[node_id] = updated
        logger.debug(f"Updated node {node_id}: {sorted(patch)}")
        return updated

    def remove_node(self, node_id: str) -> List[FlowEdge]:
        """Remove a node and every edge touching it. Returns the removed edges."""
        node = self.get_node(node_id)
        incident = [
            e for e in self.flow.edges.values()
            if e.from_node_id == node_id or e.to_node_id == node_id
        ]
        if node.is_root and incident:
            raise InvariantError(
                "Root node cannot be removed while it still has responses",
                node_id=node_id,
            )

        for edge in incident:
            del self.flow.edges[edge.id]
        del self.flow.nodes[node_id]
        logger.debug(f"Removed node {node_id} and {len(incident)} edge(s)")
        return incident

    # ========================================
    # Edge mutations
    # ========================================

    def add_edge(self, edge: FlowEdge) -> str:
        if edge.id in self.flow.edges:
            raise ValidationError(f"Duplicate edge id: {edge.id}", field="id", edge_id=edge.id)
        if not edge.condition_value:
            raise ValidationError(
                "Customer response is required",
                field="condition_value",
                edge_id=edge.id,
            )

        source = self.flow.nodes.get(edge.from_node_id)
        if source is None:
            raise NotFoundError(
                f"Source node not found: {edge.from_node_id}",
                field="from_node_id",
                node_id=edge.from_node_id,
                edge_id=edge.id,
            )
        target = self.flow.nodes.get(edge.to_node_id)
        if target is None:
            raise NotFoundError(
                f"Target node not found: {edge.to_node_id}",
                field="to_node_id",
                node_id=edge.to_node_id,
                edge_id=edge.id,
            )

        if source.is_terminal:
            raise InvariantError(
                f"'{source.node_type.value}' node {source.id} cannot have responses",
                field="from_node_id",
                node_id=source.id,
                edge_id=edge.id,
            )
        if target.is_root:
            raise InvariantError(
                "Root node cannot be the target of a response",
                field="to_node_id",
                node_id=target.id,
                edge_id=edge.id,
            )

        self.flow.edges[edge.id] = edge
        logger.debug(f"Added edge {edge.id}: {edge.from_node_id} --{edge.condition_value!r}--> {edge.to_node_id}")
        return edge.id

    def remove_edge(self, edge_id: str) -> FlowEdge:
        edge = self.get_edge(edge_id)
        del self.flow.edges[edge_id]
        logger.debug(f"Removed edge {edge_id}")
        return edge

    # ========================================
    # Flow metadata
    # ========================================

    def update_meta(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Flow name is required", field="name")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description.strip()
        if is_active is not None:
            changes["is_active"] = bool(is_active)

        for key, value in changes.items():
            setattr(self.flow, key, value)
        return changes

    # ========================================
    # Atomicity
    # ========================================

    @contextmanager
    def transaction(self) -> Iterator["GraphStore"]:
        """Run several mutations as one; on any error the flow is restored."""
        # Nodes and edges are replaced rather than mutated, so shallow copies suffice.
        nodes = dict(self.flow.nodes)
        edges = dict(self.flow.edges)
        meta = (self.flow.name, self.flow.description, self.flow.is_active)
        try:
            yield self
        except Exception:
            self.flow.nodes = nodes
            self.flow.edges = edges
            self.flow.name, self.flow.description, self.flow.is_active = meta
            logger.debug(f"Rolled back transaction on flow {self.flow_id}")
            raise
