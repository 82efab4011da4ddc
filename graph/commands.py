from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.errors import ValidationError

from .authoring import BranchAuthoring
from .schema import FlowEdge, FlowNode, NodeType
from .store import GraphStore

logger = logging.getLogger(__name__)


# ============================================================================
# Commands
# ============================================================================

@dataclass(frozen=True)
class AddNode:
    node: FlowNode


@dataclass(frozen=True)
class UpdateNode:
    node_id: str
    patch: Dict[str, Any]


@dataclass(frozen=True)
class DeleteNode:
    node_id: str


@dataclass(frozen=True)
class AddEdge:
    edge: FlowEdge


@dataclass(frozen=True)
class DeleteEdge:
    edge_id: str


@dataclass(frozen=True)
class AddBranch:
    parent_id: str
    condition_value: str
    ai_message: str
    node_type: Union[NodeType, str] = NodeType.QUESTION
    label: Optional[str] = None
    outcome: Optional[str] = None
    capture_field: Optional[str] = None


@dataclass(frozen=True)
class DeleteBranch:
    edge_id: str


@dataclass(frozen=True)
class UpdateFlowMeta:
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


Command = Union[AddNode, UpdateNode, DeleteNode, AddEdge, DeleteEdge, AddBranch, DeleteBranch, UpdateFlowMeta]


# ============================================================================
# Diff
# ============================================================================

@dataclass
class FlowDiff:
    """What a command changed, in the order the changes must be persisted."""
    added_nodes: List[FlowNode] = field(default_factory=list)
    updated_nodes: List[FlowNode] = field(default_factory=list)
    removed_node_ids: List[str] = field(default_factory=list)
    added_edges: List[FlowEdge] = field(default_factory=list)
    removed_edge_ids: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_nodes
            or self.updated_nodes
            or self.removed_node_ids
            or self.added_edges
            or self.removed_edge_ids
            or self.meta
        )


def apply_command(store: GraphStore, command: Command) -> FlowDiff:
    """Apply one command to the in-memory flow and describe the change."""
    diff = FlowDiff()

    if isinstance(command, AddNode):
        node_id = store.add_node(command.node)
        diff.added_nodes.append(store.get_node(node_id))
    elif isinstance(command, UpdateNode):
        diff.updated_nodes.append(store.update_node(command.node_id, command.patch))
    elif isinstance(command, DeleteNode):
        removed = BranchAuthoring(store).delete_node(command.node_id)
        diff.removed_edge_ids.extend(e.id for e in removed)
        diff.removed_node_ids.append(command.node_id)
    elif isinstance(command, AddEdge):
        store.add_edge(command.edge)
        diff.added_edges.append(command.edge)
    elif isinstance(command, DeleteEdge):
        diff.removed_edge_ids.append(store.remove_edge(command.edge_id).id)
    elif isinstance(command, AddBranch):
        branch = BranchAuthoring(store).add_branch(
            command.parent_id,
            command.condition_value,
            command.ai_message,
            command.node_type,
            label=command.label,
            outcome=command.outcome,
            capture_field=command.capture_field,
        )
        diff.added_nodes.append(branch.node)
        diff.added_edges.append(branch.edge)
    elif isinstance(command, DeleteBranch):
        diff.removed_edge_ids.append(BranchAuthoring(store).delete_branch(command.edge_id).id)
    elif isinstance(command, UpdateFlowMeta):
        diff.meta = store.update_meta(command.name, command.description, command.is_active)
    else:
        raise ValidationError(f"Unknown command: {type(command).__name__}")

    logger.debug(f"Applied {type(command).__name__} to flow {store.flow_id}")
    return diff
