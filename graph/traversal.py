from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from core.errors import InvalidTransitionError, NotFoundError, ValidationError

from .placeholders import render_message
from .schema import FlowEdge, FlowNode, NodeType
from .store import GraphStore

logger = logging.getLogger(__name__)

ROLE_AI = "ai"
ROLE_CUSTOMER = "customer"


@dataclass
class TranscriptEntry:
    role: str
    text: str
    node_id: Optional[str] = None


@dataclass
class TerminalState:
    node_id: str
    reason: str
    banner: str
    outcome: Optional[str] = None


def terminal_banner(node: FlowNode, has_responses: bool) -> Optional[TerminalState]:
    node_type = node.node_type
    if node_type is NodeType.END:
        reason, banner = "ended", "call ended"
    elif node_type is NodeType.TRANSFER:
        reason, banner = "transferred", "transferred"
    elif (
        node_type is NodeType.START
        or node_type is NodeType.QUESTION
        or node_type is NodeType.STATEMENT
        or node_type is NodeType.CAPTURE
    ):
        if has_responses:
            return None
        reason, banner = "no_responses", "no responses defined"
    else:
        raise ValueError(f"Unhandled node type: {node_type!r}")

    if node.outcome:
        banner = f"{banner} · {node.outcome}"
    return TerminalState(node_id=node.id, reason=reason, banner=banner, outcome=node.outcome)


class TraversalEngine:
    """Walks a flow one chosen response at a time.

    The engine only reads from the store. Its position and transcript live
    here, so edits to the graph never touch them directly; ``sync`` repairs
    the position when the current node has been deleted underneath it.
    """

    def __init__(
        self,
        store: GraphStore,
        record_transcript: bool = True,
        contact: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.store = store
        self.record_transcript = record_transcript
        self.contact: Dict[str, Any] = dict(contact or {})
        self.current_node_id: Optional[str] = None
        self._transcript: List[TranscriptEntry] = []

    # ========================================
    # State
    # ========================================

    @property
    def is_started(self) -> bool:
        return self.current_node_id is not None

    @property
    def transcript(self) -> List[TranscriptEntry]:
        return list(self._transcript)

    @property
    def current_node(self) -> Optional[FlowNode]:
        self.sync()
        if self.current_node_id is None:
            return None
        return self.store.get_node(self.current_node_id)

    def reset(self, root_id: Optional[str] = None) -> FlowNode:
        """Point back at the root and start a fresh transcript."""
        root_id = root_id or self.store.root_id
        if root_id is None:
            raise NotFoundError("Flow has no root node")
        root = self.store.get_node(root_id)

        self.current_node_id = root.id
        self._transcript = []
        self._say(root)
        return root

    start = reset

    def sync(self) -> bool:
        """Reset if the current node was removed by an edit. Returns True when it had to."""
        if self.current_node_id is None or self.store.has_node(self.current_node_id):
            return False

        logger.warning(
            f"Current node {self.current_node_id} no longer exists in flow "
            f"{self.store.flow_id}; resetting"
        )
        if self.store.root_id is None:
            self.current_node_id = None
            self._transcript = []
        else:
            self.reset()
        return True

    # ========================================
    # Transitions
    # ========================================

    def outgoing_edges(self, node_id: Optional[str] = None) -> List[FlowEdge]:
        node_id = node_id or self.current_node_id
        if node_id is None:
            return []
        return self.store.outgoing_edges(node_id)

    def choices(self) -> List[FlowEdge]:
        """Responses the customer can give right now; none once the call is over."""
        self.sync()
        if self.current_node_id is None or self.is_terminal():
            return []
        return self.outgoing_edges()

    def advance(self, edge: Union[FlowEdge, str]) -> FlowNode:
        self.sync()
        if isinstance(edge, str):
            edge = self.store.get_edge(edge)

        if self.current_node_id is None:
            raise InvalidTransitionError("Traversal has not been started", edge_id=edge.id)
        if edge.from_node_id != self.current_node_id:
            raise InvalidTransitionError(
                f"Edge {edge.id} does not start at the current node {self.current_node_id}",
                node_id=self.current_node_id,
                edge_id=edge.id,
            )

        target = self.store.get_node(edge.to_node_id)
        self.current_node_id = target.id
        if self.record_transcript:
            self._transcript.append(TranscriptEntry(ROLE_CUSTOMER, edge.condition_value))
        self._say(target)
        logger.debug(f"Advanced via {edge.condition_value!r} to {target.id}")
        return target

    # ========================================
    # Terminal detection
    # ========================================

    def is_terminal(self, node_id: Optional[str] = None) -> bool:
        node_id = node_id or self.current_node_id
        if node_id is None:
            return False
        node = self.store.get_node(node_id)
        return node.is_terminal or not self.store.outgoing_edges(node_id)

    def terminal_state(self) -> Optional[TerminalState]:
        node = self.current_node
        if node is None:
            return None
        return terminal_banner(node, bool(self.store.outgoing_edges(node.id)))

    def _say(self, node: FlowNode) -> None:
        if self.record_transcript:
            self._transcript.append(
                TranscriptEntry(ROLE_AI, render_message(node.ai_message, self.contact), node.id)
            )


class PathSelector:
    """Per-node branch choice for the authoring view ("which response am I looking at").

    Purely view state: selecting a branch never changes the graph.
    """

    def __init__(self, store: GraphStore) -> None:
        self.store = store
        self._selected: Dict[str, int] = {}

    def select(self, node_id: str, index: int) -> None:
        edges = self.store.outgoing_edges(self.store.get_node(node_id).id)
        if not 0 <= index < len(edges):
            raise ValidationError(
                f"Branch index {index} out of range for node {node_id}",
                field="index",
                node_id=node_id,
            )
        self._selected[node_id] = index

    def selected_index(self, node_id: str) -> int:
        return self._selected.get(node_id, 0)

    def selected_path(self) -> List[FlowNode]:
        """Steps from the root following the selected branch at each node."""
        if self.store.root_id is None:
            return []
        engine = TraversalEngine(self.store, record_transcript=False)
        path = [engine.reset()]
        seen = {path[0].id}

        while not engine.is_terminal():
            edges = engine.outgoing_edges()
            idx = self.selected_index(engine.current_node_id)
            if idx >= len(edges):
                idx = 0
            edge = edges[idx]
            if edge.to_node_id in seen:
                break  # loops back
            node = engine.advance(edge)
            seen.add(node.id)
            path.append(node)
        return path
