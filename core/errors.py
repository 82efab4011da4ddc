from __future__ import annotations

from typing import Any, Dict, Optional


class FlowError(Exception):
    """Base class for all conversation flow errors.

    Every error carries enough context for a caller to point at the offending
    field, node or edge instead of parsing the message text.
    """

    code = "flow_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.node_id = node_id
        self.edge_id = edge_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "field": self.field,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
        }


class ValidationError(FlowError):
    """Malformed input: empty required field, duplicate root, unknown node type."""

    code = "validation_error"


class NotFoundError(FlowError):
    """Reference to a node, edge or flow that does not exist."""

    code = "not_found"


class InvariantError(FlowError):
    """Operation would break a structural rule of the flow graph."""

    code = "invariant_violation"


class InvalidTransitionError(FlowError):
    """Traversal attempted with an edge that does not start at the current node."""

    code = "invalid_transition"


class TerminalNodeError(FlowError):
    """Branch authoring attempted on an end or transfer node."""

    code = "terminal_node"


class PersistenceError(FlowError):
    """The persistence backend failed."""

    code = "persistence_error"
