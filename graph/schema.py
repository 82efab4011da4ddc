from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from core.errors import ValidationError


# ============================================================================
# Base Configuration
# ============================================================================

class BaseConfig(BaseModel):
    """Base configuration with common settings"""
    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        validate_assignment=True,
    )


def new_id() -> str:
    return str(uuid4())


# ============================================================================
# Node Types
# ============================================================================

class NodeType(str, Enum):
    """Closed set of step kinds in a call script"""
    START = "start"
    QUESTION = "question"
    STATEMENT = "statement"
    END = "end"
    TRANSFER = "transfer"
    CAPTURE = "capture"

    @classmethod
    def from_string(cls, value: Any) -> "NodeType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown node type: {value!r}", field="node_type") from None

    @property
    def is_terminal(self) -> bool:
        """End and transfer nodes close the conversation and take no children."""
        if self is NodeType.END or self is NodeType.TRANSFER:
            return True
        if (
            self is NodeType.START
            or self is NodeType.QUESTION
            or self is NodeType.STATEMENT
            or self is NodeType.CAPTURE
        ):
            return False
        raise ValueError(f"Unhandled node type: {self!r}")

    @property
    def uses_outcome(self) -> bool:
        return self.is_terminal

    @property
    def uses_capture_field(self) -> bool:
        return self is NodeType.CAPTURE


def type_extras(node_type: NodeType, outcome: Optional[str], capture_field: Optional[str]) -> Dict[str, Optional[str]]:
    """Keep only the type-specific extras that mean something for ``node_type``."""
    return {
        "outcome": (outcome or None) if node_type.uses_outcome else None,
        "capture_field": (capture_field or None) if node_type.uses_capture_field else None,
    }


# ============================================================================
# Flow Graph
# ============================================================================

class FlowNode(BaseConfig):
    """One scripted step: what the agent says at this point of the call"""
    id: str = Field(default_factory=new_id, frozen=True)
    label: str = ""
    ai_message: str = ""
    node_type: NodeType = NodeType.QUESTION
    is_root: bool = False
    outcome: Optional[str] = None
    capture_field: Optional[str] = None

    # Presentation only
    position_x: float = 0.0
    position_y: float = 0.0

    @field_validator("node_type", mode="before")
    @classmethod
    def validate_node_type(cls, v):
        return NodeType.from_string(v)

    @field_validator("outcome", "capture_field", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_terminal(self) -> bool:
        return self.node_type.is_terminal


class FlowEdge(BaseConfig):
    """Transition selected by a customer response"""
    id: str = Field(default_factory=new_id, frozen=True)
    from_node_id: str
    to_node_id: str
    condition_value: str
    label: str = Field(default="", validate_default=True)

    @field_validator("label")
    @classmethod
    def default_label(cls, v: str, info: ValidationInfo) -> str:
        return v or info.data.get("condition_value", "")


class Flow(BaseConfig):
    """A complete branching call script"""
    id: str = Field(default_factory=new_id, frozen=True)
    name: str
    description: str = ""
    is_active: bool = True
    nodes: Dict[str, FlowNode] = Field(default_factory=dict)
    edges: Dict[str, FlowEdge] = Field(default_factory=dict)

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def index_by_id(cls, v):
        # wire form is a list of objects
        if isinstance(v, list):
            indexed: Dict[str, Any] = {}
            for item in v:
                if not isinstance(item, BaseModel):
                    item = dict(item)
                    item.setdefault("id", new_id())
                item_id = item.id if isinstance(item, BaseModel) else item["id"]
                if item_id in indexed:
                    raise ValueError(f"duplicate id {item_id!r}")
                indexed[item_id] = item
            return indexed
        return v

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Flow name is required")
        return v

    @classmethod
    def new(
        cls,
        name: str,
        description: str = "",
        root_message: str = "Hello, this is an automated call.",
        root_label: str = "Start",
        root_type: NodeType = NodeType.START,
    ) -> "Flow":
        """Create an empty flow holding only its root step."""
        root_type = NodeType.from_string(root_type)
        if root_type.is_terminal:
            raise ValidationError("The root step cannot end the call", field="node_type")
        root = FlowNode(label=root_label, ai_message=root_message, node_type=root_type, is_root=True)
        return cls(name=name, description=description, nodes={root.id: root})

    @property
    def root(self) -> Optional[FlowNode]:
        for node in self.nodes.values():
            if node.is_root:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Wire form with nodes and edges as lists."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "nodes": [n.model_dump(mode="json") for n in self.nodes.values()],
            "edges": [e.model_dump(mode="json") for e in self.edges.values()],
        }


# ============================================================================
# Reports
# ============================================================================

@dataclass
class FieldWarning:
    node_id: str
    field: str
    message: str


@dataclass
class CycleDetectionResult:
    success: bool
    order: List[str]
    cyclic_nodes: List[str]
    start_nodes: List[str] = field(default_factory=list)
    end_nodes: List[str] = field(default_factory=list)


@dataclass
class ValidationReport:
    ok: bool
    root_id: Optional[str] = None
    connected: List[str] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)
    warnings: List[FieldWarning] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    loop_nodes: List[str] = field(default_factory=list)

    @property
    def has_loops(self) -> bool:
        return bool(self.loop_nodes)
