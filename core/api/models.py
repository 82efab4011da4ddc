from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from graph.schema import FlowEdge, FlowNode


# ----------------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------------

class CreateFlowReq(BaseModel):
    name: str
    description: str = ""
    root_message: Optional[str] = None
    root_label: str = "Start"
    root_type: str = "start"


class UpdateFlowReq(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CreateNodeReq(BaseModel):
    label: str = ""
    ai_message: str = ""
    node_type: str = "question"
    outcome: Optional[str] = None
    capture_field: Optional[str] = None
    position_x: float = 0.0
    position_y: float = 0.0


class UpdateNodeReq(BaseModel):
    label: Optional[str] = None
    ai_message: Optional[str] = None
    node_type: Optional[str] = None
    outcome: Optional[str] = None
    capture_field: Optional[str] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None


class CreateEdgeReq(BaseModel):
    from_node_id: str
    to_node_id: str
    condition_value: str
    label: str = ""


class AddBranchReq(BaseModel):
    condition_value: str
    ai_message: str
    node_type: Optional[str] = None
    ends_conversation: bool = False
    transfer_to_human: bool = False
    capture_answer: bool = False
    label: Optional[str] = None
    outcome: Optional[str] = None
    capture_field: Optional[str] = None


class FieldMatchReq(BaseModel):
    fields: List[str]


class StartPreviewReq(BaseModel):
    contact: Dict[str, Any] = Field(default_factory=dict)


class AdvancePreviewReq(BaseModel):
    edge_id: str


class RespondPreviewReq(BaseModel):
    text: str


# ----------------------------------------------------------------------------
# Responses
# ----------------------------------------------------------------------------

class FlowSummary(BaseModel):
    id: str
    name: str
    description: str
    is_active: bool
    node_count: int
    edge_count: int


class FlowDetail(BaseModel):
    id: str
    name: str
    description: str
    is_active: bool
    nodes: List[FlowNode]
    edges: List[FlowEdge]


class DiffRes(BaseModel):
    added_nodes: List[FlowNode] = Field(default_factory=list)
    updated_nodes: List[FlowNode] = Field(default_factory=list)
    removed_node_ids: List[str] = Field(default_factory=list)
    added_edges: List[FlowEdge] = Field(default_factory=list)
    removed_edge_ids: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)


class WarningItem(BaseModel):
    node_id: str
    field: str
    message: str


class ValidationRes(BaseModel):
    ok: bool
    root_id: Optional[str] = None
    connected: List[str] = Field(default_factory=list)
    orphans: List[str] = Field(default_factory=list)
    warnings: List[WarningItem] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    loop_nodes: List[str] = Field(default_factory=list)


class VariablesRes(BaseModel):
    variables: List[str]


class FieldMatchRes(BaseModel):
    matched: List[str]
    missing: List[str]
    extra: List[str]
    is_compatible: bool


class Message(BaseModel):
    role: str
    text: str
    node_id: Optional[str] = None


class TerminalInfo(BaseModel):
    reason: str
    banner: str
    outcome: Optional[str] = None


class PreviewRes(BaseModel):
    preview_id: str
    flow_id: str
    current: Optional[FlowNode] = None
    transcript: List[Message] = Field(default_factory=list)
    choices: List[FlowEdge] = Field(default_factory=list)
    terminal: Optional[TerminalInfo] = None
    matched: bool = True
