"""
Graph package for call-flow authoring, validation and traversal
"""

from .schema import (
    NodeType, FlowNode, FlowEdge, Flow,
    FieldWarning, CycleDetectionResult, ValidationReport,
)
from .store import GraphStore
from .validator import reachable_from, orphans, field_warnings, structural_errors, validate_flow
from .traversal import TraversalEngine, PathSelector, TranscriptEntry, TerminalState
from .authoring import BranchAuthoring, Branch, branch_node_type
from .commands import (
    AddNode, UpdateNode, DeleteNode, AddEdge, DeleteEdge,
    AddBranch, DeleteBranch, UpdateFlowMeta, FlowDiff, apply_command,
)
from .placeholders import extract_placeholders, flow_variables, match_contact_fields, render_message, FieldMatch
from .toposort import detect_loops
from .preprocess import load_json, normalize_raw_to_flow
from .builder import build_nx_graph, export_graph_info
from .visualize import draw_flow

__all__ = [
    'NodeType', 'FlowNode', 'FlowEdge', 'Flow',
    'FieldWarning', 'CycleDetectionResult', 'ValidationReport',
    'GraphStore',
    'reachable_from', 'orphans', 'field_warnings', 'structural_errors', 'validate_flow',
    'TraversalEngine', 'PathSelector', 'TranscriptEntry', 'TerminalState',
    'BranchAuthoring', 'Branch', 'branch_node_type',
    'AddNode', 'UpdateNode', 'DeleteNode', 'AddEdge', 'DeleteEdge',
    'AddBranch', 'DeleteBranch', 'UpdateFlowMeta', 'FlowDiff', 'apply_command',
    'extract_placeholders', 'flow_variables', 'match_contact_fields', 'render_message', 'FieldMatch',
    'detect_loops',
    'load_json', 'normalize_raw_to_flow',
    'build_nx_graph', 'export_graph_info',
    'draw_flow',
]
