from __future__ import annotations

from collections import deque
from typing import List, Optional, Set

import networkx as nx

from .builder import build_nx_graph
from .schema import FieldWarning, Flow, FlowNode, NodeType, ValidationReport
from .toposort import detect_loops

CAPTURE_FIELD_MISSING = "capture field missing"
OUTCOME_MISSING = "outcome tag missing"


def reachable_from(flow: Flow, root_id: Optional[str]) -> Set[str]:
    """Ids of every node reachable from ``root_id``, the root included."""
    if root_id is None or root_id not in flow.nodes:
        return set()
    return _reachable_from(build_nx_graph(flow), root_id)


def _reachable_from(g: nx.MultiDiGraph, start: str) -> Set[str]:
    # breadth-first; the visited set keeps loops from being walked twice
    visited = {start}
    queue = deque([start])
    while queue:
        cur = queue.popleft()
        for nb in g.successors(cur):
            if nb not in visited:
                visited.add(nb)
                queue.append(nb)
    return visited


def orphans(flow: Flow) -> List[FlowNode]:
    """Nodes no path of responses leads to. Without a root, every node is an orphan."""
    root = flow.root
    connected = reachable_from(flow, root.id if root else None)
    return [n for n in flow.nodes.values() if n.id not in connected]


def field_warnings(node: FlowNode) -> List[FieldWarning]:
    warnings: List[FieldWarning] = []
    node_type = node.node_type
    if node_type is NodeType.CAPTURE:
        if not node.capture_field:
            warnings.append(FieldWarning(node.id, "capture_field", CAPTURE_FIELD_MISSING))
    elif node_type is NodeType.END or node_type is NodeType.TRANSFER:
        if not node.outcome:
            warnings.append(FieldWarning(node.id, "outcome", OUTCOME_MISSING))
    elif (
        node_type is NodeType.START
        or node_type is NodeType.QUESTION
        or node_type is NodeType.STATEMENT
    ):
        pass
    else:
        raise ValueError(f"Unhandled node type: {node_type!r}")
    return warnings


def structural_errors(flow: Flow) -> List[str]:
    """Rule violations in data that did not come through the store (e.g. loaded JSON)."""
    errors: List[str] = []

    roots = [n.id for n in flow.nodes.values() if n.is_root]
    if not roots and flow.nodes:
        errors.append("Flow has no root node")
    elif len(roots) > 1:
        errors.append(f"Flow has more than one root node: {sorted(roots)}")

    for edge in flow.edges.values():
        missing = [nid for nid in (edge.from_node_id, edge.to_node_id) if nid not in flow.nodes]
        if missing:
            errors.append(f"Edge {edge.id} references missing node(s): {missing}")
            continue
        if flow.nodes[edge.to_node_id].is_root:
            errors.append(f"Edge {edge.id} points into the root node")
        source = flow.nodes[edge.from_node_id]
        if source.is_terminal:
            errors.append(f"Edge {edge.id} leaves '{source.node_type.value}' node {source.id}")

    return errors


def validate_flow(flow: Flow) -> ValidationReport:
    errors = structural_errors(flow)

    root = flow.root
    root_id = root.id if root else None
    connected = reachable_from(flow, root_id)

    warnings: List[FieldWarning] = []
    for node in flow.nodes.values():
        warnings.extend(field_warnings(node))

    g = build_nx_graph(flow)
    loops = detect_loops(g)

    return ValidationReport(
        ok=len(errors) == 0,
        root_id=root_id,
        connected=[nid for nid in flow.nodes if nid in connected],
        orphans=[nid for nid in flow.nodes if nid not in connected],
        warnings=warnings,
        errors=errors,
        loop_nodes=loops.cyclic_nodes,
    )

