from __future__ import annotations

from typing import Any, Dict, List

import networkx as nx

from .schema import Flow
from .toposort import detect_loops


def build_nx_graph(flow: Flow) -> nx.MultiDiGraph:
    """Directed multigraph of a flow; parallel responses between two steps are keyed by edge id."""
    g: nx.MultiDiGraph = nx.MultiDiGraph()

    # add nodes
    for node_id, node in flow.nodes.items():
        g.add_node(
            node_id,
            label=node.label,
            node_type=node.node_type.value,
            is_root=node.is_root,
        )

    # add edges (dangling endpoints are left to the validator)
    for edge_id, edge in flow.edges.items():
        if edge.from_node_id not in g or edge.to_node_id not in g:
            continue
        g.add_edge(
            edge.from_node_id,
            edge.to_node_id,
            key=edge_id,
            condition_value=edge.condition_value,
            label=edge.label,
        )

    return g


def export_graph_info(flow: Flow) -> Dict[str, Any]:
    g = build_nx_graph(flow)

    nodes_payload = []
    for node in g.nodes():
        attrs = dict(g.nodes[node])
        nodes_payload.append({"id": node, **attrs})

    edges_payload = []
    for u, v, key, attrs in g.edges(keys=True, data=True):
        edges_payload.append({"id": key, "from": u, "to": v, **attrs})

    cycle_result = detect_loops(g)
    graph_stats = {
        "nodes": g.number_of_nodes(),
        "edges": g.number_of_edges(),
        "is_dag": cycle_result.success,
    }

    type_groups: Dict[str, List[str]] = {}
    for node_id, node in flow.nodes.items():
        type_groups.setdefault(node.node_type.value, []).append(node_id)

    return {
        "nodes": nodes_payload,
        "edges": edges_payload,
        "graph_stats": graph_stats,
        "type_groups": type_groups,
    }
