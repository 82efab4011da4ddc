from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List, Tuple

import networkx as nx

from .builder import build_nx_graph
from .schema import Flow, NodeType
from .validator import reachable_from

logger = logging.getLogger(__name__)


def node_color(node_type: NodeType) -> str:
    if node_type is NodeType.START:
        return "#90EE90"
    if node_type is NodeType.QUESTION:
        return "#87CEEB"
    if node_type is NodeType.STATEMENT:
        return "#DDA0DD"
    if node_type is NodeType.END:
        return "#FFA07A"
    if node_type is NodeType.TRANSFER:
        return "#F4A460"
    if node_type is NodeType.CAPTURE:
        return "#7FDBDA"
    raise ValueError(f"Unhandled node type: {node_type!r}")


def _depth_layered_layout(flow: Flow, g: nx.MultiDiGraph) -> Dict[str, Tuple[float, float]]:
    # Columns by BFS depth from the root; orphans get the last column
    depth: Dict[str, int] = {}
    root = flow.root
    if root is not None:
        depth[root.id] = 0
        q = deque([root.id])
        while q:
            cur = q.popleft()
            for nb in g.successors(cur):
                if nb not in depth:
                    depth[nb] = depth[cur] + 1
                    q.append(nb)

    orphan_col = (max(depth.values()) + 1) if depth else 0
    grouped: Dict[int, List[str]] = {}
    for n in flow.nodes:
        grouped.setdefault(depth.get(n, orphan_col), []).append(n)

    pos: Dict[str, Tuple[float, float]] = {}
    col_gap = 3.0
    row_gap = 1.5
    for col, nodes in sorted(grouped.items()):
        x = col * col_gap
        offset = (len(nodes) - 1) * row_gap / 2.0
        for i, n in enumerate(nodes):
            pos[n] = (x, -offset + i * row_gap)
    return pos


def draw_flow(flow: Flow, save_path: str) -> None:
    """Render the flow to an image; orphaned steps are drawn faded."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    from matplotlib.patches import Patch

    g = build_nx_graph(flow)
    pos = _depth_layered_layout(flow, g)
    dg = nx.DiGraph(g)

    root = flow.root
    connected = reachable_from(flow, root.id if root else None)
    connected_nodes = [n for n in g.nodes() if n in connected]
    orphan_nodes = [n for n in g.nodes() if n not in connected]

    labels = {n: (flow.nodes[n].label or n[:8]) for n in g.nodes()}

    plt.figure(figsize=(16, 10))

    if orphan_nodes:
        nx.draw_networkx_nodes(
            dg, pos, nodelist=orphan_nodes,
            node_color="#D3D3D3", alpha=0.5, node_size=1800,
            edgecolors="#BBBBBB", linewidths=1.5,
        )
    if connected_nodes:
        nx.draw_networkx_nodes(
            dg, pos, nodelist=connected_nodes,
            node_color=[node_color(flow.nodes[n].node_type) for n in connected_nodes],
            node_size=2000, edgecolors="#444444", linewidths=2,
        )

    edges_connected = [(u, v) for u, v in dg.edges() if u in connected]
    edges_faded = [(u, v) for u, v in dg.edges() if u not in connected]
    if edges_faded:
        nx.draw_networkx_edges(
            dg, pos, edgelist=edges_faded, arrows=True, arrowstyle="-|>",
            arrowsize=18, width=2.0, edge_color="#AAAAAA", style="dashed",
            connectionstyle="arc3,rad=0.06",
        )
    if edges_connected:
        nx.draw_networkx_edges(
            dg, pos, edgelist=edges_connected, arrows=True, arrowstyle="-|>",
            arrowsize=22, width=2.6, edge_color="#555555",
            connectionstyle="arc3,rad=0.06",
        )

    nx.draw_networkx_labels(dg, pos, labels=labels, font_size=10, font_color="#111111")

    # one label per node pair; parallel responses are joined
    edge_labels: Dict[Tuple[str, str], str] = {}
    for u, v, a in g.edges(data=True):
        cond = a.get("condition_value", "")
        edge_labels[(u, v)] = f"{edge_labels[(u, v)]} / {cond}" if (u, v) in edge_labels else cond
    if edge_labels:
        nx.draw_networkx_edge_labels(
            dg, pos, edge_labels=edge_labels, font_size=9,
            bbox=dict(boxstyle="round,pad=0.3", facecolor="white", edgecolor="gray", alpha=0.9),
            label_pos=0.55,
        )

    handles = [
        Patch(facecolor=node_color(t), edgecolor="#444444", label=t.value)
        for t in NodeType
    ]
    handles.append(Patch(facecolor="#D3D3D3", edgecolor="#BBBBBB", label="orphan"))
    plt.legend(handles=handles, title="Step type", loc="lower left",
               bbox_to_anchor=(1.02, 0), borderaxespad=0.0)

    plt.axis("off")
    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white", edgecolor="none")
    plt.close()
    logger.info(f"Flow visualization saved: {save_path}")
