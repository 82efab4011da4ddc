from __future__ import annotations

from typing import List, Set

import networkx as nx

from .schema import CycleDetectionResult


def _loop_members(g: nx.MultiDiGraph) -> Set[str]:
    members: Set[str] = set()
    for comp in nx.strongly_connected_components(g):
        if len(comp) > 1:
            members |= comp
        else:
            (n,) = comp
            if g.has_edge(n, n):
                members.add(n)
    return members


def detect_loops(g: nx.MultiDiGraph) -> CycleDetectionResult:
    """Steps that sit on a loop of responses, plus a step order when there are none.

    Loops are legal in a call script (re-asking a question); callers report
    them rather than reject them.
    """
    cyclic = _loop_members(g)
    order: List[str] = [] if cyclic else list(nx.topological_sort(g))

    return CycleDetectionResult(
        success=not cyclic,
        order=order,
        cyclic_nodes=sorted(cyclic),
        start_nodes=[n for n in g if g.in_degree(n) == 0 and g.out_degree(n) > 0],
        end_nodes=[n for n in g if g.out_degree(n) == 0 and g.in_degree(n) > 0],
    )
