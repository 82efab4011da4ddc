"""Shared fixtures for flow engine tests.

The ``appointment`` fixture is the canonical three-step script:

    R (question) --"yes"--> A (statement) --"ok"--> B (end, outcome=confirmed)
"""

from types import SimpleNamespace

import pytest

from graph.authoring import BranchAuthoring
from graph.schema import Flow, NodeType
from graph.store import GraphStore


@pytest.fixture
def flow():
    return Flow.new(
        "Appointment reminder",
        root_message="Hi, is this (name)?",
        root_label="R",
        root_type=NodeType.QUESTION,
    )


@pytest.fixture
def store(flow):
    return GraphStore(flow)


@pytest.fixture
def authoring(store):
    return BranchAuthoring(store)


@pytest.fixture
def appointment(store, authoring):
    root = store.get_node(store.root_id)
    a = authoring.add_branch(root.id, "yes", "Great, confirming your appointment.", NodeType.STATEMENT, label="A")
    b = authoring.add_branch(a.node.id, "ok", "See you then.", NodeType.END, label="B", outcome="confirmed")
    return SimpleNamespace(
        store=store,
        root=root,
        a=a.node,
        b=b.node,
        edge_ra=a.edge,
        edge_ab=b.edge,
    )
