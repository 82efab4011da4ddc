"""Unit tests for FlowManager editing and preview sessions."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from core.errors import InvalidTransitionError, NotFoundError, PersistenceError, TerminalNodeError
from core.flow_manager import FlowManager
from core.matching import EdgeMatcher
from graph.commands import AddBranch, DeleteBranch, DeleteNode, UpdateFlowMeta, UpdateNode
from graph.schema import NodeType
from storage.flow_store import InMemoryFlowStore


@pytest.fixture
def repo():
    return InMemoryFlowStore()


@pytest.fixture
def manager(repo):
    return FlowManager(repo)


@pytest.fixture
def built(manager):
    """A persisted flow: root --yes--> A --ok--> B(end, confirmed)."""
    flow = manager.create_flow("Reminder", root_message="Hi (name), is now a good time?", root_type=NodeType.QUESTION)
    a = manager.execute(flow.id, AddBranch(flow.root.id, "yes", "Great.", NodeType.STATEMENT))
    b = manager.execute(
        flow.id, AddBranch(a.added_nodes[0].id, "ok", "Bye.", NodeType.END, outcome="confirmed")
    )
    return flow.id, flow.root.id, a, b


class TestFlowLifecycle:
    def test_create_flow_is_persisted(self, manager, repo):
        flow = manager.create_flow("Survey", description="Quarterly")

        stored = repo.load_flow(flow.id)
        assert stored.description == "Quarterly"
        assert stored.root.id == flow.root.id

    def test_list_and_delete(self, manager):
        flow = manager.create_flow("Survey")

        assert [f.id for f in manager.list_flows()] == [flow.id]
        manager.delete_flow(flow.id)
        assert manager.list_flows() == []
        with pytest.raises(NotFoundError):
            manager.get_flow(flow.id)

    def test_load_from_backend(self, repo, built):
        """
        GIVEN a flow persisted by one manager
        WHEN a fresh manager loads it
        THEN it sees the same steps and responses
        """
        flow_id = built[0]

        flow = FlowManager(repo).get_flow(flow_id)

        assert len(flow.nodes) == 3
        assert [e.condition_value for e in flow.edges.values()] == ["yes", "ok"]


class TestExecute:
    """Tests for commands run through the manager."""

    def test_edits_are_written_through(self, manager, repo, built):
        flow_id, root_id, a, _ = built

        manager.execute(flow_id, UpdateNode(a.added_nodes[0].id, {"label": "Confirmed"}))
        manager.execute(flow_id, UpdateFlowMeta(name="Renamed"))

        stored = repo.load_flow(flow_id)
        assert stored.nodes[a.added_nodes[0].id].label == "Confirmed"
        assert stored.name == "Renamed"

    def test_delete_node_persists_detached_edges(self, manager, repo, built):
        flow_id, _, a, b = built

        manager.execute(flow_id, DeleteNode(a.added_nodes[0].id))

        stored = repo.load_flow(flow_id)
        assert a.added_nodes[0].id not in stored.nodes
        assert b.added_nodes[0].id in stored.nodes
        assert stored.edges == {}

    def test_rejected_edit_touches_nothing(self, manager, repo, built):
        flow_id, _, _, b = built
        repo.create_node = MagicMock()

        with pytest.raises(TerminalNodeError):
            manager.execute(flow_id, AddBranch(b.added_nodes[0].id, "wait", "Yes?"))

        repo.create_node.assert_not_called()
        assert len(manager.get_flow(flow_id).nodes) == 3

    def test_persistence_failure_is_raised_and_graph_reloaded(self, manager, repo, built):
        """
        GIVEN a backend that fails while writing a new node
        WHEN a branch is added
        THEN PersistenceError propagates and the graph matches the backend again
        """
        flow_id, root_id, _, _ = built
        repo.create_node = MagicMock(side_effect=PersistenceError("down"))

        with pytest.raises(PersistenceError):
            manager.execute(flow_id, AddBranch(root_id, "no", "Sorry."))

        assert len(manager.get_flow(flow_id).nodes) == 3

    def test_previews_follow_edits_after_a_persistence_failure(self, manager, repo, built):
        """
        GIVEN a preview sitting on step A and one failed write to the backend
        WHEN A is then deleted
        THEN the preview is back at the root instead of staying on the deleted step
        """
        flow_id, root_id, a, _ = built
        a_id = a.added_nodes[0].id
        session = manager.start_preview(flow_id)
        manager.advance_preview(session.preview_id, a.added_edges[0].id)
        repo.update_node = MagicMock(side_effect=PersistenceError("down"))

        with pytest.raises(PersistenceError):
            manager.execute(flow_id, UpdateNode(a_id, {"label": "Renamed"}))
        manager.execute(flow_id, DeleteNode(a_id))

        assert a_id not in manager.get_flow(flow_id).nodes
        assert manager.get_preview(session.preview_id).engine.current_node_id == root_id
        assert session.engine.store is manager.load(flow_id)

    def test_failed_write_and_reload_drops_flow_previews(self, manager, repo, built):
        flow_id, root_id, _, _ = built
        session = manager.start_preview(flow_id)
        repo.create_node = MagicMock(side_effect=PersistenceError("down"))
        repo.load_flow = MagicMock(side_effect=PersistenceError("down"))

        with pytest.raises(PersistenceError):
            manager.execute(flow_id, AddBranch(root_id, "no", "Sorry."))

        with pytest.raises(NotFoundError):
            manager.get_preview(session.preview_id)

    def test_variables_and_field_match(self, manager, built):
        flow_id = built[0]

        assert manager.variables(flow_id) == ["name"]
        result = manager.field_match(flow_id, ["Name", "Phone"])
        assert result.matched == ["name"]
        assert result.extra == ["Phone"]

    def test_validate(self, manager, built):
        flow_id, _, _, b = built

        manager.execute(flow_id, DeleteBranch(b.added_edges[0].id))

        report = manager.validate(flow_id)
        assert report.ok
        assert report.orphans == [b.added_nodes[0].id]


class TestPreview:
    """Tests for preview sessions."""

    def test_walk_to_the_end(self, manager, built):
        flow_id, _, a, b = built
        session = manager.start_preview(flow_id, contact={"name": "Dana"})

        manager.advance_preview(session.preview_id, a.added_edges[0].id)
        node = manager.advance_preview(session.preview_id, b.added_edges[0].id)

        assert node.id == b.added_nodes[0].id
        engine = manager.get_preview(session.preview_id).engine
        assert engine.transcript[0].text == "Hi Dana, is now a good time?"
        assert engine.terminal_state().banner == "call ended · confirmed"

    def test_advance_with_wrong_edge(self, manager, built):
        flow_id, _, _, b = built
        session = manager.start_preview(flow_id)

        with pytest.raises(InvalidTransitionError):
            manager.advance_preview(session.preview_id, b.added_edges[0].id)

    def test_respond_with_free_text(self, manager, built):
        flow_id, _, a, _ = built
        session = manager.start_preview(flow_id)

        assert manager.respond_preview(session.preview_id, "maybe") is None
        assert manager.respond_preview(session.preview_id, "Yes!").id == a.added_nodes[0].id

    def test_contains_matcher(self, repo, built):
        flow_id, _, a, _ = built
        manager = FlowManager(repo, matcher=EdgeMatcher("contains"))
        session = manager.start_preview(flow_id)

        assert manager.respond_preview(session.preview_id, "oh yes sure").id == a.added_nodes[0].id

    def test_preview_resets_when_current_node_is_deleted(self, manager, built):
        """
        GIVEN a preview sitting on step A
        WHEN A is deleted through the manager
        THEN the preview is back at the root
        """
        flow_id, root_id, a, _ = built
        session = manager.start_preview(flow_id)
        manager.advance_preview(session.preview_id, a.added_edges[0].id)

        manager.execute(flow_id, DeleteNode(a.added_nodes[0].id))

        assert manager.get_preview(session.preview_id).engine.current_node_id == root_id

    def test_reset_and_end(self, manager, built):
        flow_id, root_id, a, _ = built
        session = manager.start_preview(flow_id)
        manager.advance_preview(session.preview_id, a.added_edges[0].id)

        assert manager.reset_preview(session.preview_id).id == root_id

        manager.end_preview(session.preview_id)
        with pytest.raises(NotFoundError):
            manager.get_preview(session.preview_id)
        with pytest.raises(NotFoundError):
            manager.end_preview(session.preview_id)

    def test_deleting_flow_ends_its_previews(self, manager, built):
        flow_id = built[0]
        session = manager.start_preview(flow_id)

        manager.delete_flow(flow_id)

        with pytest.raises(NotFoundError):
            manager.get_preview(session.preview_id)


class TestPreviewExpiry:
    """Tests for idle preview expiry."""

    def test_expired_preview_is_not_found(self, repo, built):
        """
        GIVEN a preview idle for longer than its TTL
        WHEN it is looked up
        THEN NotFoundError is raised and the session is gone
        """
        manager = FlowManager(repo, preview_ttl=60)
        session = manager.start_preview(built[0])
        session.expires_at = datetime.now() - timedelta(seconds=1)

        with pytest.raises(NotFoundError):
            manager.get_preview(session.preview_id)
        with pytest.raises(NotFoundError):
            manager.end_preview(session.preview_id)

    def test_access_extends_expiry(self, repo, built):
        manager = FlowManager(repo, preview_ttl=60)
        session = manager.start_preview(built[0])
        session.expires_at = datetime.now() + timedelta(seconds=1)

        manager.get_preview(session.preview_id)

        assert session.expires_at > datetime.now() + timedelta(seconds=30)

    def test_starting_a_preview_evicts_expired_ones(self, repo, built):
        manager = FlowManager(repo, preview_ttl=60)
        stale = manager.start_preview(built[0])
        stale.expires_at = datetime.now() - timedelta(seconds=1)

        fresh = manager.start_preview(built[0])

        assert manager.cleanup_expired() == 0
        assert manager.get_preview(fresh.preview_id) is fresh
        with pytest.raises(NotFoundError):
            manager.get_preview(stale.preview_id)
