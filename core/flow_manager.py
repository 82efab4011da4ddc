from typing import Dict, Any, Iterable, List, Mapping, Optional
import logging
from datetime import datetime, timedelta
from uuid import uuid4

from graph.commands import Command, FlowDiff, apply_command
from graph.placeholders import FieldMatch, flow_variables, match_contact_fields
from graph.schema import Flow, FlowNode, NodeType, ValidationReport
from graph.store import GraphStore
from graph.traversal import TraversalEngine
from graph.validator import validate_flow
from storage.flow_store import FlowRepository
from .errors import FlowError, NotFoundError
from .matching import EdgeMatcher

logger = logging.getLogger(__name__)


class PreviewSession:
    def __init__(self, preview_id: str, flow_id: str, engine: TraversalEngine, ttl: int = 3600):
        self.preview_id = preview_id
        self.flow_id = flow_id
        self.engine = engine
        self.ttl = ttl
        self.touch()

    def touch(self) -> None:
        self.last_updated = datetime.now()
        self.expires_at = self.last_updated + timedelta(seconds=self.ttl)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) >= self.expires_at


class FlowManager:
    """Flow editing and preview on top of a persistence backend.

    Every edit runs against the in-memory graph first; the backend is only
    written once the edit has succeeded there.
    """

    def __init__(self, repository: FlowRepository, matcher: Optional[EdgeMatcher] = None,
                 preview_ttl: int = 3600):  # idle previews expire after an hour
        self.repository = repository
        self.matcher = matcher or EdgeMatcher()
        self.preview_ttl = preview_ttl
        self._stores: Dict[str, GraphStore] = {}
        self._previews: Dict[str, PreviewSession] = {}

    # ========================================
    # Flows
    # ========================================

    def create_flow(self, name: str, description: str = "", root_message: Optional[str] = None,
                    root_label: str = "Start", root_type: NodeType = NodeType.START) -> Flow:
        kwargs: Dict[str, Any] = {"root_label": root_label, "root_type": root_type}
        if root_message:
            kwargs["root_message"] = root_message
        flow = Flow.new(name, description, **kwargs)
        self.repository.create_flow(flow)
        self._stores[flow.id] = GraphStore(flow)
        return flow

    def load(self, flow_id: str) -> GraphStore:
        store = self._stores.get(flow_id)
        if store is None:
            flow = self.repository.load_flow(flow_id)
            store = GraphStore(flow)
            report = validate_flow(flow)
            for e in report.errors:
                logger.warning(f"[{flow_id}] {e}")
            if report.orphans:
                logger.info(f"[{flow_id}] {len(report.orphans)} orphaned step(s)")
            self._stores[flow_id] = store
        return store

    def get_flow(self, flow_id: str) -> Flow:
        return self.load(flow_id).flow

    def list_flows(self) -> List[Flow]:
        return [self.get_flow(fid) for fid in self.repository.list_flows()]

    def delete_flow(self, flow_id: str) -> None:
        self.repository.delete_flow(flow_id)
        self._stores.pop(flow_id, None)
        self._end_flow_previews(flow_id)

    def import_flow(self, flow: Flow) -> Flow:
        self.repository.save_flow(flow)
        store = self._stores.get(flow.id)
        if store is None:
            self._stores[flow.id] = GraphStore(flow)
        else:
            # open previews keep their store
            store.flow = flow
            self._sync_previews(flow.id)
        return flow

    # ========================================
    # Editing
    # ========================================

    def execute(self, flow_id: str, command: Command) -> FlowDiff:
        store = self.load(flow_id)
        diff = apply_command(store, command)
        self._persist(flow_id, diff)
        self._sync_previews(flow_id)
        return diff

    def _persist(self, flow_id: str, diff: FlowDiff) -> None:
        try:
            # edges go before the nodes they reference
            for edge_id in diff.removed_edge_ids:
                self.repository.delete_edge(flow_id, edge_id)
            for node_id in diff.removed_node_ids:
                self.repository.delete_node(flow_id, node_id)
            for node in diff.added_nodes:
                self.repository.create_node(flow_id, node)
            for node in diff.updated_nodes:
                self.repository.update_node(flow_id, node.id, _node_patch(node))
            for edge in diff.added_edges:
                self.repository.create_edge(flow_id, edge)
            if diff.meta:
                self.repository.update_flow_meta(flow_id, diff.meta)
        except Exception as e:
            logger.error(f"Failed to persist changes to flow {flow_id}: {e}")
            self._reload(flow_id)
            raise

    def _reload(self, flow_id: str) -> None:
        """Replace the cached graph with what the backend actually holds.

        The flow is swapped inside the existing GraphStore so open previews keep
        walking the same store. If the backend cannot be read either, the cache
        and every preview of the flow are dropped.
        """
        try:
            flow = self.repository.load_flow(flow_id)
        except FlowError as e:
            logger.warning(f"Could not reload flow {flow_id} ({e}); dropping cached graph and previews")
            self._stores.pop(flow_id, None)
            self._end_flow_previews(flow_id)
            return

        store = self._stores.get(flow_id)
        if store is None:
            self._stores[flow_id] = GraphStore(flow)
        else:
            store.flow = flow
        self._sync_previews(flow_id)

    def validate(self, flow_id: str) -> ValidationReport:
        return validate_flow(self.get_flow(flow_id))

    def variables(self, flow_id: str) -> List[str]:
        return flow_variables(self.get_flow(flow_id))

    def field_match(self, flow_id: str, fields: Iterable[str]) -> FieldMatch:
        return match_contact_fields(self.variables(flow_id), fields)

    # ========================================
    # Preview
    # ========================================

    def start_preview(self, flow_id: str, contact: Optional[Mapping[str, Any]] = None) -> PreviewSession:
        self.cleanup_expired()
        engine = TraversalEngine(self.load(flow_id), contact=contact)
        engine.reset()
        session = PreviewSession(str(uuid4()), flow_id, engine, ttl=self.preview_ttl)
        self._previews[session.preview_id] = session
        logger.info(f"Preview {session.preview_id} started on flow {flow_id}")
        return session

    def get_preview(self, preview_id: str) -> PreviewSession:
        self.cleanup_expired()
        session = self._previews.get(preview_id)
        if session is None:
            raise NotFoundError(f"Preview not found: {preview_id}")
        session.engine.sync()
        session.touch()
        return session

    def advance_preview(self, preview_id: str, edge_id: str) -> FlowNode:
        return self.get_preview(preview_id).engine.advance(edge_id)

    def respond_preview(self, preview_id: str, text: str) -> Optional[FlowNode]:
        """Advance by free text. Returns None, and stays put, if no response matches."""
        engine = self.get_preview(preview_id).engine
        edge = self.matcher.match(engine.choices(), text)
        if edge is None:
            return None
        return engine.advance(edge)

    def reset_preview(self, preview_id: str) -> FlowNode:
        return self.get_preview(preview_id).engine.reset()

    def end_preview(self, preview_id: str) -> None:
        if self._previews.pop(preview_id, None) is None:
            raise NotFoundError(f"Preview not found: {preview_id}")

    def cleanup_expired(self) -> int:
        """Drop previews idle for longer than their TTL. Returns how many were dropped."""
        now = datetime.now()
        expired = [pid for pid, s in self._previews.items() if s.is_expired(now)]
        for preview_id in expired:
            del self._previews[preview_id]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired preview(s)")
        return len(expired)

    def _end_flow_previews(self, flow_id: str) -> None:
        for preview_id in [p.preview_id for p in self._previews.values() if p.flow_id == flow_id]:
            del self._previews[preview_id]

    def _sync_previews(self, flow_id: str) -> None:
        for session in self._previews.values():
            if session.flow_id == flow_id and session.engine.sync():
                logger.info(f"Preview {session.preview_id} reset after edit")


def _node_patch(node: FlowNode) -> Dict[str, Any]:
    return node.model_dump(mode="json", exclude={"id", "is_root"})
