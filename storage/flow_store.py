from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
import copy
import json
import logging

import redis

from core.errors import NotFoundError, PersistenceError, ValidationError
from graph.preprocess import normalize_raw_to_flow
from graph.schema import Flow, FlowEdge, FlowNode

logger = logging.getLogger(__name__)


class FlowRepository(ABC):
    """Persistence contract for flows, stored in their wire (dict) form.

    Subclasses provide raw read/write of one flow document; the node and
    edge operations are built on top of that.
    """

    @abstractmethod
    def _read(self, flow_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _write(self, flow_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _remove(self, flow_id: str) -> bool:
        ...

    @abstractmethod
    def list_flows(self) -> List[str]:
        ...

    def _require(self, flow_id: str) -> Dict[str, Any]:
        data = self._read(flow_id)
        if data is None:
            raise NotFoundError(f"Flow not found: {flow_id}")
        return data

    # ========================================
    # Flows
    # ========================================

    def load_flow(self, flow_id: str) -> Flow:
        return normalize_raw_to_flow(self._require(flow_id))

    def create_flow(self, flow: Flow) -> Flow:
        if self._read(flow.id) is not None:
            raise ValidationError(f"Flow already exists: {flow.id}", field="id")
        self._write(flow.id, flow.to_dict())
        logger.info(f"Created flow {flow.id} ({flow.name!r})")
        return flow

    def save_flow(self, flow: Flow) -> None:
        self._write(flow.id, flow.to_dict())

    def delete_flow(self, flow_id: str) -> None:
        if not self._remove(flow_id):
            raise NotFoundError(f"Flow not found: {flow_id}")
        logger.info(f"Deleted flow {flow_id}")

    def update_flow_meta(self, flow_id: str, meta: Dict[str, Any]) -> None:
        data = self._require(flow_id)
        for key in ("name", "description", "is_active"):
            if key in meta:
                data[key] = meta[key]
        self._write(flow_id, data)

    # ========================================
    # Nodes
    # ========================================

    def create_node(self, flow_id: str, node: FlowNode) -> FlowNode:
        data = self._require(flow_id)
        data["nodes"].append(node.model_dump(mode="json"))
        self._write(flow_id, data)
        return node

    def update_node(self, flow_id: str, node_id: str, patch: Dict[str, Any]) -> None:
        data = self._require(flow_id)
        for node in data["nodes"]:
            if node["id"] == node_id:
                node.update(patch)
                self._write(flow_id, data)
                return
        raise NotFoundError(f"Node not found: {node_id}", node_id=node_id)

    def delete_node(self, flow_id: str, node_id: str) -> None:
        data = self._require(flow_id)
        remaining = [n for n in data["nodes"] if n["id"] != node_id]
        if len(remaining) == len(data["nodes"]):
            raise NotFoundError(f"Node not found: {node_id}", node_id=node_id)
        data["nodes"] = remaining
        data["edges"] = [
            e for e in data["edges"]
            if e["from_node_id"] != node_id and e["to_node_id"] != node_id
        ]
        self._write(flow_id, data)

    # ========================================
    # Edges
    # ========================================

    def create_edge(self, flow_id: str, edge: FlowEdge) -> FlowEdge:
        data = self._require(flow_id)
        data["edges"].append(edge.model_dump(mode="json"))
        self._write(flow_id, data)
        return edge

    def delete_edge(self, flow_id: str, edge_id: str) -> None:
        data = self._require(flow_id)
        remaining = [e for e in data["edges"] if e["id"] != edge_id]
        if len(remaining) == len(data["edges"]):
            raise NotFoundError(f"Edge not found: {edge_id}", edge_id=edge_id)
        data["edges"] = remaining
        self._write(flow_id, data)


class InMemoryFlowStore(FlowRepository):
    """Flows kept in a process-local dict"""

    def __init__(self):
        self.memory_store: Dict[str, Dict[str, Any]] = {}
        logger.info("Using in-memory storage for flows")

    def _read(self, flow_id: str) -> Optional[Dict[str, Any]]:
        data = self.memory_store.get(flow_id)
        # callers mutate what they read
        return copy.deepcopy(data) if data is not None else None

    def _write(self, flow_id: str, data: Dict[str, Any]) -> None:
        self.memory_store[flow_id] = copy.deepcopy(data)
        logger.debug(f"Saved flow {flow_id}")

    def _remove(self, flow_id: str) -> bool:
        return self.memory_store.pop(flow_id, None) is not None

    def list_flows(self) -> List[str]:
        return list(self.memory_store)


class RedisFlowStore(FlowRepository):
    """One JSON document per flow under ``<prefix><flow_id>``"""

    def __init__(self, redis_host: str = 'localhost', redis_port: int = 6379,
                 redis_db: int = 0, key_prefix: str = "flow:",
                 client: Optional[redis.Redis] = None):
        self.key_prefix = key_prefix
        self.redis_client = client or redis.Redis(
            host=redis_host,
            port=redis_port,
            db=redis_db,
            decode_responses=True
        )
        logger.info(f"Using Redis for flow storage ({redis_host}:{redis_port}/{redis_db})")

    def _key(self, flow_id: str) -> str:
        return f"{self.key_prefix}{flow_id}"

    def _read(self, flow_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.redis_client.get(self._key(flow_id))
        except redis.RedisError as e:
            logger.error(f"Failed to load flow {flow_id}: {e}")
            raise PersistenceError(f"Failed to load flow {flow_id}: {e}") from e
        return json.loads(raw) if raw else None

    def _write(self, flow_id: str, data: Dict[str, Any]) -> None:
        try:
            self.redis_client.set(self._key(flow_id), json.dumps(data, ensure_ascii=False))
        except redis.RedisError as e:
            logger.error(f"Failed to save flow {flow_id}: {e}")
            raise PersistenceError(f"Failed to save flow {flow_id}: {e}") from e
        logger.debug(f"Saved flow {flow_id}")

    def _remove(self, flow_id: str) -> bool:
        try:
            return bool(self.redis_client.delete(self._key(flow_id)))
        except redis.RedisError as e:
            logger.error(f"Failed to delete flow {flow_id}: {e}")
            raise PersistenceError(f"Failed to delete flow {flow_id}: {e}") from e

    def list_flows(self) -> List[str]:
        try:
            keys = self.redis_client.keys(f"{self.key_prefix}*")
        except redis.RedisError as e:
            logger.error(f"Failed to list flows: {e}")
            raise PersistenceError(f"Failed to list flows: {e}") from e
        return [key[len(self.key_prefix):] for key in keys]


def create_flow_store(settings) -> FlowRepository:
    if settings.use_redis:
        return RedisFlowStore(
            redis_host=settings.redis_host,
            redis_port=settings.redis_port,
            redis_db=settings.redis_db,
            key_prefix=settings.redis_key_prefix,
        )
    return InMemoryFlowStore()
