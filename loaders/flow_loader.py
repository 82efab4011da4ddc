import os
from typing import Optional, Tuple
import logging

from graph.preprocess import load_json, normalize_raw_to_flow
from graph.schema import ValidationReport
from graph.store import GraphStore
from graph.validator import validate_flow
from graph.visualize import draw_flow

logger = logging.getLogger(__name__)


class FlowLoader:
    """Loads a flow from its JSON wire form and reports on its structure"""

    def load_from_file(self, file_path: str) -> Tuple[GraphStore, ValidationReport]:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Flow file not found: {file_path}")

        flow = normalize_raw_to_flow(load_json(file_path))
        report = validate_flow(flow)

        for w in report.warnings:
            logger.warning(f"[{w.node_id}] {w.message}")
        for e in report.errors:
            logger.error(e)
        if report.orphans:
            logger.warning(f"Unreachable from root: {report.orphans}")

        if report.has_loops:
            logger.info(f"Flow loops back through: {report.loop_nodes}")

        logger.info(f"Loaded flow {flow.name!r}: {len(flow.nodes)} steps, {len(flow.edges)} responses from {file_path}")
        return GraphStore(flow), report

    def create_visualization(self, store: GraphStore, output_path: str) -> None:
        draw_flow(store.flow, output_path)
        logger.info(f"Visualization saved: {output_path}")


def load_flow_file(file_path: str) -> Tuple[GraphStore, ValidationReport]:
    """Convenience function to load a flow"""
    return FlowLoader().load_from_file(file_path)


def load_flow_with_visualization(file_path: str, visualization_path: Optional[str] = None) -> Tuple[GraphStore, ValidationReport]:
    """Load a flow and optionally render it"""
    loader = FlowLoader()
    store, report = loader.load_from_file(file_path)
    if visualization_path:
        loader.create_visualization(store, visualization_path)
    return store, report
