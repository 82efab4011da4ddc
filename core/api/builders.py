from __future__ import annotations

from .models import (
    DiffRes, FieldMatchRes, FlowDetail, FlowSummary, Message,
    PreviewRes, TerminalInfo, ValidationRes, WarningItem,
)
from graph.commands import FlowDiff
from graph.placeholders import FieldMatch
from graph.schema import Flow, ValidationReport
from ..flow_manager import PreviewSession


def build_flow_summary(flow: Flow) -> FlowSummary:
    return FlowSummary(
        id=flow.id,
        name=flow.name,
        description=flow.description,
        is_active=flow.is_active,
        node_count=len(flow.nodes),
        edge_count=len(flow.edges),
    )


def build_flow_detail(flow: Flow) -> FlowDetail:
    return FlowDetail(
        id=flow.id,
        name=flow.name,
        description=flow.description,
        is_active=flow.is_active,
        nodes=list(flow.nodes.values()),
        edges=list(flow.edges.values()),
    )


def build_diff_response(diff: FlowDiff) -> DiffRes:
    return DiffRes(
        added_nodes=diff.added_nodes,
        updated_nodes=diff.updated_nodes,
        removed_node_ids=diff.removed_node_ids,
        added_edges=diff.added_edges,
        removed_edge_ids=diff.removed_edge_ids,
        meta=diff.meta,
    )


def build_validation_response(report: ValidationReport) -> ValidationRes:
    return ValidationRes(
        ok=report.ok,
        root_id=report.root_id,
        connected=report.connected,
        orphans=report.orphans,
        warnings=[WarningItem(node_id=w.node_id, field=w.field, message=w.message) for w in report.warnings],
        errors=report.errors,
        loop_nodes=report.loop_nodes,
    )


def build_field_match_response(match: FieldMatch) -> FieldMatchRes:
    return FieldMatchRes(
        matched=match.matched,
        missing=match.missing,
        extra=match.extra,
        is_compatible=match.is_compatible,
    )


def build_preview_response(session: PreviewSession, matched: bool = True) -> PreviewRes:
    engine = session.engine
    terminal = engine.terminal_state()
    return PreviewRes(
        preview_id=session.preview_id,
        flow_id=session.flow_id,
        current=engine.current_node,
        transcript=[Message(role=m.role, text=m.text, node_id=m.node_id) for m in engine.transcript],
        choices=engine.choices(),
        terminal=TerminalInfo(reason=terminal.reason, banner=terminal.banner, outcome=terminal.outcome) if terminal else None,
        matched=matched,
    )
