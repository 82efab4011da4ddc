from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from core.api import (
    AddBranchReq, AdvancePreviewReq, CreateEdgeReq, CreateFlowReq, CreateNodeReq, DiffRes,
    FieldMatchReq, FieldMatchRes, FlowDetail, FlowSummary, PreviewRes, RespondPreviewReq,
    StartPreviewReq, UpdateFlowReq, UpdateNodeReq, ValidationRes, VariablesRes,
    build_diff_response, build_field_match_response, build_flow_detail, build_flow_summary,
    build_preview_response, build_validation_response,
)
from core.config import get_settings
from core.errors import (
    FlowError, InvalidTransitionError, InvariantError, NotFoundError,
    PersistenceError, TerminalNodeError, ValidationError,
)
from core.flow_manager import FlowManager
from core.matching import EdgeMatcher
from graph.authoring import branch_node_type
from graph.commands import AddBranch, AddEdge, AddNode, DeleteBranch, DeleteNode, UpdateFlowMeta, UpdateNode
from graph.preprocess import load_json, normalize_raw_to_flow
from graph.schema import FlowEdge, FlowNode
from storage.flow_store import create_flow_store

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 422,
    InvariantError: 409,
    TerminalNodeError: 409,
    InvalidTransitionError: 409,
    PersistenceError: 503,
}


def error_status(exc: FlowError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def build_manager() -> FlowManager:
    settings = get_settings()
    manager = FlowManager(
        repository=create_flow_store(settings),
        matcher=EdgeMatcher(settings.edge_match_strategy),
        preview_ttl=settings.preview_ttl,
    )
    seed = settings.flow_seed_path
    if seed and os.path.exists(seed):
        flow = manager.import_flow(normalize_raw_to_flow(load_json(seed)))
        logger.info(f"Seeded flow {flow.id} from {seed}")
    return manager


def create_app(manager: Optional[FlowManager] = None) -> FastAPI:
    manager = manager or build_manager()
    app = FastAPI(title="Call Flow Builder API")
    app.state.manager = manager

    @app.exception_handler(FlowError)
    async def flow_error_handler(request: Request, exc: FlowError) -> JSONResponse:
        return JSONResponse(status_code=error_status(exc), content=exc.to_dict())

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True}

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    @app.get("/flows", response_model=List[FlowSummary])
    def list_flows() -> List[FlowSummary]:
        return [build_flow_summary(f) for f in manager.list_flows()]

    @app.post("/flows", response_model=FlowDetail, status_code=201)
    def create_flow(body: CreateFlowReq) -> FlowDetail:
        flow = manager.create_flow(
            body.name,
            body.description,
            root_message=body.root_message,
            root_label=body.root_label,
            root_type=body.root_type,
        )
        return build_flow_detail(flow)

    @app.get("/flows/{flow_id}", response_model=FlowDetail)
    def get_flow(flow_id: str) -> FlowDetail:
        return build_flow_detail(manager.get_flow(flow_id))

    @app.put("/flows/{flow_id}", response_model=DiffRes)
    def update_flow(flow_id: str, body: UpdateFlowReq) -> DiffRes:
        diff = manager.execute(flow_id, UpdateFlowMeta(body.name, body.description, body.is_active))
        return build_diff_response(diff)

    @app.delete("/flows/{flow_id}", status_code=204)
    def delete_flow(flow_id: str) -> Response:
        manager.delete_flow(flow_id)
        return Response(status_code=204)

    @app.get("/flows/{flow_id}/validation", response_model=ValidationRes)
    def validate_flow(flow_id: str) -> ValidationRes:
        return build_validation_response(manager.validate(flow_id))

    @app.get("/flows/{flow_id}/variables", response_model=VariablesRes)
    def flow_variables(flow_id: str) -> VariablesRes:
        return VariablesRes(variables=manager.variables(flow_id))

    @app.post("/flows/{flow_id}/field-match", response_model=FieldMatchRes)
    def field_match(flow_id: str, body: FieldMatchReq) -> FieldMatchRes:
        return build_field_match_response(manager.field_match(flow_id, body.fields))

    # ------------------------------------------------------------------
    # Nodes / edges / branches
    # ------------------------------------------------------------------

    @app.post("/flows/{flow_id}/nodes", response_model=DiffRes, status_code=201)
    def create_node(flow_id: str, body: CreateNodeReq) -> DiffRes:
        node = FlowNode(**body.model_dump())
        return build_diff_response(manager.execute(flow_id, AddNode(node)))

    @app.put("/flows/{flow_id}/nodes/{node_id}", response_model=DiffRes)
    def update_node(flow_id: str, node_id: str, body: UpdateNodeReq) -> DiffRes:
        patch = body.model_dump(exclude_unset=True)
        return build_diff_response(manager.execute(flow_id, UpdateNode(node_id, patch)))

    @app.delete("/flows/{flow_id}/nodes/{node_id}", response_model=DiffRes)
    def delete_node(flow_id: str, node_id: str) -> DiffRes:
        return build_diff_response(manager.execute(flow_id, DeleteNode(node_id)))

    @app.post("/flows/{flow_id}/edges", response_model=DiffRes, status_code=201)
    def create_edge(flow_id: str, body: CreateEdgeReq) -> DiffRes:
        edge = FlowEdge(**body.model_dump())
        return build_diff_response(manager.execute(flow_id, AddEdge(edge)))

    @app.delete("/flows/{flow_id}/edges/{edge_id}", response_model=DiffRes)
    def delete_edge(flow_id: str, edge_id: str) -> DiffRes:
        return build_diff_response(manager.execute(flow_id, DeleteBranch(edge_id)))

    @app.post("/flows/{flow_id}/nodes/{node_id}/branches", response_model=DiffRes, status_code=201)
    def add_branch(flow_id: str, node_id: str, body: AddBranchReq) -> DiffRes:
        node_type = body.node_type or branch_node_type(
            ends_conversation=body.ends_conversation,
            transfer_to_human=body.transfer_to_human,
            capture_answer=body.capture_answer,
        )
        command = AddBranch(
            parent_id=node_id,
            condition_value=body.condition_value,
            ai_message=body.ai_message,
            node_type=node_type,
            label=body.label,
            outcome=body.outcome,
            capture_field=body.capture_field,
        )
        return build_diff_response(manager.execute(flow_id, command))

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    @app.post("/flows/{flow_id}/preview", response_model=PreviewRes, status_code=201)
    def start_preview(flow_id: str, body: Optional[StartPreviewReq] = None) -> PreviewRes:
        session = manager.start_preview(flow_id, contact=body.contact if body else None)
        return build_preview_response(session)

    @app.get("/previews/{preview_id}", response_model=PreviewRes)
    def get_preview(preview_id: str) -> PreviewRes:
        return build_preview_response(manager.get_preview(preview_id))

    @app.post("/previews/{preview_id}/advance", response_model=PreviewRes)
    def advance_preview(preview_id: str, body: AdvancePreviewReq) -> PreviewRes:
        manager.advance_preview(preview_id, body.edge_id)
        return build_preview_response(manager.get_preview(preview_id))

    @app.post("/previews/{preview_id}/respond", response_model=PreviewRes)
    def respond_preview(preview_id: str, body: RespondPreviewReq) -> PreviewRes:
        node = manager.respond_preview(preview_id, body.text)
        return build_preview_response(manager.get_preview(preview_id), matched=node is not None)

    @app.post("/previews/{preview_id}/reset", response_model=PreviewRes)
    def reset_preview(preview_id: str) -> PreviewRes:
        manager.reset_preview(preview_id)
        return build_preview_response(manager.get_preview(preview_id))

    @app.delete("/previews/{preview_id}", status_code=204)
    def end_preview(preview_id: str) -> Response:
        manager.end_preview(preview_id)
        return Response(status_code=204)

    return app


app = create_app()
