from __future__ import annotations

from .models import (
    CreateFlowReq, UpdateFlowReq, CreateNodeReq, UpdateNodeReq, CreateEdgeReq, AddBranchReq,
    FieldMatchReq, StartPreviewReq, AdvancePreviewReq, RespondPreviewReq,
    FlowSummary, FlowDetail, DiffRes, ValidationRes, VariablesRes, FieldMatchRes, PreviewRes,
)
from .builders import (
    build_flow_summary, build_flow_detail, build_diff_response, build_validation_response,
    build_field_match_response, build_preview_response,
)

__all__ = [
    'CreateFlowReq', 'UpdateFlowReq', 'CreateNodeReq', 'UpdateNodeReq', 'CreateEdgeReq', 'AddBranchReq',
    'FieldMatchReq', 'StartPreviewReq', 'AdvancePreviewReq', 'RespondPreviewReq',
    'FlowSummary', 'FlowDetail', 'DiffRes', 'ValidationRes', 'VariablesRes', 'FieldMatchRes', 'PreviewRes',
    'build_flow_summary', 'build_flow_detail', 'build_diff_response', 'build_validation_response',
    'build_field_match_response', 'build_preview_response',
]
