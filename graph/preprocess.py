from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

from .schema import Flow


def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", key).lower()


def _snake_keys(item: Dict[str, Any]) -> Dict[str, Any]:
    return {_snake(k): v for k, v in item.items()}


def _items(raw: Any, kind: str) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        # keyed by id
        return [{"id": k, **v} for k, v in raw.items()]
    if isinstance(raw, list):
        return list(raw)
    raise ValidationError(f"'{kind}' must be a list or an object", field=kind)


def normalize_raw_to_flow(raw: Dict[str, Any]) -> Flow:
    """Build a Flow from its wire form. Both snake_case and camelCase keys are accepted."""
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("Flow data is empty or not an object")

    data = _snake_keys(raw)
    data["nodes"] = [_snake_keys(n) for n in _items(data.get("nodes"), "nodes")]
    data["edges"] = [_snake_keys(e) for e in _items(data.get("edges"), "edges")]

    try:
        return Flow.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid flow data at '{loc}': {first.get('msg', e)}", field=loc or None) from e
