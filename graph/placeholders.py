from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Set

from .schema import Flow

# (name), [name] or {name}
PLACEHOLDER_PATTERN = re.compile(
    r"\(\s*([A-Za-z_]\w*)\s*\)"
    r"|\[\s*([A-Za-z_]\w*)\s*\]"
    r"|\{\s*([A-Za-z_]\w*)\s*\}"
)


def extract_placeholders(message: str) -> Set[str]:
    """Field names referenced by placeholder tokens in an AI message."""
    if not message:
        return set()
    names: Set[str] = set()
    for match in PLACEHOLDER_PATTERN.finditer(message):
        names.add(next(g for g in match.groups() if g))
    return names


def flow_variables(flow: Flow) -> List[str]:
    names: Set[str] = set()
    for node in flow.nodes.values():
        names |= extract_placeholders(node.ai_message)
    return sorted(names)


def normalize_field_name(name: str) -> str:
    return re.sub(r"[\s_\-]+", "", name.lower())


@dataclass
class FieldMatch:
    matched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)

    @property
    def is_compatible(self) -> bool:
        return not self.missing


def match_contact_fields(variables: Iterable[str], fields: Iterable[str]) -> FieldMatch:
    """Compare the variables a flow expects with the columns of uploaded contact data."""
    variables = list(variables)
    fields = list(fields)
    if not variables:
        return FieldMatch()

    available = {normalize_field_name(f) for f in fields}
    result = FieldMatch()
    for v in variables:
        if normalize_field_name(v) in available:
            result.matched.append(v)
        else:
            result.missing.append(v)

    matched_norms = {normalize_field_name(v) for v in result.matched}
    result.extra = [f for f in fields if normalize_field_name(f) not in matched_norms]
    return result


def render_message(message: str, contact: Mapping[str, Any]) -> str:
    """Bind placeholders from contact data; unknown placeholders are left as written."""
    if not message or not contact:
        return message
    values = {normalize_field_name(k): v for k, v in contact.items() if v is not None}

    def _sub(match: re.Match) -> str:
        name = next(g for g in match.groups() if g)
        value = values.get(normalize_field_name(name))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_sub, message)
