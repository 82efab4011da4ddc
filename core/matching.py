from typing import Callable, Dict, List, Optional, Sequence
import re
import logging

from graph.schema import FlowEdge
from core.errors import ValidationError

logger = logging.getLogger(__name__)


def normalize_utterance(text: str) -> str:
    text = re.sub(r"[^\w\s]", " ", (text or "").lower())
    return " ".join(text.split())


class EdgeMatcher:
    """Maps a free-text customer utterance to at most one outgoing response.

    Strategies are deliberately literal. Anything that does not match
    exactly one response returns None so the caller can take its own
    no-match path.
    """

    def __init__(self, strategy: str = "exact"):
        self.strategies: Dict[str, Callable[[Sequence[FlowEdge], str], List[FlowEdge]]] = {
            'exact': self._exact,
            'contains': self._contains,
        }
        if strategy not in self.strategies:
            raise ValidationError(f"Unknown match strategy: {strategy}", field="strategy")
        self.strategy = strategy

    def match(self, edges: Sequence[FlowEdge], text: str) -> Optional[FlowEdge]:
        utterance = normalize_utterance(text)
        if not utterance or not edges:
            return None

        candidates = self.strategies[self.strategy](edges, utterance)
        if len(candidates) == 1:
            logger.debug(f"Matched {text!r} to edge {candidates[0].id} ({self.strategy})")
            return candidates[0]

        if candidates:
            logger.debug(f"Ambiguous utterance {text!r}: {[e.condition_value for e in candidates]}")
        else:
            logger.debug(f"No response matched {text!r}")
        return None

    def register(self, name: str, strategy: Callable[[Sequence[FlowEdge], str], List[FlowEdge]]):
        self.strategies[name] = strategy

    def _exact(self, edges: Sequence[FlowEdge], utterance: str) -> List[FlowEdge]:
        return [
            e for e in edges
            if utterance in (normalize_utterance(e.condition_value), normalize_utterance(e.label))
        ]

    def _contains(self, edges: Sequence[FlowEdge], utterance: str) -> List[FlowEdge]:
        exact = self._exact(edges, utterance)
        if exact:
            return exact

        padded = f" {utterance} "
        found = []
        for e in edges:
            cond = normalize_utterance(e.condition_value)
            if cond and f" {cond} " in padded:
                found.append(e)
        return found
