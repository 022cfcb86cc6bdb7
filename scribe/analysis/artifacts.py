from __future__ import annotations

from copy import deepcopy
from typing import Any, Dict, Optional


class ArtifactRegistry:
    """
    Completed outputs of one run, keyed by artifact kind (``studyGuide``,
    ``flashcards``, ...). A kind can be regenerated, so the latest payload
    wins. Readers get copies so callers never share payloads with the registry.
    """

    def __init__(self, items: Optional[Dict[str, Any]] = None):
        self._items: Dict[str, Any] = dict(items or {})

    def put(self, kind: str, payload: Any) -> None:
        self._items[kind] = deepcopy(payload)

    def get(self, kind: str) -> Optional[Any]:
        if kind not in self._items:
            return None
        return deepcopy(self._items[kind])

    def all(self) -> Dict[str, Any]:
        return deepcopy(self._items)

    def __contains__(self, kind: object) -> bool:
        return kind in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ArtifactRegistry):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"ArtifactRegistry({sorted(self._items)!r})"
