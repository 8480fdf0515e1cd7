# chat_recall/application/dto/search_dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class SearchRequest:
    """
    DTO for a user-scoped semantic search.

    - user_id: requesting user; results never leave this user's messages
    - query: free-text query (non-empty after normalization)
    - limit: number of results (>= 1, clamped by the index maximum)
    - extra_filters: exact-match payload filters, e.g. {"receiver_id": "u2"}
    - score_threshold: optional minimum raw similarity applied by the index
    """

    user_id: str
    query: str
    limit: int = DEFAULT_LIMIT
    extra_filters: Mapping[str, Any] | None = None
    score_threshold: float | None = None
