from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from chat_recall.domain.types import Vector

if TYPE_CHECKING:
    from chat_recall.application.call_context import CallContext


@runtime_checkable
class EmbeddingProviderPort(Protocol):
    """External embedding model.

    embed() returns one vector per input text, in input order, all of
    `dimension` length. Implementations must not touch the embedding cache.
    """

    @property
    def model(self) -> str: ...

    @property
    def dimension(self) -> int: ...

    def embed(self, texts: Sequence[str], ctx: CallContext | None = None) -> list[Vector]: ...
