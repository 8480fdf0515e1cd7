"""OpenAI-compatible embedding adapter with batching and bounded retries.

Works against api.openai.com or any server exposing /v1/embeddings
(vLLM, Ollama, LiteLLM) through base_url.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from chat_recall.application.call_context import CallContext
from chat_recall.application.ports.embedding_port import EmbeddingProviderPort
from chat_recall.domain.errors import (
    DomainError,
    InvalidInput,
    ProviderUnavailable,
    RateLimited,
    SchemaMismatch,
    Timeout,
)
from chat_recall.domain.services.text import estimate_tokens
from chat_recall.domain.types import Vector
from chat_recall.infrastructure.retry import RetryPolicy, call_bounded, retry_call

logger = logging.getLogger(__name__)


@dataclass
class OpenAIEmbeddingConfig:
    """Configuration for the embedding endpoint. model and dimension are a pair."""

    api_key: str = ""
    base_url: str | None = None  # None = api.openai.com
    model: str = "text-embedding-3-small"
    dimension: int = 1536
    max_batch_size: int = 96
    max_input_tokens: int = 8191
    timeout_s: float = 30.0


class OpenAIEmbeddingAdapter(EmbeddingProviderPort):
    """Embedding provider backed by the openai SDK.

    Features:
    - Fail-fast validation (empty / oversized texts) before any request
    - Order-preserving split into max_batch_size sub-batches
    - Exponential backoff with jitter on rate limits and transient failures
    - Per-call timeout bounded by the caller's deadline; cancellation aware

    The SDK's own retries are disabled (max_retries=0) so the policy here is
    the only one in effect.
    """

    def __init__(
        self,
        cfg: OpenAIEmbeddingConfig,
        retry: RetryPolicy | None = None,
        client: Any | None = None,
    ) -> None:
        if cfg.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self._cfg = cfg
        self._retry = retry or RetryPolicy(max_attempts=5, base_delay_s=0.5, jitter=0.25)
        self._client = client  # lazy when not injected

    @property
    def model(self) -> str:
        return self._cfg.model

    @property
    def dimension(self) -> int:
        return self._cfg.dimension

    @property
    def max_batch_size(self) -> int:
        return self._cfg.max_batch_size

    def embed(self, texts: Sequence[str], ctx: CallContext | None = None) -> list[Vector]:
        ctx = ctx or CallContext.background()
        items = list(texts)
        self._validate(items)

        vectors: list[Vector] = []
        bs = self._cfg.max_batch_size
        for start in range(0, len(items), bs):
            batch = items[start : start + bs]
            vectors.extend(
                retry_call(
                    lambda b=batch: self._embed_batch(b, ctx),
                    policy=self._retry,
                    ctx=ctx,
                    classify=self._classify,
                    what=f"embedding batch [{start}:{start + len(batch)}]",
                )
            )
        logger.debug(
            "Embedded %d texts with %s in %d request(s)",
            len(items),
            self._cfg.model,
            -(-len(items) // bs),
        )
        return vectors

    def _validate(self, items: list[str]) -> None:
        for i, text in enumerate(items):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInput(f"text at position {i} is empty")
            tokens = estimate_tokens(text)
            if tokens > self._cfg.max_input_tokens:
                raise InvalidInput(
                    f"text at position {i} exceeds token limit "
                    f"(~{tokens} > {self._cfg.max_input_tokens})"
                )

    def _embed_batch(self, batch: list[str], ctx: CallContext) -> list[Vector]:
        client = self._get_client()
        budget = ctx.budget(self._cfg.timeout_s)
        if budget is not None:
            client = client.with_options(timeout=budget)
        resp = call_bounded(
            lambda: client.embeddings.create(model=self._cfg.model, input=batch),
            ctx,
            self._cfg.timeout_s,
            what="embedding request",
        )
        return self._parse(resp, expected=len(batch))

    def _parse(self, resp: Any, expected: int) -> list[Vector]:
        data = sorted(resp.data, key=lambda d: d.index)
        if len(data) != expected:
            raise SchemaMismatch(
                f"provider returned {len(data)} embeddings for {expected} inputs",
                model=self._cfg.model,
            )
        vectors: list[Vector] = [tuple(float(x) for x in d.embedding) for d in data]
        for v in vectors:
            if len(v) != self._cfg.dimension:
                raise SchemaMismatch(
                    f"provider returned dimension {len(v)}, configured {self._cfg.dimension}",
                    model=self._cfg.model,
                )
        return vectors

    def _sdk(self) -> Any:
        try:
            return import_module("openai")
        except Exception as ex:  # pragma: no cover
            raise ProviderUnavailable(
                "openai package is required for OpenAIEmbeddingAdapter", retryable=False
            ) from ex

    def _get_client(self) -> Any:
        if self._client is None:
            sdk = self._sdk()
            self._client = sdk.OpenAI(
                api_key=self._cfg.api_key or None,
                base_url=self._cfg.base_url or None,
                timeout=self._cfg.timeout_s,
                max_retries=0,
            )
        return self._client

    def _classify(self, ex: Exception) -> DomainError:
        """Map openai SDK exceptions onto the domain error family."""
        sdk = self._sdk()
        model = self._cfg.model
        # APITimeoutError subclasses APIConnectionError; check it first.
        if isinstance(ex, sdk.APITimeoutError):
            return Timeout(f"embedding request timed out: {ex}", model=model)
        if isinstance(ex, sdk.RateLimitError):
            return RateLimited(f"embedding provider rate limited: {ex}", model=model)
        if isinstance(ex, sdk.APIConnectionError):
            return ProviderUnavailable(f"embedding provider unreachable: {ex}", model=model)
        if isinstance(ex, (sdk.BadRequestError, sdk.UnprocessableEntityError)):
            return InvalidInput(f"embedding provider rejected input: {ex}", model=model)
        if isinstance(ex, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
            return ProviderUnavailable(
                f"embedding provider refused credentials: {ex}", model=model, retryable=False
            )
        if isinstance(ex, sdk.APIStatusError):
            status = int(getattr(ex, "status_code", 0) or 0)
            return ProviderUnavailable(
                f"embedding provider returned HTTP {status}: {ex}",
                model=model,
                retryable=status >= 500 or status == 408,
            )
        return ProviderUnavailable(f"embedding failed: {ex}", model=model, retryable=False)
