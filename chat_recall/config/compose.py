"""Dependency injection container with environment-driven wiring.

The only place where adapters are instantiated; application and domain code
see ports only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_recall.application.call_context import CallContext
from chat_recall.application.ports import (
    EmbeddingCachePort,
    EmbeddingProviderPort,
    TelemetryPort,
    VectorIndexPort,
    WorkQueuePort,
)
from chat_recall.application.services.cached_embedder import CachedEmbedder
from chat_recall.config.settings import AppSettings
from chat_recall.infrastructure.queues.redis_streams_adapter import RedisConfig
from chat_recall.infrastructure.retry import RetryPolicy

if TYPE_CHECKING:
    from chat_recall.application.services.backlog_drainer import BacklogDrainer
    from chat_recall.application.use_cases.ingest_message import IngestMessage
    from chat_recall.application.use_cases.search_messages import SearchMessages

logger = logging.getLogger(__name__)


class Container:
    """Dependency injection container for application components.

    Responsibilities:
    1. Read settings (via AppSettings)
    2. Choose adapters based on the *_backend settings
    3. Inject dependencies into use cases

    Adapters are built lazily and memoized. Any of them can be passed in
    explicitly, which is how tests swap in fakes.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        embedding: EmbeddingProviderPort | None = None,
        cache: EmbeddingCachePort | None = None,
        vector_index: VectorIndexPort | None = None,
        work_queue: WorkQueuePort | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self._embedding = embedding
        self._cache = cache
        self._vector_index = vector_index
        self._work_queue = work_queue
        self._telemetry = telemetry
        self._embedder: CachedEmbedder | None = None

    # ===== Adapters =====

    def get_embedding(self) -> EmbeddingProviderPort:
        if self._embedding is None:
            self._embedding = self._build_embedding()
        return self._embedding

    def get_cache(self) -> EmbeddingCachePort:
        if self._cache is None:
            self._cache = self._build_cache()
        return self._cache

    def get_vector_index(self) -> VectorIndexPort:
        if self._vector_index is None:
            self._vector_index = self._build_vector_index()
        return self._vector_index

    def get_work_queue(self) -> WorkQueuePort:
        if self._work_queue is None:
            self._work_queue = self._build_work_queue()
        return self._work_queue

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = self._build_telemetry()
        return self._telemetry

    def get_embedder(self) -> CachedEmbedder:
        if self._embedder is None:
            self._embedder = CachedEmbedder(
                provider=self.get_embedding(),
                cache=self.get_cache(),
                ttl_s=self.settings.cache_ttl_s,
                telemetry=self.get_telemetry(),
            )
        return self._embedder

    # ===== Use Cases =====

    def get_search_use_case(self) -> SearchMessages:
        from chat_recall.application.use_cases.search_messages import SearchMessages

        return SearchMessages(
            embedder=self.get_embedder(),
            index=self.get_vector_index(),
            telemetry=self.get_telemetry(),
            timeout_s=self.settings.query_timeout_s,
        )

    def get_ingest_use_case(self) -> IngestMessage:
        from chat_recall.application.use_cases.ingest_message import IngestMessage

        return IngestMessage(
            embedder=self.get_embedder(),
            index=self.get_vector_index(),
            backlog=self.get_work_queue(),
            telemetry=self.get_telemetry(),
            backlog_topic=self.settings.ingest_backlog_topic,
            timeout_s=self.settings.ingest_timeout_s,
            max_backlog_attempts=self.settings.ingest_backlog_max_attempts,
            max_input_tokens=self.settings.embedding_max_input_tokens,
        )

    def get_backlog_drainer(self) -> BacklogDrainer | None:
        """Background drainer for the HTTP app, or None when disabled."""
        from chat_recall.application.services.backlog_drainer import BacklogDrainer

        if self.settings.ingest_backlog_drain_interval_s <= 0:
            return None
        return BacklogDrainer(
            self.get_ingest_use_case(),
            interval_s=self.settings.ingest_backlog_drain_interval_s,
            batch_size=self.settings.ingest_backlog_drain_batch,
        )

    def bootstrap(self, ctx: CallContext | None = None) -> None:
        """Make sure the collection exists with the configured dimension (idempotent)."""
        index = self.get_vector_index()
        index.ensure_collection(self.settings.embedding_dimension, metric="cosine", ctx=ctx)
        logger.info(
            "Collection %s ready (dim=%d, backend=%s)",
            self.settings.collection,
            self.settings.embedding_dimension,
            self.settings.vector_backend,
        )

    # ===== Private Builder Methods =====

    def _redis_config(self) -> RedisConfig:
        return RedisConfig(
            host=self.settings.redis_host,
            port=self.settings.redis_port,
            db=self.settings.redis_db,
            password=self.settings.redis_password or None,
            decode_responses=True,
        )

    def _build_embedding(self) -> EmbeddingProviderPort:
        from chat_recall.infrastructure.embeddings.openai_embedding_adapter import (
            OpenAIEmbeddingAdapter,
            OpenAIEmbeddingConfig,
        )

        s = self.settings
        cfg = OpenAIEmbeddingConfig(
            api_key=s.embedding_api_key,
            base_url=s.embedding_base_url or None,
            model=s.embedding_model,
            dimension=s.embedding_dimension,
            max_batch_size=s.embedding_batch_size,
            max_input_tokens=s.embedding_max_input_tokens,
            timeout_s=s.embedding_timeout_s,
        )
        retry = RetryPolicy(
            max_attempts=s.retry_max_attempts,
            base_delay_s=s.retry_backoff_base_s,
            max_delay_s=s.retry_backoff_max_s,
            jitter=s.retry_jitter,
        )
        return OpenAIEmbeddingAdapter(cfg, retry=retry)

    def _build_cache(self) -> EmbeddingCachePort:
        """Supports: redis | memory | none."""
        s = self.settings
        backend = s.cache_backend
        if backend == "redis":
            from chat_recall.infrastructure.cache.redis_cache import RedisEmbeddingCache

            return RedisEmbeddingCache(
                self._redis_config(),
                namespace=s.embedding_model,
                default_ttl_s=s.cache_ttl_s,
                casefold=s.cache_casefold,
            )

        from chat_recall.infrastructure.cache.memory_cache import (
            InMemoryEmbeddingCache,
            NullEmbeddingCache,
        )

        if backend == "none":
            return NullEmbeddingCache()
        if backend != "memory":
            raise ValueError(f"Unknown CACHE_BACKEND: {backend!r}")
        return InMemoryEmbeddingCache(
            namespace=s.embedding_model,
            default_ttl_s=s.cache_ttl_s,
            max_entries=s.cache_max_entries or None,
            casefold=s.cache_casefold,
        )

    def _build_vector_index(self) -> VectorIndexPort:
        """Supports: qdrant | memory."""
        s = self.settings
        if s.vector_backend == "qdrant":
            from chat_recall.infrastructure.vectorstore.qdrant_index import (
                QdrantConfig,
                QdrantVectorIndex,
            )

            cfg = QdrantConfig(
                url=s.qdrant_url,
                api_key=s.qdrant_api_key or None,
                prefer_grpc=s.qdrant_prefer_grpc,
                timeout_s=s.qdrant_timeout_s,
            )
            return QdrantVectorIndex(cfg, collection=s.collection, max_limit=s.result_limit_max)

        if s.vector_backend == "memory":
            from chat_recall.infrastructure.vectorstore.memory_index import InMemoryVectorIndex

            return InMemoryVectorIndex(collection=s.collection, max_limit=s.result_limit_max)

        raise ValueError(f"Unknown VECTOR_BACKEND: {s.vector_backend!r}")

    def _build_work_queue(self) -> WorkQueuePort:
        """Supports: redis | memory."""
        backend = self.settings.workqueue_backend
        if backend == "redis":
            from chat_recall.infrastructure.queues.redis_streams_adapter import (
                RedisWorkQueueAdapter,
            )

            return RedisWorkQueueAdapter(self._redis_config())
        if backend == "memory":
            from chat_recall.infrastructure.queues.memory_queue import InMemoryWorkQueue

            return InMemoryWorkQueue()
        raise ValueError(f"Unknown WORKQUEUE_BACKEND: {backend!r}")

    def _build_telemetry(self) -> TelemetryPort:
        from chat_recall.infrastructure.telemetry.otel_adapter import (
            NoopTelemetry,
            OpenTelemetryAdapter,
            OtelConfig,
        )

        if not self.settings.telemetry_enabled:
            return NoopTelemetry()

        cfg = OtelConfig(
            service_name="chat-recall",
            otlp_endpoint=self.settings.otlp_endpoint or None,
            environment=self.settings.telemetry_environment,
        )
        return OpenTelemetryAdapter(cfg)


def build_container(settings: AppSettings | None = None) -> Container:
    """Example:
    container = build_container()
    result = container.get_search_use_case().execute(SearchRequest("u1", "pizza"))
    """
    return Container(settings)
