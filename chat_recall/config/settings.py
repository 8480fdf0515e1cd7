"""Application settings with environment-driven configuration.

This is the only module that reads environment variables; every other layer
receives its configuration through the container.
"""

import os
from dataclasses import dataclass, field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    Backend switches:
    - vector_backend: "qdrant" | "memory"
    - cache_backend: "redis" | "memory" | "none"
    - workqueue_backend: "redis" | "memory"
    """

    # ===== Vector Index Configuration =====
    vector_backend: str = field(
        default_factory=lambda: os.getenv("VECTOR_BACKEND", "qdrant").lower()
    )
    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_prefer_grpc: bool = field(default_factory=lambda: _flag("QDRANT_PREFER_GRPC", "false"))
    qdrant_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("QDRANT_TIMEOUT_S", "10"))
    )
    collection: str = field(
        default_factory=lambda: os.getenv("VECTOR_COLLECTION", "chat_messages_1536d")
    )

    # ===== Embedding Configuration =====
    embedding_base_url: str = field(default_factory=lambda: os.getenv("EMBEDDING_BASE_URL", ""))
    # Empty = api.openai.com; any OpenAI-compatible /v1 endpoint works
    embedding_api_key: str = field(default_factory=lambda: os.getenv("EMBEDDING_API_KEY", ""))
    embedding_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    )
    embedding_dimension: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_DIMENSION", "1536"))
    )
    embedding_batch_size: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "96"))
    )
    embedding_max_input_tokens: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_MAX_INPUT_TOKENS", "8191"))
    )
    embedding_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("EMBEDDING_TIMEOUT_S", "30"))
    )

    # ===== Embedding Cache Configuration =====
    cache_backend: str = field(default_factory=lambda: os.getenv("CACHE_BACKEND", "memory").lower())
    cache_ttl_s: float = field(
        default_factory=lambda: float(os.getenv("CACHE_TTL_S", str(7 * 24 * 3600)))
    )
    cache_max_entries: int = field(
        default_factory=lambda: int(os.getenv("CACHE_MAX_ENTRIES", "100000"))
    )
    # 0 = unbounded (memory backend only)
    cache_casefold: bool = field(default_factory=lambda: _flag("CACHE_CASEFOLD", "false"))

    # ===== Redis (cache + backlog) =====
    redis_host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    redis_port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    redis_db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    redis_password: str = field(default_factory=lambda: os.getenv("REDIS_PASSWORD", ""))

    # ===== Retry Policy (embedding provider) =====
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("RETRY_MAX_ATTEMPTS", "5"))
    )
    retry_backoff_base_s: float = field(
        default_factory=lambda: float(os.getenv("RETRY_BACKOFF_BASE_S", "0.5"))
    )
    retry_backoff_max_s: float = field(
        default_factory=lambda: float(os.getenv("RETRY_BACKOFF_MAX_S", "30"))
    )
    retry_jitter: float = field(default_factory=lambda: float(os.getenv("RETRY_JITTER", "0.25")))

    # ===== Deadlines =====
    query_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("QUERY_TIMEOUT_S", "5"))
    )
    ingest_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("INGEST_TIMEOUT_S", "30"))
    )

    # ===== Search Configuration =====
    result_limit_default: int = field(
        default_factory=lambda: int(os.getenv("RESULT_LIMIT_DEFAULT", "10"))
    )
    result_limit_max: int = field(
        default_factory=lambda: int(os.getenv("RESULT_LIMIT_MAX", "100"))
    )

    # ===== Ingestion Backlog =====
    workqueue_backend: str = field(
        default_factory=lambda: os.getenv("WORKQUEUE_BACKEND", "memory").lower()
    )
    ingest_backlog_topic: str = field(
        default_factory=lambda: os.getenv("INGEST_BACKLOG_TOPIC", "chat-recall-ingest-backlog")
    )
    ingest_backlog_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("INGEST_BACKLOG_MAX_ATTEMPTS", "5"))
    )
    # In-process drain period for the HTTP app; 0 = off (drain via CLI or endpoint)
    ingest_backlog_drain_interval_s: float = field(
        default_factory=lambda: float(os.getenv("INGEST_BACKLOG_DRAIN_INTERVAL_S", "30"))
    )
    ingest_backlog_drain_batch: int = field(
        default_factory=lambda: int(os.getenv("INGEST_BACKLOG_DRAIN_BATCH", "100"))
    )

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(default_factory=lambda: _flag("TELEMETRY_ENABLED", "false"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
