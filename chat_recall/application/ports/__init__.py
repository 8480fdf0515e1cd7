"""Application ports package."""

from chat_recall.application.ports.clock_port import ClockPort
from chat_recall.application.ports.embedding_cache_port import EmbeddingCachePort
from chat_recall.application.ports.embedding_port import EmbeddingProviderPort
from chat_recall.application.ports.telemetry_port import TelemetryPort
from chat_recall.application.ports.vector_index_port import VectorIndexPort
from chat_recall.application.ports.work_queue_port import WorkQueuePort

__all__ = [
    "ClockPort",
    "EmbeddingCachePort",
    "EmbeddingProviderPort",
    "TelemetryPort",
    "VectorIndexPort",
    "WorkQueuePort",
]
