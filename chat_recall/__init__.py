"""Semantic search over chat messages: embedding, vector indexing and user-scoped retrieval."""

__version__ = "0.1.0"
