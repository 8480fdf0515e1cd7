# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

import hashlib
import math
import re
import unicodedata

_WS = re.compile(r"\s+")


def normalize_text(text: str, casefold: bool = False) -> str:
    """
    Canonical form used both for embedding input and for cache keys.

    NFC, trimmed, inner whitespace collapsed; case-folding only when enabled.
    """
    norm = _WS.sub(" ", unicodedata.normalize("NFC", text or "")).strip()
    return norm.casefold() if casefold else norm


def cache_key(text: str, namespace: str, casefold: bool = False) -> str:
    """Content hash of the normalized text, namespaced by embedding model."""
    digest = hashlib.sha256()
    digest.update(namespace.encode("utf-8"))
    digest.update(b"\0")
    digest.update(normalize_text(text, casefold=casefold).encode("utf-8"))
    return digest.hexdigest()


def estimate_tokens(text: str) -> int:
    """Upper-bound-ish token estimate (~4 bytes per token for BPE tokenizers)."""
    return math.ceil(len(text.encode("utf-8")) / 4)
