"""Pure similarity functions used by the in-memory index."""

from math import sqrt

from .types import Score, Vector


def cosine(u: Vector, v: Vector) -> Score:
    """Compute cosine similarity between two vectors.

    Args:
        u: First vector
        v: Second vector

    Returns:
        Cosine similarity score between -1 and 1
    """
    dot = sum(a * b for a, b in zip(u, v, strict=False))
    nu = sqrt(sum(a * a for a in u)) or 1.0
    nv = sqrt(sum(b * b for b in v)) or 1.0
    return dot / (nu * nv)


def dot_product(u: Vector, v: Vector) -> Score:
    return sum(a * b for a, b in zip(u, v, strict=False))


def neg_euclid(u: Vector, v: Vector) -> Score:
    """Negated euclidean distance so that larger still means closer."""
    return -sqrt(sum((a - b) ** 2 for a, b in zip(u, v, strict=False)))


METRICS = {
    "cosine": cosine,
    "dot": dot_product,
    "euclid": neg_euclid,
}
