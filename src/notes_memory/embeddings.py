"""
Embedding providers for vector-based similarity search.

The default provider is model-free: it hashes tokens and token bigrams into a
fixed-width vector, so indexing never depends on network access or a
downloaded model. Any object satisfying ``EmbeddingProvider`` can replace it.
"""

from __future__ import annotations

import math
from array import array
from collections import Counter
from typing import Protocol

from .tokens import tokenize_for_search


_DEFAULT_DIM = 256
_PRIMARY_SEED = 2166136261
_SECONDARY_SEED = 2654435761
_BIGRAM_SEED = 16777619
_BIGRAM_BOOST = 0.35
_UINT32_MASK = 0xFFFFFFFF


class EmbeddingProvider(Protocol):
    """Protocol for turning text into fixed-dimension vectors."""

    dim: int

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts, preserving order."""

    def embed_query(self, query: str) -> list[float]:
        """Embed a single query text."""


def hash_token(token: str, seed: int) -> int:
    """32-bit FNV-style hash of *token* starting from *seed*."""
    value = seed & _UINT32_MASK
    for char in token:
        value ^= ord(char)
        value = (
            value
            + ((value << 1) + (value << 4) + (value << 7) + (value << 8) + (value << 24))
        ) & _UINT32_MASK
    return value


class HashingEmbeddingProvider:
    """Deterministic bag-of-tokens-plus-bigrams embedder."""

    def __init__(self, dim: int = _DEFAULT_DIM) -> None:
        if dim <= 0:
            raise ValueError("dim must be > 0")
        self.dim = dim

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def embed_query(self, query: str) -> list[float]:
        return self.embed(query)

    def embed(self, text: str) -> list[float]:
        """Return a unit vector for *text*, or the zero vector if it has no tokens."""
        tokens = tokenize_for_search(text)
        if not tokens:
            return [0.0] * self.dim

        vec = [0.0] * self.dim
        for token, count in Counter(tokens).items():
            weight = 1 + math.log1p(count)
            vec[hash_token(token, _PRIMARY_SEED) % self.dim] += weight
            # Second index takes half the weight with opposite sign to offset collisions.
            vec[hash_token(token, _SECONDARY_SEED) % self.dim] -= weight * 0.5

        for left, right in zip(tokens, tokens[1:]):
            vec[hash_token(f"{left}_{right}", _BIGRAM_SEED) % self.dim] += _BIGRAM_BOOST

        norm = math.sqrt(sum(value * value for value in vec))
        if norm <= 0:
            return [0.0] * self.dim
        return list(array("f", (value / norm for value in vec)))


def is_zero_vector(vector: list[float]) -> bool:
    return all(value == 0 for value in vector)
