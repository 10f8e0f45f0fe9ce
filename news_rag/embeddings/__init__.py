"""
Embeddings Module

Client for the Ollama embeddings API.
"""

from .ollama_service import (
    OllamaEmbeddingService,
    OllamaConnectionError,
    OllamaModelError,
    EmbeddingDimensionError,
    EmbeddingError,
    CacheStats
)

__all__ = [
    'OllamaEmbeddingService',
    'OllamaConnectionError',
    'OllamaModelError',
    'EmbeddingDimensionError',
    'EmbeddingError',
    'CacheStats'
]
