"""
Ollama Embedding Service

Maps text to a fixed-length vector through Ollama's embeddings API.
Provides:
- Connection and model verification
- Bounded in-memory LRU caching keyed by text hash
- Optional dimension verification
- An async entry point with a bounded timeout for request handlers
"""

import asyncio
import hashlib
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

import numpy as np
import requests

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics for cache performance tracking."""
    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    cache_size: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        return self.hits / self.total_requests if self.total_requests > 0 else 0.0

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            **asdict(self),
            'hit_rate': self.hit_rate
        }


class OllamaConnectionError(Exception):
    """Raised when unable to connect to Ollama service."""
    pass


class OllamaModelError(Exception):
    """Raised when specified model is not available."""
    pass


class EmbeddingDimensionError(Exception):
    """Raised when embedding dimensions don't match expected value."""
    pass


class EmbeddingError(Exception):
    """Raised when Ollama answers but no usable embedding comes back."""
    pass


class OllamaEmbeddingService:
    """
    Embedding provider backed by a local Ollama server.

    The synchronous ``generate_embedding`` performs the HTTP call;
    ``aembed`` runs it on a worker thread so request handlers never block
    the event loop.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        expected_dimensions: Optional[int] = None,
        timeout: int = 30,
        enable_cache: bool = True,
        cache_size: int = 1024
    ):
        """
        Initialize the Ollama embedding service.

        Args:
            model: Ollama model name (default: nomic-embed-text)
            base_url: Ollama base URL
            expected_dimensions: Reject embeddings of any other length (None disables)
            timeout: HTTP request timeout in seconds
            enable_cache: Cache embeddings in memory by text hash
            cache_size: Maximum cached embeddings; least recently used are evicted
        """
        if cache_size <= 0:
            raise ValueError(f"cache_size must be positive, got {cache_size}")

        self.model = model
        self.base_url = base_url.rstrip('/')
        self.expected_dimensions = expected_dimensions
        self.timeout = timeout
        self.enable_cache = enable_cache
        self.cache_size = cache_size

        self._memory_cache: 'OrderedDict[str, np.ndarray]' = OrderedDict()
        self._cache_lock = threading.Lock()
        self._cache_stats = CacheStats()

        logger.info(f"Initialized OllamaEmbeddingService with model: {self.model}")

    def _compute_hash(self, text: str) -> str:
        """Compute SHA-256 hash of text for caching."""
        return hashlib.sha256(text.encode('utf-8')).hexdigest()

    def verify_connection(self) -> bool:
        """
        Verify connection to Ollama service.

        Returns:
            True if connection successful

        Raises:
            OllamaConnectionError: If unable to connect
        """
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                timeout=self.timeout
            )
            response.raise_for_status()
            logger.info("Successfully connected to Ollama service")
            return True

        except requests.exceptions.ConnectionError:
            raise OllamaConnectionError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running (try: ollama serve)"
            )
        except requests.exceptions.Timeout:
            raise OllamaConnectionError(
                f"Connection to Ollama timed out after {self.timeout}s"
            )
        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error connecting to Ollama: {str(e)}")

    def verify_model_available(self) -> bool:
        """
        Verify that the specified model is available.

        Returns:
            True if model is available

        Raises:
            OllamaModelError: If model is not available
        """
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                timeout=self.timeout
            )
            response.raise_for_status()

            models = response.json().get('models', [])
            available_models = [m['name'] for m in models]

            # Check for exact match or match with :latest suffix
            model_found = self.model in available_models or f"{self.model}:latest" in available_models

            if not model_found:
                raise OllamaModelError(
                    f"Model '{self.model}' not found. Available models: {available_models}. "
                    f"Try: ollama pull {self.model}"
                )

            logger.info(f"Model '{self.model}' is available")
            return True

        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error checking model availability: {str(e)}")

    def _verify_embedding_dimensions(self, embedding: np.ndarray) -> None:
        if self.expected_dimensions is None:
            return

        actual_dims = len(embedding)
        if actual_dims != self.expected_dimensions:
            raise EmbeddingDimensionError(
                f"Expected {self.expected_dimensions} dimensions, got {actual_dims}. "
                f"This may indicate an issue with the model or API."
            )

    def generate_embedding(self, text: str, use_cache: bool = True) -> np.ndarray:
        """
        Generate embedding for a single text.

        Args:
            text: Input text
            use_cache: Whether to use caching

        Returns:
            Embedding vector as numpy array

        Raises:
            OllamaConnectionError: If unable to connect to Ollama
            EmbeddingDimensionError: If dimensions don't match expected value
            EmbeddingError: If the response carries no usable embedding
        """
        self._cache_stats.total_requests += 1

        text_hash = self._compute_hash(text)
        if use_cache and self.enable_cache:
            cached = self._cache_get(text_hash)
            if cached is not None:
                self._cache_stats.hits += 1
                logger.debug(f"Cache hit for text hash: {text_hash[:8]}...")
                return cached

        self._cache_stats.misses += 1

        try:
            response = requests.post(
                f"{self.base_url}/api/embeddings",
                json={
                    "model": self.model,
                    "prompt": text
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            embedding_list = response.json()['embedding']

        except requests.exceptions.ConnectionError:
            raise OllamaConnectionError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running."
            )
        except requests.exceptions.Timeout:
            raise OllamaConnectionError(
                f"Request timed out after {self.timeout}s"
            )
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 429:
                raise EmbeddingError("Ollama rate limit exceeded (429)")
            raise EmbeddingError(f"HTTP error from Ollama: {str(e)}")
        except requests.exceptions.RequestException as e:
            raise OllamaConnectionError(f"Error calling Ollama: {str(e)}")
        except (KeyError, ValueError) as e:
            raise EmbeddingError(f"Unexpected API response format: {e}")

        if not embedding_list:
            raise EmbeddingError("Ollama returned an empty embedding")

        embedding = np.array(embedding_list, dtype=np.float32)
        self._verify_embedding_dimensions(embedding)

        if use_cache and self.enable_cache:
            self._cache_put(text_hash, embedding)

        return embedding

    def _cache_get(self, text_hash: str) -> Optional[np.ndarray]:
        with self._cache_lock:
            embedding = self._memory_cache.get(text_hash)
            if embedding is not None:
                self._memory_cache.move_to_end(text_hash)
            return embedding

    def _cache_put(self, text_hash: str, embedding: np.ndarray) -> None:
        with self._cache_lock:
            self._memory_cache[text_hash] = embedding
            self._memory_cache.move_to_end(text_hash)
            while len(self._memory_cache) > self.cache_size:
                self._memory_cache.popitem(last=False)
                self._cache_stats.evictions += 1
            self._cache_stats.cache_size = len(self._memory_cache)

    async def aembed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        """
        Generate an embedding without blocking the event loop.

        Args:
            text: Input text
            timeout: Overall deadline in seconds (None waits indefinitely)

        Returns:
            Embedding as a list of floats

        Raises:
            asyncio.TimeoutError: If the deadline passes
            OllamaConnectionError, EmbeddingError: As ``generate_embedding``
        """
        embedding = await asyncio.wait_for(
            asyncio.to_thread(self.generate_embedding, text),
            timeout=timeout
        )
        return embedding.tolist()

    def get_cache_stats(self) -> Dict:
        """
        Get cache performance statistics.

        Returns:
            Dictionary with cache statistics
        """
        return self._cache_stats.to_dict()

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        with self._cache_lock:
            self._memory_cache.clear()
            self._cache_stats = CacheStats()
        logger.info("Cleared memory cache")
