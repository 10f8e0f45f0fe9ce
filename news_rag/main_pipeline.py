"""
Main Pipeline System

Composition root that wires every component together:
- Vector store and session store
- Embedding provider and chat model
- Retrieval-augmented chat service
- Rate-limited ingestion

Components are constructed once and injected; nothing is held in module
globals. The system moves through ``created -> ready -> closed``.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .config import Config, get_config
from .embeddings.ollama_service import OllamaEmbeddingService
from .errors import Result
from .ingestion.pipeline import Article, NewsIngestor, load_articles
from .ingestion.rate_limiter import FixedIntervalRateLimiter
from .query.chat_model import OllamaChatModel
from .query.rag_service import RAGService
from .storage.session_store import SessionStore
from .storage.vector_store import VectorStore

logger = logging.getLogger(__name__)


class SystemState(Enum):
    CREATED = 'created'
    READY = 'ready'
    CLOSED = 'closed'


class NewsQuerySystem:
    """
    Main system object shared by the HTTP server and the CLI.

    Provides high-level methods for:
    - Lifecycle (start/close)
    - Article ingestion (in-memory batch or JSON file)
    - Index reset
    - System statistics
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        embedding_service: Optional[OllamaEmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        session_store: Optional[SessionStore] = None,
        chat_model: Optional[OllamaChatModel] = None,
        rag_service: Optional[RAGService] = None,
        ingestor: Optional[NewsIngestor] = None
    ):
        """
        Initialize the system (dependency injection or defaults from config).

        Args:
            config: Configuration (default: global config)
            embedding_service: OllamaEmbeddingService instance
            vector_store: VectorStore instance
            session_store: SessionStore instance
            chat_model: OllamaChatModel instance
            rag_service: RAGService instance
            ingestor: NewsIngestor instance
        """
        self.config = config or get_config()
        cfg = self.config

        self.embedding_service = embedding_service or OllamaEmbeddingService(
            model=cfg.ollama_embed_model,
            base_url=cfg.ollama_base_url,
            timeout=cfg.ollama_timeout,
            enable_cache=cfg.enable_embedding_cache,
            cache_size=cfg.embedding_cache_size
        )
        self.vector_store = vector_store or VectorStore(
            db_dir=cfg.vector_db_dir,
            corpus_name=cfg.corpus_name
        )
        self.session_store = session_store or SessionStore(
            redis_url=cfg.redis_url,
            ttl_seconds=cfg.session_ttl_seconds
        )
        self.chat_model = chat_model or OllamaChatModel(
            model=cfg.ollama_chat_model,
            base_url=cfg.ollama_base_url,
            temperature=cfg.chat_temperature
        )
        self.rag_service = rag_service or RAGService(
            embedding_service=self.embedding_service,
            vector_store=self.vector_store,
            session_store=self.session_store,
            chat_model=self.chat_model,
            top_k=cfg.top_k,
            session_ttl=cfg.session_ttl_seconds,
            **cfg.get_timeout_config()
        )
        self.ingestor = ingestor or NewsIngestor(
            embedding_service=self.embedding_service,
            vector_store=self.vector_store,
            rate_limiter=FixedIntervalRateLimiter(cfg.ingest_delay),
            max_articles=cfg.max_articles,
            embedding_timeout=cfg.embedding_timeout
        )

        self.state = SystemState.CREATED

    async def start(self) -> None:
        """
        Connect the session store and open the vector index.

        Neither an unreachable Redis nor an unreadable index is fatal: the
        system starts with no session memory or an empty index.
        """
        if self.state is SystemState.READY:
            return
        if self.state is SystemState.CLOSED:
            raise RuntimeError("System has been closed")

        await self.session_store.connect()

        opened = await self.vector_store.initialize()
        if not opened.ok:
            logger.warning(f"Vector index unavailable, serving empty results: {opened.error}")

        self.state = SystemState.READY
        logger.info("NewsQuerySystem initialized successfully")

    async def close(self) -> None:
        """Release connections and the in-memory index."""
        if self.state is SystemState.CLOSED:
            return
        await self.session_store.close()
        await self.vector_store.close()
        self.state = SystemState.CLOSED
        logger.info("NewsQuerySystem closed")

    async def __aenter__(self) -> 'NewsQuerySystem':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def ingest_articles(
        self,
        articles: Iterable[Article],
        show_progress: bool = False
    ) -> Dict[str, Any]:
        """Embed and index a batch of articles."""
        return await self.ingestor.ingest(articles, show_progress=show_progress)

    async def ingest_file(self, file_path: str, show_progress: bool = False) -> Dict[str, Any]:
        """
        Ingest articles from a JSON file.

        Args:
            file_path: Path to a JSON list of articles
            show_progress: Show progress bar

        Returns:
            Dictionary with ingestion results
        """
        articles = load_articles(file_path)
        return await self.ingest_articles(articles, show_progress=show_progress)

    async def reset_index(self) -> Result[bool]:
        """Drop the whole collection."""
        return await self.vector_store.drop_collection()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get system statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            'state': self.state.value,
            'total_documents': self.vector_store.count(),
            'vector_store_stats': self.vector_store.get_stats(),
            'session_store': 'redis' if self.session_store.available else 'fallback',
            'cache_stats': self.embedding_service.get_cache_stats(),
        }
