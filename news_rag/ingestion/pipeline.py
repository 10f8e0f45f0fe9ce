"""
News Ingestion

Embeds already-fetched articles one at a time and adds them to the vector
store. Embedding calls are spaced by a shared rate limiter to stay within
the provider's limits; they are never parallelized.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from tqdm import tqdm

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..models import Document, DocumentMetadata
from ..storage.vector_store import VectorStore
from .rate_limiter import FixedIntervalRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Article:
    """A news item as delivered by a feed."""
    title: str
    content: str = ''
    link: str = ''
    published_at: Optional[str] = None
    source: str = ''

    @property
    def text(self) -> str:
        """Text that gets embedded and later served as context."""
        return f"{self.title}. {self.content}"

    def to_metadata(self) -> DocumentMetadata:
        return DocumentMetadata(
            title=self.title,
            link=self.link,
            published_at=self.published_at,
            source=self.source
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Article':
        return cls(
            title=data.get('title') or '',
            content=data.get('content') or data.get('contentSnippet') or '',
            link=data.get('link') or '',
            published_at=data.get('pubDate') or data.get('publishedAt') or data.get('published_at'),
            source=data.get('source') or ''
        )


def load_articles(path: str) -> List[Article]:
    """
    Read articles from a JSON file holding a list of article objects.

    Entries without a title are skipped.

    Raises:
        ValueError: If the file does not contain a JSON list
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list of articles in {path}")

    articles = [Article.from_dict(item) for item in data if isinstance(item, dict)]
    articles = [article for article in articles if article.title]
    logger.info(f"Loaded {len(articles)} articles from {path}")
    return articles


class NewsIngestor:
    """Sequential embed-and-insert loop for a batch of articles."""

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        vector_store: VectorStore,
        rate_limiter: Optional[FixedIntervalRateLimiter] = None,
        max_articles: int = 50,
        embedding_timeout: Optional[float] = None
    ):
        """
        Initialize the ingestor.

        Args:
            embedding_service: Service for generating article embeddings
            vector_store: Destination vector store
            rate_limiter: Limiter spacing embedding calls (default: 0.2s interval)
            max_articles: Articles beyond this count are dropped
            embedding_timeout: Deadline for each embedding call
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.rate_limiter = rate_limiter or FixedIntervalRateLimiter(0.2)
        self.max_articles = max_articles
        self.embedding_timeout = embedding_timeout

    async def ingest(
        self,
        articles: Iterable[Article],
        show_progress: bool = False
    ) -> Dict[str, Any]:
        """
        Embed and store articles one by one.

        Articles whose embedding or insert fails are skipped and counted.

        Args:
            articles: Articles to ingest
            show_progress: Show a progress bar

        Returns:
            Dictionary with total, ingested, failed and processing_time
        """
        start_time = time.time()
        batch = list(articles)[:self.max_articles]
        ingested = 0
        failed = 0

        logger.info(f"Ingesting {len(batch)} articles. Generating embeddings...")
        iterator = tqdm(batch, desc="Ingesting articles") if show_progress else batch

        for article in iterator:
            await self.rate_limiter.acquire()
            try:
                vector = await self.embedding_service.aembed(
                    article.text,
                    timeout=self.embedding_timeout
                )
            except Exception as e:
                logger.error(f"Error generating embedding for '{article.title}': {e}")
                failed += 1
                continue

            added = await self.vector_store.add_documents([
                Document(text=article.text, vector=vector, metadata=article.to_metadata())
            ])
            if added.ok:
                ingested += 1
            else:
                failed += 1

        processing_time = time.time() - start_time
        logger.info(
            f"Ingestion complete: {ingested} stored, {failed} failed "
            f"in {processing_time:.2f}s"
        )

        return {
            'total': len(batch),
            'ingested': ingested,
            'failed': failed,
            'processing_time': processing_time
        }
