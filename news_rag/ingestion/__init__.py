"""
Ingestion Module

Rate-limited embedding and storage of fetched news articles.
"""

from .rate_limiter import FixedIntervalRateLimiter
from .pipeline import Article, NewsIngestor, load_articles

__all__ = [
    'FixedIntervalRateLimiter',
    'Article',
    'NewsIngestor',
    'load_articles'
]
