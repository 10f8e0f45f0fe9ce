"""
Shared fixtures for the test suite.
"""

import pytest

from news_rag.config import reset_config

CONFIG_ENV_KEYS = [
    'OLLAMA_BASE_URL', 'OLLAMA_EMBED_MODEL', 'OLLAMA_CHAT_MODEL', 'OLLAMA_TIMEOUT',
    'ENABLE_EMBEDDING_CACHE', 'EMBEDDING_CACHE_SIZE',
    'CHAT_TEMPERATURE', 'VECTOR_DB_DIR', 'CORPUS_NAME', 'TOP_K', 'REDIS_URL',
    'SESSION_TTL_SECONDS', 'EMBEDDING_TIMEOUT', 'SEARCH_TIMEOUT', 'SESSION_TIMEOUT',
    'GENERATION_TIMEOUT', 'INGEST_DELAY', 'MAX_ARTICLES', 'SEED_ARTICLES_PATH',
    'HOST', 'PORT', 'LOG_LEVEL',
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer .env files and shell variables out of the tests."""
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()
