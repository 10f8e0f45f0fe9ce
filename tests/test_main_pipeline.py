"""
Tests for the NewsQuerySystem composition root.
"""

import json
import pytest
import fakeredis
from unittest.mock import AsyncMock, Mock

from news_rag.config import Config
from news_rag.ingestion.pipeline import Article
from news_rag.main_pipeline import NewsQuerySystem, SystemState
from news_rag.storage.session_store import SessionStore
from news_rag.storage.vector_store import IndexState, VectorStore


@pytest.fixture
def embedding_service():
    service = Mock()
    service.aembed = AsyncMock(return_value=[1.0, 0.0])
    service.get_cache_stats.return_value = {'hits': 0, 'misses': 0}
    return service


@pytest.fixture
def system(tmp_path, embedding_service):
    chat_model = Mock()
    chat_model.generate = AsyncMock(return_value="answer")
    return NewsQuerySystem(
        config=Config(),
        embedding_service=embedding_service,
        vector_store=VectorStore(db_dir=str(tmp_path / "db")),
        session_store=SessionStore(),
        chat_model=chat_model
    )


class TestConstruction:
    """Test default wiring from configuration."""

    def test_defaults_follow_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv('VECTOR_DB_DIR', str(tmp_path / "vectors"))
        monkeypatch.setenv('TOP_K', '5')
        monkeypatch.setenv('INGEST_DELAY', '0.5')
        monkeypatch.setenv('MAX_ARTICLES', '10')

        system = NewsQuerySystem(config=Config(), chat_model=Mock())

        assert system.state is SystemState.CREATED
        assert system.rag_service.top_k == 5
        assert system.rag_service.vector_store is system.vector_store
        assert system.ingestor.max_articles == 10
        assert system.ingestor.rate_limiter.min_interval == 0.5
        assert system.vector_store.db_dir == str(tmp_path / "vectors")
        assert system.embedding_service.model == "nomic-embed-text"

    def test_timeouts_and_cache_follow_config(self, monkeypatch):
        monkeypatch.setenv('GENERATION_TIMEOUT', '45')
        monkeypatch.setenv('ENABLE_EMBEDDING_CACHE', 'no')
        monkeypatch.setenv('EMBEDDING_CACHE_SIZE', '256')

        system = NewsQuerySystem(config=Config(), chat_model=Mock())

        assert system.rag_service.generation_timeout == 45.0
        assert system.rag_service.session_timeout == 5.0
        assert system.embedding_service.enable_cache is False
        assert system.embedding_service.cache_size == 256

    def test_injected_components_are_shared(self, system, embedding_service):
        assert system.rag_service.embedding_service is embedding_service
        assert system.ingestor.embedding_service is embedding_service
        assert system.ingestor.vector_store is system.vector_store


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_close(self, system):
        await system.start()
        assert system.state is SystemState.READY

        await system.close()
        assert system.state is SystemState.CLOSED

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, system):
        await system.start()
        await system.start()

        assert system.state is SystemState.READY

    @pytest.mark.asyncio
    async def test_cannot_restart_after_close(self, system):
        await system.start()
        await system.close()

        with pytest.raises(RuntimeError, match="closed"):
            await system.start()

    @pytest.mark.asyncio
    async def test_context_manager(self, system):
        async with system as running:
            assert running.state is SystemState.READY

        assert system.state is SystemState.CLOSED

    @pytest.mark.asyncio
    async def test_start_survives_corrupt_index(self, tmp_path, embedding_service):
        db_dir = tmp_path / "db"
        db_dir.mkdir()
        (db_dir / "news_articles.index").write_bytes(b"garbage")
        system = NewsQuerySystem(
            config=Config(),
            embedding_service=embedding_service,
            vector_store=VectorStore(db_dir=str(db_dir)),
            session_store=SessionStore(),
            chat_model=Mock()
        )

        await system.start()

        assert system.state is SystemState.READY
        assert system.vector_store.count() == 0

    @pytest.mark.asyncio
    async def test_start_with_redis(self, tmp_path, embedding_service):
        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
        system = NewsQuerySystem(
            config=Config(),
            embedding_service=embedding_service,
            vector_store=VectorStore(db_dir=str(tmp_path / "db")),
            session_store=SessionStore(client=client),
            chat_model=Mock()
        )

        await system.start()

        assert system.get_stats()['session_store'] == 'redis'
        await system.close()


class TestIngestionAndReset:

    @pytest.mark.asyncio
    async def test_ingest_articles(self, system):
        system.ingestor.rate_limiter.min_interval = 0
        await system.start()

        results = await system.ingest_articles([
            Article(title="Storm hits coast", content="Winds."),
            Article(title="Harbour closed", content="Ferries stop."),
        ])

        assert results['ingested'] == 2
        assert system.vector_store.count() == 2

    @pytest.mark.asyncio
    async def test_ingest_file(self, system, tmp_path):
        system.ingestor.rate_limiter.min_interval = 0
        path = tmp_path / "articles.json"
        path.write_text(json.dumps([{'title': "Storm hits coast", 'content': "Winds."}]))

        results = await system.ingest_file(str(path))

        assert results['total'] == 1
        assert results['ingested'] == 1

    @pytest.mark.asyncio
    async def test_reset_index(self, system):
        system.ingestor.rate_limiter.min_interval = 0
        await system.ingest_articles([Article(title="Storm hits coast")])

        result = await system.reset_index()

        assert result.ok
        assert system.vector_store.count() == 0
        assert system.vector_store.state is IndexState.UNINITIALIZED


class TestStats:

    def test_get_stats(self, system):
        stats = system.get_stats()

        assert stats['state'] == 'created'
        assert stats['total_documents'] == 0
        assert stats['session_store'] == 'fallback'
        assert stats['vector_store_stats']['metric'] == 'cosine'
        assert stats['cache_stats'] == {'hits': 0, 'misses': 0}
