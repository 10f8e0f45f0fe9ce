"""
Test Suite for RAGService

Embedding and chat model are mocked; the vector store is a real FAISS
store in a temporary directory and the session store runs on fakeredis.
"""

import asyncio
import uuid
import pytest
import fakeredis
from unittest.mock import AsyncMock, Mock

from news_rag.errors import (
    ClientInputError,
    GenerationFailure,
    PersistenceFailure,
    Result,
)
from news_rag.models import Document, DocumentMetadata, Turn
from news_rag.query.rag_service import ChatResponse, ChatState, RAGService
from news_rag.storage.session_store import SessionStore
from news_rag.storage.vector_store import VectorStore


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def embedding_service():
    service = Mock()
    service.aembed = AsyncMock(return_value=[1.0, 0.0])
    return service


@pytest.fixture
def chat_model():
    model = Mock()
    model.generate = AsyncMock(return_value="A storm hit the coast.")
    return model


@pytest.fixture
def vector_store(tmp_path):
    return VectorStore(db_dir=str(tmp_path / "db"))


@pytest.fixture
def session_store():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return SessionStore(client=client)


@pytest.fixture
def rag_service(embedding_service, vector_store, session_store, chat_model):
    return RAGService(
        embedding_service=embedding_service,
        vector_store=vector_store,
        session_store=session_store,
        chat_model=chat_model,
        top_k=3,
        session_ttl=3600
    )


def article(doc_id, vector, text):
    return Document(
        id=doc_id,
        text=text,
        vector=vector,
        metadata=DocumentMetadata(
            title=f"Title {doc_id}",
            link=f"https://news.example/{doc_id}",
            published_at="Tue, 02 Jan 2024 10:00:00 GMT",
            source="Example News"
        )
    )


# ============================================================================
# Sessions and Prompt
# ============================================================================

class TestSessionsAndPrompt:

    def test_create_session_returns_uuid(self, rag_service):
        first = rag_service.create_session()
        second = rag_service.create_session()

        assert str(uuid.UUID(first)) == first
        assert first != second

    def test_build_prompt(self):
        prompt = RAGService.build_prompt("passage one\n\npassage two", "What happened?")

        assert prompt == "Context:\npassage one\n\npassage two\n\nQuestion: What happened?"

    def test_build_prompt_empty_context(self):
        assert RAGService.build_prompt("", "hello") == "Context:\n\n\nQuestion: hello"


# ============================================================================
# Chat Exchange
# ============================================================================

class TestChat:
    """Test the full chat exchange."""

    @pytest.mark.asyncio
    async def test_first_message_on_empty_index(self, rag_service, chat_model):
        """No collection yet: answer without context and save both turns."""
        response = await rag_service.chat("s1", "hello")

        assert isinstance(response, ChatResponse)
        assert response.state is ChatState.RESPONDED
        assert response.answer == "A storm hit the coast."
        assert response.sources == []
        assert response.context == ""
        assert response.persisted is True
        assert not response.degraded

        chat_model.generate.assert_awaited_once_with([], "Context:\n\n\nQuestion: hello")

        history = (await rag_service.get_history("s1")).value
        assert history == [
            Turn(role="user", content="hello"),
            Turn(role="assistant", content="A storm hit the coast."),
        ]

    @pytest.mark.asyncio
    async def test_context_joins_top_three_passages(self, rag_service, vector_store, chat_model):
        await vector_store.add_documents([
            article("a", [1.0, 0.0], "Storm hits coast"),
            article("b", [0.9, 0.1], "Harbour closed"),
            article("c", [0.8, 0.2], "Ferries cancelled"),
            article("d", [0.0, 1.0], "Election results"),
        ])

        response = await rag_service.chat("s1", "What about the storm?")

        assert response.context == "Storm hits coast\n\nHarbour closed\n\nFerries cancelled"
        assert [s.title for s in response.sources] == ["Title a", "Title b", "Title c"]
        prompt = chat_model.generate.await_args.args[1]
        assert prompt.startswith("Context:\nStorm hits coast\n\n")
        assert prompt.endswith("\n\nQuestion: What about the storm?")

    @pytest.mark.asyncio
    async def test_history_grows_by_two_per_exchange(self, rag_service, chat_model):
        await rag_service.chat("s1", "first")
        chat_model.generate.return_value = "second answer"

        await rag_service.chat("s1", "second")

        history = (await rag_service.get_history("s1")).value
        assert [t.content for t in history] == [
            "first", "A storm hit the coast.", "second", "second answer"
        ]
        sent_history = chat_model.generate.await_args.args[0]
        assert [t.role for t in sent_history] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, rag_service):
        await rag_service.chat("s1", "hello")

        assert (await rag_service.get_history("s2")).value == []

    @pytest.mark.asyncio
    async def test_response_wire_format(self, rag_service, vector_store):
        await vector_store.add_documents([article("a", [1.0, 0.0], "Storm hits coast")])

        payload = (await rag_service.chat("s1", "storm?")).to_dict()

        assert payload == {
            'answer': "A storm hit the coast.",
            'sources': [{
                'title': "Title a",
                'link': "https://news.example/a",
                'publishedAt': "Tue, 02 Jan 2024 10:00:00 GMT",
                'source': "Example News",
            }]
        }


class TestClientInput:
    """Missing fields are rejected before any work is done."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id,message", [
        (None, "hello"),
        ("", "hello"),
        ("s1", None),
        ("s1", ""),
        ("s1", "   "),
    ])
    async def test_missing_fields(self, rag_service, embedding_service, session_id, message):
        with pytest.raises(ClientInputError, match="Missing sessionId or message"):
            await rag_service.chat(session_id, message)

        embedding_service.aembed.assert_not_awaited()


class TestDegradation:
    """Retrieval and history failures degrade instead of failing."""

    @pytest.mark.asyncio
    async def test_embedding_failure_answers_without_context(
        self, rag_service, embedding_service, chat_model
    ):
        embedding_service.aembed.side_effect = ConnectionError("ollama down")

        response = await rag_service.chat("s1", "hello")

        assert response.degraded
        assert response.sources == []
        chat_model.generate.assert_awaited_once_with([], "Context:\n\n\nQuestion: hello")

    @pytest.mark.asyncio
    async def test_embedding_timeout_degrades(self, rag_service, embedding_service):
        embedding_service.aembed.side_effect = asyncio.TimeoutError()

        response = await rag_service.chat("s1", "hello")

        assert response.degraded
        assert response.context == ""

    @pytest.mark.asyncio
    async def test_empty_vector_degrades(self, rag_service, embedding_service):
        embedding_service.aembed.return_value = []

        response = await rag_service.chat("s1", "hello")

        assert response.degraded
        assert response.sources == []

    @pytest.mark.asyncio
    async def test_search_failure_degrades(self, rag_service, vector_store):
        await vector_store.add_documents([article("a", [1.0, 0.0, 0.0], "Storm")])

        # Query vector has two dimensions, index has three.
        response = await rag_service.chat("s1", "hello")

        assert response.degraded
        assert response.sources == []
        assert response.answer == "A storm hit the coast."

    @pytest.mark.asyncio
    async def test_search_timeout_degrades(self, embedding_service, session_store, chat_model):
        async def slow_search(*args, **kwargs):
            await asyncio.sleep(1)
            return Result.success([])

        slow_store = Mock()
        slow_store.search = slow_search
        service = RAGService(
            embedding_service, slow_store, session_store, chat_model, search_timeout=0.05
        )

        response = await service.chat("s1", "hello")

        assert response.degraded
        assert response.sources == []

    @pytest.mark.asyncio
    async def test_history_load_failure_uses_empty_history(
        self, embedding_service, vector_store, chat_model
    ):
        broken_sessions = Mock()
        broken_sessions.get = AsyncMock(side_effect=ConnectionError("redis gone"))
        broken_sessions.set = AsyncMock(return_value=Result.success(True))
        service = RAGService(embedding_service, vector_store, broken_sessions, chat_model)

        response = await service.chat("s1", "hello")

        assert response.answer == "A storm hit the coast."
        assert chat_model.generate.await_args.args[0] == []

    @pytest.mark.asyncio
    async def test_persistence_failure_still_responds(
        self, embedding_service, vector_store, chat_model
    ):
        sessions = Mock()
        sessions.get = AsyncMock(return_value=Result.success([]))
        sessions.set = AsyncMock(
            return_value=Result.failure(PersistenceFailure("write failed"), False)
        )
        service = RAGService(embedding_service, vector_store, sessions, chat_model)

        response = await service.chat("s1", "hello")

        assert response.state is ChatState.RESPONDED
        assert response.persisted is False
        assert len(response.history) == 2

    @pytest.mark.asyncio
    async def test_persist_passes_ttl(self, embedding_service, vector_store, chat_model):
        sessions = Mock()
        sessions.get = AsyncMock(return_value=Result.success([]))
        sessions.set = AsyncMock(return_value=Result.success(True))
        service = RAGService(
            embedding_service, vector_store, sessions, chat_model, session_ttl=90
        )

        await service.chat("s1", "hello")

        assert sessions.set.await_args.kwargs['ttl'] == 90

    @pytest.mark.asyncio
    async def test_fallback_session_store_keeps_nothing(
        self, embedding_service, vector_store, chat_model
    ):
        service = RAGService(embedding_service, vector_store, SessionStore(), chat_model)

        first = await service.chat("s1", "hello")
        await service.chat("s1", "again")

        assert first.persisted is False
        assert chat_model.generate.await_args.args[0] == []


class TestGenerationFailure:
    """A failed chat model call fails the request and saves nothing."""

    @pytest.mark.asyncio
    async def test_model_error_raises(self, rag_service, chat_model):
        chat_model.generate.side_effect = RuntimeError("model offline")

        with pytest.raises(GenerationFailure):
            await rag_service.chat("s1", "hello")

        assert (await rag_service.get_history("s1")).value == []

    @pytest.mark.asyncio
    async def test_model_timeout_raises(self, embedding_service, vector_store, session_store):
        async def slow_generate(history, prompt):
            await asyncio.sleep(1)
            return "too late"

        model = Mock()
        model.generate = slow_generate
        service = RAGService(
            embedding_service, vector_store, session_store, model, generation_timeout=0.05
        )

        with pytest.raises(GenerationFailure, match="timed out"):
            await service.chat("s1", "hello")


class TestClearSession:

    @pytest.mark.asyncio
    async def test_clear_removes_history(self, rag_service):
        await rag_service.chat("s1", "hello")

        result = await rag_service.clear_session("s1")

        assert result.ok
        assert (await rag_service.get_history("s1")).value == []

    @pytest.mark.asyncio
    async def test_clear_unknown_session_succeeds(self, rag_service):
        assert (await rag_service.clear_session("unknown")).ok

    @pytest.mark.asyncio
    async def test_clear_backend_error_is_reported(
        self, embedding_service, vector_store, chat_model
    ):
        sessions = Mock()
        sessions.delete = AsyncMock(side_effect=ConnectionError("redis gone"))
        service = RAGService(embedding_service, vector_store, sessions, chat_model)

        result = await service.clear_session("s1")

        assert not result.ok
        assert isinstance(result.error, PersistenceFailure)
