"""
RAG Service for Conversational Question Answering

Runs one chat exchange through a fixed sequence of states:

RECEIVED -> EMBEDDING_QUERY -> RETRIEVING_CONTEXT -> LOADING_HISTORY ->
GENERATING_ANSWER -> PERSISTING_HISTORY -> RESPONDED, or FAILED.

Retrieval and history loading degrade to empty values when they fail,
history persistence is best-effort, and only bad input or a failed
generation aborts the request.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..embeddings.ollama_service import OllamaEmbeddingService
from ..errors import (
    ClientInputError,
    GenerationFailure,
    PersistenceFailure,
    Result,
    RetrievalDegraded,
)
from ..models import ROLE_ASSISTANT, ROLE_USER, DocumentMetadata, SearchResult, Turn
from ..storage.session_store import SessionStore
from ..storage.vector_store import VectorStore
from .chat_model import OllamaChatModel

logger = logging.getLogger(__name__)


class ChatState(Enum):
    RECEIVED = 'received'
    EMBEDDING_QUERY = 'embedding_query'
    RETRIEVING_CONTEXT = 'retrieving_context'
    LOADING_HISTORY = 'loading_history'
    GENERATING_ANSWER = 'generating_answer'
    PERSISTING_HISTORY = 'persisting_history'
    RESPONDED = 'responded'
    FAILED = 'failed'


@dataclass
class ChatResponse:
    """Outcome of a successful chat exchange."""
    answer: str
    sources: List[DocumentMetadata]
    context: str = ""
    history: List[Turn] = field(default_factory=list)
    state: ChatState = ChatState.RESPONDED
    degraded: bool = False
    persisted: bool = False
    response_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation returned by ``POST /api/chat``."""
        return {
            'answer': self.answer,
            'sources': [source.to_dict() for source in self.sources],
        }


class RAGService:
    """
    Retrieval-augmented chat over the news corpus.

    All collaborators are injected; the service holds no state of its own
    between requests, so concurrent exchanges only share the stores.
    """

    CONTEXT_SEPARATOR = "\n\n"

    def __init__(
        self,
        embedding_service: OllamaEmbeddingService,
        vector_store: VectorStore,
        session_store: SessionStore,
        chat_model: OllamaChatModel,
        top_k: int = 3,
        session_ttl: int = 3600,
        embedding_timeout: Optional[float] = 30.0,
        search_timeout: Optional[float] = 10.0,
        session_timeout: Optional[float] = 5.0,
        generation_timeout: Optional[float] = 120.0
    ):
        """
        Initialize the RAG service.

        Args:
            embedding_service: Service for generating query embeddings
            vector_store: Vector store for semantic search
            session_store: Store for conversation histories
            chat_model: Model used for answer generation
            top_k: Number of passages retrieved per question
            session_ttl: Expiry applied to histories on every write (seconds)
            embedding_timeout: Deadline for the query embedding
            search_timeout: Deadline for the vector search
            session_timeout: Deadline for each session store call
            generation_timeout: Deadline for the chat model call
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.session_store = session_store
        self.chat_model = chat_model
        self.top_k = top_k
        self.session_ttl = session_ttl
        self.embedding_timeout = embedding_timeout
        self.search_timeout = search_timeout
        self.session_timeout = session_timeout
        self.generation_timeout = generation_timeout

    @staticmethod
    def create_session() -> str:
        """Allocate a new session id. Nothing is stored until the first message."""
        return str(uuid.uuid4())

    @staticmethod
    def build_prompt(context: str, message: str) -> str:
        """Final user turn sent to the chat model."""
        return f"Context:\n{context}\n\nQuestion: {message}"

    def _transition(self, session_id: Optional[str], state: ChatState) -> ChatState:
        logger.debug(f"[session {session_id}] -> {state.name}")
        return state

    async def chat(self, session_id: Optional[str], message: Optional[str]) -> ChatResponse:
        """
        Answer ``message`` within the conversation ``session_id``.

        Args:
            session_id: Conversation identifier
            message: User's question

        Returns:
            ChatResponse with the answer and the metadata of the passages used

        Raises:
            ClientInputError: If session id or message is missing
            GenerationFailure: If the chat model fails or times out
        """
        start_time = time.time()
        self._transition(session_id, ChatState.RECEIVED)

        if not session_id or not message or not message.strip():
            self._transition(session_id, ChatState.FAILED)
            raise ClientInputError("Missing sessionId or message")

        logger.info(f"Received message for session {session_id}")
        degraded = False

        # Step 1: Embed the question
        self._transition(session_id, ChatState.EMBEDDING_QUERY)
        query_vector = await self._embed_query(message)
        degraded |= not query_vector.ok

        # Step 2: Retrieve context
        self._transition(session_id, ChatState.RETRIEVING_CONTEXT)
        results: List[SearchResult] = []
        if query_vector.value:
            retrieved = await self._retrieve(query_vector.value)
            degraded |= not retrieved.ok
            results = retrieved.value
        context = self.CONTEXT_SEPARATOR.join(result.text for result in results)
        sources = [result.metadata for result in results]

        # Step 3: Load prior turns
        self._transition(session_id, ChatState.LOADING_HISTORY)
        loaded = await self.get_history(session_id)
        history = loaded.value

        # Step 4: Generate the answer
        self._transition(session_id, ChatState.GENERATING_ANSWER)
        prompt = self.build_prompt(context, message)
        try:
            answer = await asyncio.wait_for(
                self.chat_model.generate(history, prompt),
                timeout=self.generation_timeout
            )
        except asyncio.TimeoutError as e:
            self._transition(session_id, ChatState.FAILED)
            logger.error(f"Chat model timed out after {self.generation_timeout}s")
            raise GenerationFailure(
                f"Chat model timed out after {self.generation_timeout}s"
            ) from e
        except Exception as e:
            self._transition(session_id, ChatState.FAILED)
            logger.error(f"Chat error: {e}")
            raise GenerationFailure(f"Error generating answer: {str(e)}") from e

        # Step 5: Persist the exchange
        self._transition(session_id, ChatState.PERSISTING_HISTORY)
        new_history = [
            *history,
            Turn(role=ROLE_USER, content=message),
            Turn(role=ROLE_ASSISTANT, content=answer),
        ]
        persisted = await self._persist_history(session_id, new_history)

        state = self._transition(session_id, ChatState.RESPONDED)
        return ChatResponse(
            answer=answer,
            sources=sources,
            context=context,
            history=new_history,
            state=state,
            degraded=degraded,
            persisted=persisted.ok and persisted.value,
            response_time=time.time() - start_time
        )

    async def _embed_query(self, message: str) -> Result[List[float]]:
        try:
            vector = await self.embedding_service.aembed(
                message,
                timeout=self.embedding_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Retrieval degraded: embedding timed out after {self.embedding_timeout}s"
            )
            return Result.failure(RetrievalDegraded("Embedding timed out"), [])
        except Exception as e:
            logger.warning(f"Retrieval degraded: error generating embedding: {e}")
            return Result.failure(RetrievalDegraded(str(e)), [])

        if vector is None or len(vector) == 0:
            logger.warning("Retrieval degraded: embedding provider returned no vector")
            return Result.failure(RetrievalDegraded("No query vector"), [])

        return Result.success(list(vector))

    async def _retrieve(self, query_vector: List[float]) -> Result[List[SearchResult]]:
        try:
            found = await asyncio.wait_for(
                self.vector_store.search(query_vector, k=self.top_k),
                timeout=self.search_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Retrieval degraded: search timed out after {self.search_timeout}s")
            return Result.failure(RetrievalDegraded("Search timed out"), [])
        except Exception as e:
            logger.warning(f"Retrieval degraded: error searching vector store: {e}")
            return Result.failure(RetrievalDegraded(str(e)), [])

        if not found.ok:
            logger.warning(f"Retrieval degraded: {found.error}")
            return Result.failure(RetrievalDegraded(str(found.error)), [])

        return found

    async def get_history(self, session_id: str) -> Result[List[Turn]]:
        """Load a session's turns; empty on any failure."""
        try:
            return await asyncio.wait_for(
                self.session_store.get(session_id),
                timeout=self.session_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Loading history for session {session_id} timed out")
            return Result.failure(PersistenceFailure("History load timed out"), [])
        except Exception as e:
            logger.warning(f"Error loading history for session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), [])

    async def _persist_history(self, session_id: str, turns: List[Turn]) -> Result[bool]:
        try:
            written = await asyncio.wait_for(
                self.session_store.set(session_id, turns, ttl=self.session_ttl),
                timeout=self.session_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Persisting history for session {session_id} timed out")
            return Result.failure(PersistenceFailure("History write timed out"), False)
        except Exception as e:
            logger.error(f"Error persisting history for session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), False)

        if not written.ok:
            logger.error(f"History for session {session_id} was not saved: {written.error}")
        return written

    async def clear_session(self, session_id: str) -> Result[bool]:
        """Delete a session's history. Succeeds for unknown sessions."""
        try:
            return await asyncio.wait_for(
                self.session_store.delete(session_id),
                timeout=self.session_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Clearing session {session_id} timed out")
            return Result.failure(PersistenceFailure("Session delete timed out"), False)
        except Exception as e:
            logger.error(f"Error clearing session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), False)
