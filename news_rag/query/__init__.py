"""
Query Module

Chat model client and the retrieval-augmented chat orchestrator.
"""

from .chat_model import OllamaChatModel, SYSTEM_PROMPT
from .rag_service import RAGService, ChatResponse, ChatState

__all__ = [
    'OllamaChatModel',
    'SYSTEM_PROMPT',
    'RAGService',
    'ChatResponse',
    'ChatState'
]
