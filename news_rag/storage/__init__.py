"""
Storage Module

Vector index for embedded passages and the expiring session store.
"""

from .vector_store import VectorStore, IndexState
from .session_store import SessionStore

__all__ = [
    'VectorStore',
    'IndexState',
    'SessionStore'
]
