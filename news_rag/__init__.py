"""
News RAG Chat Service

Answers questions about recently ingested news articles by retrieving
relevant passages from a vector index and feeding them, together with the
conversation so far, to a language model.
"""

__version__ = "0.1.0"
