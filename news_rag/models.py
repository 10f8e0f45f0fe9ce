"""
Domain Models

Documents held by the vector index, transient search results, and the
conversation turns kept in the session store.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ROLE_USER = 'user'
ROLE_ASSISTANT = 'assistant'
VALID_ROLES = (ROLE_USER, ROLE_ASSISTANT)


@dataclass(frozen=True)
class DocumentMetadata:
    """Source information for an ingested article."""
    title: str = ''
    link: str = ''
    published_at: Optional[str] = None
    source: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation used in API responses."""
        return {
            'title': self.title,
            'link': self.link,
            'publishedAt': self.published_at,
            'source': self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentMetadata':
        return cls(
            title=data.get('title') or '',
            link=data.get('link') or '',
            published_at=data.get('publishedAt', data.get('published_at')),
            source=data.get('source') or '',
        )


@dataclass(frozen=True)
class Document:
    """
    An embedded passage. Created once at ingestion time and never updated.

    Attributes:
        id: Opaque unique identifier
        text: Passage text fed to the chat model as context
        vector: Embedding of ``text``
        metadata: Source article information
    """
    text: str
    vector: List[float]
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class SearchResult:
    """A document matched by a query vector. Never persisted."""
    id: str
    text: str
    score: float
    metadata: DocumentMetadata

    @property
    def distance(self) -> float:
        return 1.0 - self.score


@dataclass(frozen=True)
class Turn:
    """One utterance in a conversation."""
    role: str
    content: str

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role {self.role!r}, expected one of {VALID_ROLES}")

    def to_dict(self) -> Dict[str, str]:
        return {'role': self.role, 'content': self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Turn':
        return cls(role=data['role'], content=data['content'])
