"""
Pydantic schemas for API request/response validation.

Wire field names are camelCase; Python attributes are snake_case and mapped
through aliases.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for ``POST /api/chat``. Missing fields are reported as 400."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message: Optional[str] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")


class SourceSchema(BaseModel):
    """Metadata of an article used as context."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    link: str = ""
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    source: str = ""


class ChatResponseSchema(BaseModel):
    answer: str
    sources: List[SourceSchema] = Field(default_factory=list)


class TurnSchema(BaseModel):
    role: str
    content: str


class HistoryResponse(BaseModel):
    history: List[TurnSchema] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    documents: int
    session_store: str = Field(..., alias="sessionStore")
