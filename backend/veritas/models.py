"""
Pydantic Data Models

Defines all data structures used throughout the application:
- Stored records for the tiered answer cache
- Chat messages and session transcripts
- Request/Response models for API endpoints
- Result values returned by the orchestrator

Stored and exported payloads use camelCase field names (``lastEditedBy``,
``sessionId``); Python code uses the snake_case attribute names.
"""

import uuid
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Any
from enum import Enum

from veritas.errors import ErrorKind
from veritas.utils.temporal import now_ms


# ============================================================================
# Enums
# ============================================================================

class MessageRole(str, Enum):
    """Author role of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class AnswerSource(str, Enum):
    """Which tier produced a query answer."""
    PROMOTED = "promoted"      # Fast-path cache record
    MODEL = "model"            # Fresh provider call


# ============================================================================
# Cache Records
# ============================================================================

class CanonicalRecord(BaseModel):
    """Authoritative, edit-aware answer stored under ``truth:<query>``."""
    model_config = ConfigDict(populate_by_name=True)

    answer: str = Field(..., description="Stored answer text")
    last_edited_by: str = Field(..., alias="lastEditedBy", description="Human editor name or 'ai'")
    edited: bool = Field(..., description="True when written by a human edit")
    created: int = Field(..., description="First write time (ms epoch)")
    timestamp: int = Field(..., description="Last write time (ms epoch)")


class PromotedRecord(BaseModel):
    """Answer-only fast-path record stored under ``cache:<query>``."""
    answer: str = Field(..., description="Answer served without consulting the canonical record")
    timestamp: int = Field(..., description="Promotion time (ms epoch)")


class TopQuery(BaseModel):
    """One entry of the daily popularity ranking."""
    query: str = Field(..., description="Normalized query")
    count: int = Field(..., description="Usage counter value")


# ============================================================================
# Session Models
# ============================================================================

class ChatMessage(BaseModel):
    """A single transcript message."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Opaque message identifier")
    content: str = Field(..., description="Message text")
    user: str = Field(..., description="Author name ('user', editor name, or 'ai')")
    role: MessageRole = Field(..., description="user or assistant")


class SessionRecord(BaseModel):
    """Append-only transcript for one session id."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", description="Session identifier")
    messages: List[ChatMessage] = Field(default_factory=list, description="Messages in insertion order")
    created: int = Field(default_factory=now_ms, description="Creation time (ms epoch)")


# ============================================================================
# API Request Models
# ============================================================================

class LoadRequest(BaseModel):
    """Body of POST /api/load."""
    query: Optional[str] = None


class SaveRequest(BaseModel):
    """Body of POST /api/save."""
    query: Optional[str] = None
    answer: Optional[str] = None
    editor: Optional[str] = None


class QueryRequest(BaseModel):
    """Body of POST /query."""
    model_config = ConfigDict(populate_by_name=True)

    query: Optional[str] = None
    is_follow_up: bool = Field(default=False, alias="isFollowUp")


class ConversationAddRequest(BaseModel):
    """Body of POST /conversation/add."""
    query: Optional[str] = None
    answer: Optional[str] = None


# ============================================================================
# Result Models
# ============================================================================

class LoadResult(BaseModel):
    """Canonical answer lookup; ``None`` when no record exists."""
    answer: Optional[str] = None


class SaveResult(BaseModel):
    success: bool = True
    message: str = ""


class QueryResult(BaseModel):
    """Answer to a model-backed query."""
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    session_id: str = Field(..., alias="sessionId")
    source: AnswerSource


class ImportResult(BaseModel):
    success: bool = True
    message: str = "Session imported"


class ErrorDetail(BaseModel):
    """Structured failure distinguishable by kind."""
    kind: ErrorKind
    message: str


class OperationResult(BaseModel):
    """
    Outcome of an orchestrator operation.

    Exactly one of ``data`` or ``error`` is meaningful, selected by ``ok``.
    """
    ok: bool
    data: Optional[Any] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def success(cls, data: Any = None) -> "OperationResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "OperationResult":
        return cls(ok=False, error=ErrorDetail(kind=kind, message=message))
