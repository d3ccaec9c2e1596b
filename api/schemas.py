"""Pydantic schemas for request/response validation."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, List, Literal

from core.state import (
    AgentRole,
    ChatMessage,
    FileContext,
    GeoLocation,
    Layout,
    Reference,
    SearchOptions,
    Sentiment,
    Session,
    SessionError,
    SessionStatus,
    Task,
)

Persona = Literal["general", "financial", "technical", "market"]


class SearchRequest(BaseModel):
    """Schema for submitting a new query."""
    query: str = Field(
        min_length=1,
        max_length=4000,
        description="Research query (max 4000 characters)"
    )
    model: str = Field(default="flash", description="'pro', 'flash' or an explicit model id")
    autonomous: bool = Field(default=True, description="Enable long-form reasoning")
    persona: Persona = "general"
    use_maps: bool = False
    location: GeoLocation | None = None
    file_context: FileContext | None = None
    provider: str | None = Field(default=None, description="Registered provider name")

    def to_options(self) -> SearchOptions:
        return SearchOptions(**self.model_dump(exclude={"query"}))


class FollowUpRequest(BaseModel):
    """Schema for a follow-up question on a finished session."""
    query: str = Field(min_length=1, max_length=4000)
    persona: Persona | None = None
    provider: str | None = None


class SessionResponse(BaseModel):
    """Snapshot of a session and its task board."""
    id: str
    query: str
    parent_id: str | None
    status: SessionStatus
    report: str
    log_lines: List[str]
    layout: Layout
    references: List[Reference]
    active_agents: List[AgentRole]
    has_payload: bool
    structured_payload: Any | None
    sentiment: Sentiment | None
    error: SessionError | None
    tasks: List[Task]
    history: List[ChatMessage]
    update_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: Session, tasks: List[Task]) -> "SessionResponse":
        data = session.model_dump(exclude={"options"})
        return cls(**data, tasks=tasks)


class SessionSummary(BaseModel):
    """Schema for session list entries."""
    id: str
    query: str
    status: SessionStatus
    layout: Layout
    created_at: datetime


class CancelResponse(BaseModel):
    id: str
    cancelled: bool
    status: SessionStatus
