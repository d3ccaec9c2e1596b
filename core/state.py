from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union
import uuid

from pydantic import BaseModel, Field


class Layout(str, Enum):
    """Layout directive announced by the backend."""
    AUTO = "AUTO"
    REPORT_ONLY = "REPORT_ONLY"
    SPATIAL_SPLIT = "SPATIAL_SPLIT"
    DATA_FOCUS = "DATA_FOCUS"


class ReferenceKind(str, Enum):
    WEB = "web"
    MAP = "map"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class AgentRole(str, Enum):
    ARCHITECT = "architect"
    RESEARCHER = "researcher"
    KERNEL = "kernel"
    ANALYST = "analyst"
    AUDITOR = "auditor"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class Reference(BaseModel):
    """Grounding citation delivered alongside the stream."""
    uri: str
    title: str = ""
    kind: ReferenceKind = ReferenceKind.WEB


# Task mutations ------------------------------------------------------------

class TaskSpec(BaseModel):
    """One entry of a bulk task list as sent by the backend."""
    id: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING


class BulkTaskMutation(BaseModel):
    """Replace the whole task list of a session."""
    kind: Literal["bulk"] = "bulk"
    tasks: List[TaskSpec] = Field(default_factory=list)


class TaskActionMutation(BaseModel):
    """Create, update or delete a single task."""
    kind: Literal["action"] = "action"
    action: Literal["create", "update", "delete"]
    task_id: str
    description: Optional[str] = None
    status: Optional[TaskStatus] = None


TaskMutation = Annotated[
    Union[BulkTaskMutation, TaskActionMutation], Field(discriminator="kind")
]


class Task(BaseModel):
    id: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    session_id: str


# Stream protocol -----------------------------------------------------------

class StreamUpdate(BaseModel):
    """One provider emission. ``raw_text`` is cumulative, never a delta."""
    raw_text: str = ""
    task_mutations: List[TaskMutation] = Field(default_factory=list)
    references: List[Reference] = Field(default_factory=list)
    is_final: bool = False


class ClassifiedFragments(BaseModel):
    """Projection of the cumulative stream text into its channels."""
    report: str = ""
    log_lines: List[str] = Field(default_factory=list)
    layout: Layout = Layout.AUTO
    active_agents: List[AgentRole] = Field(default_factory=list)
    in_payload: bool = False
    has_payload: bool = False
    structured_payload: Optional[Any] = None


# Query options -------------------------------------------------------------

class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    content: str


class FileContext(BaseModel):
    """Already-encoded attachment passed through to the provider."""
    data: str
    mime_type: str
    name: Optional[str] = None


class GeoLocation(BaseModel):
    latitude: float
    longitude: float


class SearchOptions(BaseModel):
    model: str = "flash"
    autonomous: bool = True
    persona: str = "general"
    use_maps: bool = False
    location: Optional[GeoLocation] = None
    file_context: Optional[FileContext] = None
    provider: Optional[str] = None


# Session -------------------------------------------------------------------

class SessionError(BaseModel):
    category: str
    message: str


def _new_session_id() -> str:
    return uuid.uuid4().hex[:12]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """State of one query from submission to completion or failure."""
    id: str = Field(default_factory=_new_session_id)
    query: str
    options: SearchOptions = Field(default_factory=SearchOptions)
    history: List[ChatMessage] = Field(default_factory=list)
    parent_id: Optional[str] = None

    report: str = ""
    log_lines: List[str] = Field(default_factory=list)
    layout: Layout = Layout.AUTO
    references: List[Reference] = Field(default_factory=list)
    active_agents: List[AgentRole] = Field(default_factory=list)
    has_payload: bool = False
    structured_payload: Optional[Any] = None
    sentiment: Optional[Sentiment] = None

    status: SessionStatus = SessionStatus.INITIALIZING
    error: Optional[SessionError] = None
    update_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def conversation(self) -> List[ChatMessage]:
        """Prior turns plus this session's own turn, for a follow-up query."""
        turns = list(self.history)
        turns.append(ChatMessage(role="user", content=self.query))
        if self.report:
            turns.append(ChatMessage(role="model", content=self.report))
        return turns
