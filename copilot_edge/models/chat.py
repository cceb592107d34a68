"""Request and response models for the chat pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Message author role."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class CacheTier(str, Enum):
    """Which cache tier served a response."""
    LOCAL = "local"
    DURABLE = "durable"


class Message(BaseModel):
    """A single chat message."""
    role: Role = Field(..., description="Message role (user/assistant/system)")
    content: str = Field(..., description="Message content")

    model_config = ConfigDict(use_enum_values=True)


class DirectChatRequest(BaseModel):
    """Plain ``{"messages": [...]}`` request."""
    kind: Literal["direct"] = "direct"
    messages: List[Message] = Field(..., description="Ordered conversation")
    stream: Optional[bool] = Field(None, description="Stream the answer as SSE")
    model: Optional[str] = Field(None, description="Model override")
    temperature: Optional[float] = Field(None, description="Sampling temperature")
    max_tokens: Optional[int] = Field(None, description="Completion token cap")
    conversation_id: Optional[str] = Field(None, description="Conversation to persist to")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class OperationRequest(BaseModel):
    """CopilotKit-style GraphQL operation."""
    kind: Literal["operation"] = "operation"
    operation_name: str = Field(..., alias="operationName")
    variables: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        data = self.variables.get("data")
        return data if isinstance(data, dict) else None

    @property
    def thread_id(self) -> Optional[str]:
        data = self.data or {}
        thread_id = data.get("threadId")
        return thread_id if isinstance(thread_id, str) and thread_id else None


InboundRequest = Union[DirectChatRequest, OperationRequest]


@dataclass
class ChatEnvelope:
    """Canonical request that flows through the pipeline after validation."""

    kind: str
    messages: List[Message]
    model: Optional[str] = None
    stream: Optional[bool] = None
    conversation_id: Optional[str] = None
    thread_id: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @property
    def params(self) -> Dict[str, Any]:
        """Generation parameters that influence the answer."""
        params: Dict[str, Any] = {}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_tokens is not None:
            params["max_tokens"] = self.max_tokens
        return params

    def message_dicts(self) -> List[Dict[str, str]]:
        return [message.model_dump() for message in self.messages]


@dataclass
class ValidatedRequest:
    """Validator output: either a chat to run or a ready-made body."""

    envelope: Optional[ChatEnvelope] = None
    passthrough: Optional[Dict[str, Any]] = None

    @property
    def is_passthrough(self) -> bool:
        return self.passthrough is not None


@dataclass
class ResponseEnvelope:
    """Outcome of one pipeline run before it is rendered for the caller."""

    text: str = ""
    model: str = ""
    cached: bool = False
    cache_tier: Optional[CacheTier] = None
    streaming: bool = False
    fallback_used: bool = False
    conversation_id: Optional[str] = None
    stream: Optional[AsyncIterable[str]] = field(default=None, repr=False)
