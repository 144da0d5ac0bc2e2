"""Data models and schemas for the nimbridge proxy."""

from typing import Dict, List, Any, Optional
from pydantic import BaseModel, ConfigDict


class Message(BaseModel):
    """Chat message model. Unknown keys (name, tool_call_id, ...) are kept."""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Any] = None


class ChatCompletionRequest(BaseModel):
    """Request model for chat completions."""
    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: Optional[bool] = False


class OutboundRequest(BaseModel):
    """The request body sent to the backend, built once per inbound request."""
    model_config = ConfigDict(frozen=True)

    model: str
    messages: List[Dict[str, Any]]
    temperature: float
    max_tokens: int
    stream: bool = False
    extra_body: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        """Backend JSON body; extension parameters ride at the top level."""
        payload = self.model_dump(exclude={"extra_body"})
        if self.extra_body:
            payload.update(self.extra_body)
        return payload


class ResponseMessage(BaseModel):
    """Assistant message returned to the caller."""
    role: Optional[str] = "assistant"
    content: str = ""


class Choice(BaseModel):
    """Choice model for chat completions."""
    index: int
    message: ResponseMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Response model for chat completions."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Optional[Dict[str, Any]] = None


class LogEntry(BaseModel):
    """One diagnostic event as exposed by the /api/logs endpoints."""
    id: int
    timestamp: str
    level: str
    category: str
    message: str
    metadata: Dict[str, Any] = {}
