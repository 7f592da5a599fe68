"""Typed EVI frames.

Inbound frames are JSON objects tagged by ``type``. Known tags parse into the
models below; any other tag becomes an ``UnknownEvent`` so new engine message
types never break a running call.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from evi.errors import MalformedFrameError


class ChatMessage(BaseModel):
    role: str = ""
    content: str = ""


class ProsodyInference(BaseModel):
    scores: dict[str, float] = Field(default_factory=dict)


class Inference(BaseModel):
    prosody: ProsodyInference | None = None


class ChatMetadata(BaseModel):
    type: Literal["chat_metadata"] = "chat_metadata"
    chat_id: str
    chat_group_id: str
    request_id: str | None = None


class AudioOutput(BaseModel):
    type: Literal["audio_output"] = "audio_output"
    data: str = Field(description="Base64-encoded audio, forwarded untouched.")
    id: str | None = None
    index: int | None = None


class UserMessage(BaseModel):
    type: Literal["user_message"] = "user_message"
    message: ChatMessage
    models: Inference = Field(default_factory=Inference)
    interim: bool = False
    from_text: bool = False


class AssistantMessage(BaseModel):
    type: Literal["assistant_message"] = "assistant_message"
    message: ChatMessage
    models: Inference = Field(default_factory=Inference)
    id: str | None = None
    from_text: bool = False


class UserInterruption(BaseModel):
    type: Literal["user_interruption"] = "user_interruption"
    time: int | None = None


class AssistantEnd(BaseModel):
    type: Literal["assistant_end"] = "assistant_end"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str | None = None
    code: str | None = None
    slug: str | None = None

    @field_validator("message", "code", "slug", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class UnknownEvent(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


InboundEvent = Union[
    ChatMetadata,
    AudioOutput,
    UserMessage,
    AssistantMessage,
    UserInterruption,
    AssistantEnd,
    ErrorEvent,
    UnknownEvent,
]

_INBOUND_MODELS: dict[str, type[BaseModel]] = {
    "chat_metadata": ChatMetadata,
    "audio_output": AudioOutput,
    "user_message": UserMessage,
    "assistant_message": AssistantMessage,
    "user_interruption": UserInterruption,
    "assistant_end": AssistantEnd,
    "error": ErrorEvent,
}


class TranscriptEvent(BaseModel):
    """Transcript notification handed to the collaborator."""

    role: Literal["user", "assistant"]
    content: str
    interim: bool = False
    emotions: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_message(cls, event: UserMessage | AssistantMessage) -> TranscriptEvent:
        prosody = event.models.prosody
        return cls(
            role="user" if isinstance(event, UserMessage) else "assistant",
            content=event.message.content,
            interim=event.interim if isinstance(event, UserMessage) else False,
            emotions=dict(prosody.scores) if prosody else {},
        )


class AudioInput(BaseModel):
    type: Literal["audio_input"] = "audio_input"
    data: str


class UserInput(BaseModel):
    type: Literal["user_input"] = "user_input"
    text: str


def parse_frame(raw: str | bytes) -> InboundEvent:
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedFrameError(f"Frame is not valid JSON: {exc}") from exc

    if not isinstance(message, dict):
        raise MalformedFrameError(f"Frame must be a JSON object, got {type(message).__name__}")

    event_type = message.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedFrameError("Frame has no 'type' tag")

    model = _INBOUND_MODELS.get(event_type)
    if model is None:
        return UnknownEvent(type=event_type, payload=message)

    try:
        return model.model_validate(message)
    except ValidationError as exc:
        raise MalformedFrameError(f"Invalid '{event_type}' frame: {exc.error_count()} validation error(s)") from exc


def encode_audio_input(data: str) -> str:
    return AudioInput(data=data).model_dump_json()


def encode_user_input(text: str) -> str:
    return UserInput(text=text).model_dump_json()
