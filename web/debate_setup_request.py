from typing import Literal

from pydantic import BaseModel, Field, field_validator


class DebateSetupRequest(BaseModel):
    """Request model for starting a new debate."""

    topic: str = Field(min_length=1)
    models: list[str]
    category: str = Field(min_length=1)

    @field_validator("topic", "category")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: list[str]) -> list[str]:
        """Reject empty or duplicate model identifiers; roster size is checked by the engine."""
        if not v:
            raise ValueError("At least one model is required")
        if any(not model.strip() for model in v):
            raise ValueError("Model identifiers must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("Model identifiers must be unique")
        return v


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class StreamRequest(BaseModel):
    """Request model for the streaming relay."""

    model: str = Field(min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)


class FlagsUpdateRequest(BaseModel):
    """Partial update of operator flags; omitted fields keep their value."""

    kill_switch: bool | None = None
    pause: bool | None = None
    abort: bool | None = None
    enable_new_debates: bool | None = None
    enable_voting: bool | None = None
    enable_logging: bool | None = None
    motion_to_end_debate: bool | None = None
