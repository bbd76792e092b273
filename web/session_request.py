from pydantic import BaseModel, Field, field_validator

from config.settings import DialogueConfig


class SessionCreateRequest(BaseModel):
    """Request model for opening a new dialogue session."""

    topic: str
    # Optional per-session overrides of the configured limits
    max_turns: int | None = Field(default=None, ge=1)
    max_challenges: int | None = Field(default=None, ge=0)
    max_rebuttals: int | None = Field(default=None, ge=0)
    turn_seconds: float | None = None

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        """Reject blank topics."""
        v = v.strip()
        if not v:
            raise ValueError("Topic must not be empty")
        return v

    def apply_to(self, base: DialogueConfig) -> DialogueConfig:
        """Return ``base`` with this request's overrides applied."""
        overrides = self.model_dump(exclude_none=True, exclude={"topic"})
        return base.model_copy(update=overrides)
