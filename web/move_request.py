from pydantic import BaseModel, Field, field_validator

from dialogue_engine.types import Actor, MoveKind

# Lower-case spellings used by the move menu buttons
MOVE_KIND_ALIASES = {
    "challenge": MoveKind.CHALLENGE,
    "rebut": MoveKind.REBUTTAL,
    "rebuttal": MoveKind.REBUTTAL,
    "justify": MoveKind.JUSTIFY,
    "accept": MoveKind.ACCEPT,
    "skip": MoveKind.SKIP,
    "claim": MoveKind.CLAIM,
}


class MoveRequest(BaseModel):
    """Request model for a move by the actor whose turn it is.

    ``expected_version`` is the state version the client last saw. A move made
    against an older version, e.g. one that raced a turn timeout, is rejected.
    """

    kind: MoveKind
    expected_version: int = Field(ge=0)
    actor: Actor | None = None
    target_id: int | None = None
    text: str | None = None
    justification_ids: list[int] | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        """Accept move names regardless of case."""
        if isinstance(v, str):
            return MOVE_KIND_ALIASES.get(v.strip().lower(), v)
        return v

    @field_validator("actor", mode="before")
    @classmethod
    def normalize_actor(cls, v):
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    def payload(self) -> str | list[int] | None:
        """The move payload the controller expects for this kind."""
        if self.kind is MoveKind.JUSTIFY:
            return self.justification_ids or []
        if self.kind is MoveKind.REBUTTAL:
            return self.text
        return None
