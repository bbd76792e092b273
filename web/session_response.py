from typing import Any

from pydantic import BaseModel

from dialogue_engine.models import MoveOutcome


class SessionResponse(BaseModel):
    """Response model for dialogue session information."""

    id: str
    topic: str
    phase: str
    turn: str
    version: int
    allowed_moves: list[str]
    remaining_time: float | None = None
    end_reason: str | None = None
    notice: str = ""
    instruction: str = ""
    # Full snapshot: path, tree, history, quotas, candidates, rebuttals
    state: dict[str, Any]

    @classmethod
    def from_snapshot(cls, session_id: str, snapshot: dict[str, Any]) -> "SessionResponse":
        return cls(
            id=session_id,
            topic=snapshot["topic"],
            phase=snapshot["phase"],
            turn=snapshot["turn"],
            version=snapshot["version"],
            allowed_moves=snapshot["allowed_moves"],
            remaining_time=snapshot["remaining_time"],
            end_reason=snapshot["end_reason"],
            notice=snapshot["notice"],
            instruction=snapshot["instruction"],
            state=snapshot,
        )


class AllowedMovesResponse(BaseModel):
    """Response model for the move menu of the current actor."""

    turn: str
    version: int
    allowed_moves: list[str]
    move_tracker: list[dict[str, Any]]


class MoveResponse(BaseModel):
    """Response model for a processed move."""

    kind: str
    actor: str
    committed: bool
    notice: str
    version: int
    statements: list[dict[str, Any]]
    session: SessionResponse

    @classmethod
    def from_outcome(cls, outcome: MoveOutcome, session: SessionResponse) -> "MoveResponse":
        return cls(
            kind=outcome.kind.value,
            actor=outcome.actor.value,
            committed=outcome.committed,
            notice=outcome.notice,
            version=outcome.version,
            statements=[s.to_dict() for s in outcome.statements],
            session=session,
        )
