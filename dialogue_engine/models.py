"""Data models for the dialogue engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .types import Actor, MoveKind


@dataclass(frozen=True)
class Statement:
    """A node of the dialogue tree: a claim, justification or rebuttal."""

    id: int
    text: str
    parent_id: int | None
    stance: Actor
    move_kind: MoveKind
    is_rebuttal: bool = False
    source: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "parent_id": self.parent_id,
            "stance": self.stance.value,
            "move_kind": self.move_kind.value,
            "is_rebuttal": self.is_rebuttal,
            "source": self.source,
        }


@dataclass(frozen=True)
class Move:
    """A single accepted action in the move history."""

    actor: Actor
    kind: MoveKind
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor": self.actor.value,
            "kind": self.kind.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class QuotaState:
    """Per-actor allowance for turns, challenges and rebuttals."""

    max_turns: int
    challenges_remaining: int
    rebuttals_remaining: int
    turns_used: int = 0

    @property
    def turns_remaining(self) -> int:
        return max(0, self.max_turns - self.turns_used)

    def to_dict(self) -> dict[str, int]:
        return {
            "turns_used": self.turns_used,
            "max_turns": self.max_turns,
            "challenges_remaining": self.challenges_remaining,
            "rebuttals_remaining": self.rebuttals_remaining,
        }


@dataclass(frozen=True)
class MoveOutcome:
    """Result returned to the caller after a move call is processed."""

    kind: MoveKind
    actor: Actor
    committed: bool
    notice: str
    version: int
    statements: tuple[Statement, ...] = ()
