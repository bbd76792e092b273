"""Shared types and enums for the dialogue engine."""

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypedDict


class Actor(Enum):
    """The two dialogue participants."""

    PROPONENT = "Proponent"
    OPPONENT = "Opponent"

    @property
    def other(self) -> "Actor":
        return Actor.OPPONENT if self is Actor.PROPONENT else Actor.PROPONENT


class MoveKind(Enum):
    """Kinds of moves that can appear in the history log."""

    CLAIM = "Claim"
    CHALLENGE = "Challenge"
    JUSTIFY = "Justify"
    REBUTTAL = "Rebuttal"
    ACCEPT = "Accept"
    SKIP = "Skip"


class SessionPhase(Enum):
    """States of the dialogue controller."""

    AWAITING_MOVE = "awaiting_move"
    AWAITING_MOVE_TARGET = "awaiting_move_target"
    AWAITING_JUSTIFICATION = "awaiting_justification"
    ENDED = "ended"


class EndReason(Enum):
    """Why a session reached the ENDED phase."""

    ACCEPTED = "accepted"
    TURNS_EXHAUSTED = "turns_exhausted"
    ABANDONED = "abandoned"


# Move kinds a participant may choose from the move menu
SELECTABLE_MOVES: tuple[MoveKind, ...] = (
    MoveKind.CHALLENGE,
    MoveKind.REBUTTAL,
    MoveKind.ACCEPT,
    MoveKind.SKIP,
)


class MoveAppliedEventData(TypedDict):
    """Data structure for move_applied event callbacks."""

    actor: str
    kind: str
    content: str
    timestamp: str
    version: int
    turn: str
    phase: str


class NoticeEventData(TypedDict):
    """Data structure for notice event callbacks."""

    message: str
    version: int


class RebuttalsLoadedEventData(TypedDict):
    """Data structure for rebuttals_loaded event callbacks."""

    target_id: int
    rebuttals: list[dict[str, Any]]


class SessionEndedEventData(TypedDict):
    """Data structure for session_ended event callbacks."""

    reason: str
    actor: str | None
    version: int


type DialogueEventData = (
    MoveAppliedEventData | NoticeEventData | RebuttalsLoadedEventData | SessionEndedEventData
)

# Callback type alias for dialogue controller events
type DialogueEventCallback = Callable[[str, DialogueEventData], Awaitable[None]]
type TimeoutCallback = Callable[[int], Awaitable[object]]
