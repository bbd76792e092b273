"""Two-party dialogue orchestration and move legality."""

from .core import DialogueController
from .types import Actor, EndReason, MoveKind, SessionPhase
from .models import Move, MoveOutcome, QuotaState, Statement
from .path import DialoguePath, MoveLog, TreeNode
from .quota import QuotaTracker
from .rules import RuleContext, allowed_moves
from .state import SessionState
from .timer import TurnTimer
from .exceptions import (
    DialogueError,
    IllegalMoveError,
    NotFoundError,
    SessionEndedError,
    StaleMoveError,
    StoreUnavailableError,
)

__all__ = [
    "DialogueController",
    "Actor",
    "EndReason",
    "MoveKind",
    "SessionPhase",
    "Move",
    "MoveOutcome",
    "QuotaState",
    "Statement",
    "DialoguePath",
    "MoveLog",
    "TreeNode",
    "QuotaTracker",
    "RuleContext",
    "allowed_moves",
    "SessionState",
    "TurnTimer",
    "DialogueError",
    "IllegalMoveError",
    "NotFoundError",
    "SessionEndedError",
    "StaleMoveError",
    "StoreUnavailableError",
]
