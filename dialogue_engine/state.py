"""Explicit per-session state owned by the dialogue controller."""

from dataclasses import dataclass, field
from typing import Any

from stores.base_store import JustificationNode, JustificationRecord, RebuttalRecord
from .path import DialoguePath, MoveLog
from .quota import QuotaTracker
from .rules import RuleContext, has_pending_justification_response, is_initial_opponent_turn
from .types import Actor, EndReason, MoveKind, SessionPhase


@dataclass
class SessionState:
    """Everything one dialogue session knows about itself.

    ``version`` increases every time the turn changes hands or the session
    ends. Timer expiries and client moves carry the version they were issued
    against, and anything older than the current version is discarded.
    """

    topic: str
    path: DialoguePath
    history: MoveLog
    quotas: QuotaTracker
    turn: Actor = Actor.OPPONENT
    phase: SessionPhase = SessionPhase.AWAITING_MOVE
    challenged_ids: set[int] = field(default_factory=set)
    rebuttal_index: dict[int, list[RebuttalRecord]] = field(default_factory=dict)
    pending_kind: MoveKind | None = None
    rebut_target_id: int | None = None
    challenged_id: int | None = None
    candidates: list[JustificationRecord] = field(default_factory=list)
    justification_tree: JustificationNode | None = None
    end_reason: EndReason | None = None
    ended_by: Actor | None = None
    version: int = 0
    notice: str = ""
    instruction: str = ""

    @property
    def ended(self) -> bool:
        return self.phase is SessionPhase.ENDED

    def rule_context(self) -> RuleContext:
        moves = self.history.moves
        return RuleContext(
            current_actor=self.turn,
            move_history=moves,
            challenged_ids=frozenset(self.challenged_ids),
            is_initial_opponent_turn=is_initial_opponent_turn(self.turn, len(self.path)),
            has_pending_justification_response=has_pending_justification_response(
                self.history.last(2), self.turn
            ),
        )

    def clear_selection(self) -> None:
        """Drop any armed move, pending rebuttal target and open challenge."""
        self.pending_kind = None
        self.rebut_target_id = None
        self.challenged_id = None
        self.candidates = []
        self.justification_tree = None
        self.instruction = ""

    def to_dict(self) -> dict[str, Any]:
        active_rebuttals: list[dict[str, object]] = []
        if self.rebut_target_id is not None:
            active_rebuttals = [
                r.to_dict() for r in self.rebuttal_index.get(self.rebut_target_id, [])
            ]

        return {
            "topic": self.topic,
            "phase": self.phase.value,
            "turn": self.turn.value,
            "version": self.version,
            "pending_kind": self.pending_kind.value if self.pending_kind else None,
            "rebut_target_id": self.rebut_target_id,
            "challenged_id": self.challenged_id,
            "challenged_ids": sorted(self.challenged_ids),
            "candidates": [c.model_dump() for c in self.candidates],
            "justification_tree": (
                self.justification_tree.model_dump() if self.justification_tree else None
            ),
            "active_rebuttals": active_rebuttals,
            "quotas": self.quotas.to_dict(),
            "path": self.path.to_list(),
            "tree": self.path.build_tree().to_dict(),
            "history": self.history.to_list(),
            "end_reason": self.end_reason.value if self.end_reason else None,
            "ended_by": self.ended_by.value if self.ended_by else None,
            "notice": self.notice,
            "instruction": self.instruction,
        }
