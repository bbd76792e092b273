"""Per-actor turn and move quotas."""

import logging

from .models import QuotaState
from .types import Actor, MoveKind

logger = logging.getLogger(__name__)


class QuotaTracker:
    """Tracks turns used and remaining challenges/rebuttals for both actors.

    Limits are fixed when the session starts and are never replenished.
    """

    def __init__(self, max_turns: int = 5, max_challenges: int = 15, max_rebuttals: int = 5):
        self.max_turns = max_turns
        self._quotas: dict[Actor, QuotaState] = {
            actor: QuotaState(
                max_turns=max_turns,
                challenges_remaining=max_challenges,
                rebuttals_remaining=max_rebuttals,
            )
            for actor in Actor
        }

    def state(self, actor: Actor) -> QuotaState:
        return self._quotas[actor]

    def remaining(self, actor: Actor, kind: MoveKind) -> int | None:
        """Remaining allowance for a limited move kind, or None when unlimited."""
        quota = self._quotas[actor]
        if kind is MoveKind.CHALLENGE:
            return quota.challenges_remaining
        if kind is MoveKind.REBUTTAL:
            return quota.rebuttals_remaining
        return None

    def can_consume(self, actor: Actor, kind: MoveKind) -> bool:
        remaining = self.remaining(actor, kind)
        return remaining is None or remaining > 0

    def consume(self, actor: Actor, kind: MoveKind) -> bool:
        """Use one unit of the actor's quota for ``kind``.

        Returns False without mutating anything when the quota is exhausted.
        Kinds without a quota always succeed.
        """
        if not self.can_consume(actor, kind):
            logger.debug(f"{actor.value} has no {kind.value.lower()} moves left")
            return False

        quota = self._quotas[actor]
        if kind is MoveKind.CHALLENGE:
            quota.challenges_remaining -= 1
        elif kind is MoveKind.REBUTTAL:
            quota.rebuttals_remaining -= 1
        return True

    def turns_exhausted(self, actor: Actor) -> bool:
        return self._quotas[actor].turns_used >= self.max_turns

    def use_turn(self, actor: Actor) -> bool:
        """Count one turn for the actor; False if no turns are left."""
        if self.turns_exhausted(actor):
            return False
        self._quotas[actor].turns_used += 1
        return True

    def all_exhausted(self) -> bool:
        return all(self.turns_exhausted(actor) for actor in Actor)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {actor.value: quota.to_dict() for actor, quota in self._quotas.items()}
