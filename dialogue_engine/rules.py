"""Move legality rules.

``allowed_moves`` is a pure function of the dialogue context. It is evaluated
fresh before every move offer and never caches anything between calls.
Duplicate-challenge and duplicate-rebuttal-target prevention is not expressed
here; the controller guards those when a move is accepted.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from .models import Move
from .types import Actor, MoveKind

INITIAL_OPPONENT_MOVES = frozenset({MoveKind.CHALLENGE, MoveKind.ACCEPT})
JUSTIFICATION_RESPONSE_MOVES = frozenset(
    {MoveKind.CHALLENGE, MoveKind.REBUTTAL, MoveKind.ACCEPT}
)
REBUTTAL_RESPONSE_MOVES = frozenset({MoveKind.ACCEPT, MoveKind.CHALLENGE})
DEFAULT_MOVES = frozenset(
    {MoveKind.CHALLENGE, MoveKind.REBUTTAL, MoveKind.ACCEPT, MoveKind.SKIP}
)


@dataclass(frozen=True)
class RuleContext:
    """Everything the legality rules are allowed to look at."""

    current_actor: Actor
    move_history: tuple[Move, ...]
    challenged_ids: frozenset[int]
    is_initial_opponent_turn: bool
    has_pending_justification_response: bool


def is_initial_opponent_turn(current_actor: Actor, path_length: int) -> bool:
    """True only for the Opponent's response to the lone root claim."""
    return current_actor is Actor.OPPONENT and path_length == 1


def has_pending_justification_response(
    move_history: Sequence[Move], current_actor: Actor
) -> bool:
    """Whether a justification was just supplied and the other side must respond.

    Looks only at the two most recent moves: a Challenge by one actor followed
    by a Justify by the other, with the justifying actor differing from the
    actor whose turn it is now.
    """
    if len(move_history) < 2:
        return False

    challenge_move, justify_move = move_history[-2], move_history[-1]
    return (
        challenge_move.actor is not justify_move.actor
        and challenge_move.kind is MoveKind.CHALLENGE
        and justify_move.kind is MoveKind.JUSTIFY
        and justify_move.actor is not current_actor
    )


def allowed_moves(ctx: RuleContext) -> frozenset[MoveKind]:
    """Return the move kinds permitted for the actor whose turn it is.

    Rules are checked in order and the first match wins:

    1. Opponent's very first move: challenge or accept.
    2. A justification awaits a response: challenge, rebut or accept.
    3. Proponent answering an Opponent rebuttal: accept or challenge.
    4. Otherwise every selectable move is allowed.
    """
    if ctx.is_initial_opponent_turn:
        return INITIAL_OPPONENT_MOVES

    if ctx.has_pending_justification_response:
        return JUSTIFICATION_RESPONSE_MOVES

    last_move = ctx.move_history[-1] if ctx.move_history else None
    if (
        ctx.current_actor is Actor.PROPONENT
        and last_move is not None
        and last_move.kind is MoveKind.REBUTTAL
        and last_move.actor is Actor.OPPONENT
    ):
        return REBUTTAL_RESPONSE_MOVES

    return DEFAULT_MOVES
