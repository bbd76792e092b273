"""Dialogue controller: the move-legality state machine for one session."""

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar
import asyncio
import logging

from config.settings import DialogueConfig
from stores.base_store import ContentStore, RebuttalCreateRequest, RebuttalSink
from .exceptions import (
    DialogueError,
    IllegalMoveError,
    SessionEndedError,
    StaleMoveError,
)
from .models import Move, MoveOutcome, Statement
from .path import DialoguePath, MoveLog
from .quota import QuotaTracker
from .rules import allowed_moves
from .state import SessionState
from .timer import TurnTimer
from .types import (
    Actor,
    DialogueEventCallback,
    DialogueEventData,
    EndReason,
    MoveAppliedEventData,
    MoveKind,
    NoticeEventData,
    RebuttalsLoadedEventData,
    SELECTABLE_MOVES,
    SessionEndedEventData,
    SessionPhase,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JUSTIFICATION_PHASE_MOVES = frozenset({MoveKind.JUSTIFY, MoveKind.SKIP, MoveKind.ACCEPT})

MOVE_VERBS = {
    MoveKind.CHALLENGE: "challenge",
    MoveKind.REBUTTAL: "rebut",
}

QUOTA_LABELS = {
    MoveKind.CHALLENGE: "challenges",
    MoveKind.REBUTTAL: "rebuttals",
}


class DialogueController:
    """Orchestrates a single Proponent/Opponent dialogue session.

    Every call that can change the session runs under one lock, so moves and
    timer expiries are applied strictly one at a time. Store fetches happen
    before any mutation: if a fetch fails, the session is left exactly as it
    was and the caller may retry the same move.
    """

    def __init__(
        self,
        config: DialogueConfig,
        store: ContentStore,
        sink: RebuttalSink | None = None,
        event_callback: DialogueEventCallback | None = None,
        timer: TurnTimer | None = None,
    ):
        self.config = config
        self.store = store
        if sink is None:
            if not isinstance(store, RebuttalSink):
                raise ValueError(
                    f"Store {store.store_name} cannot persist rebuttals; pass a sink"
                )
            sink = store
        self.sink: RebuttalSink = sink
        self.event_callback = event_callback
        self.timer = timer or TurnTimer(config.turn_seconds, config.timer_tick_seconds)
        self.state: SessionState | None = None

        self._lock = asyncio.Lock()
        self._pending_fetches: set[str] = set()
        self._outbox: list[tuple[str, DialogueEventData]] = []

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self, topic: str) -> SessionState:
        """Load the topic's root claim and hand the first turn to the Opponent."""
        async with self._lock:
            if self.state is not None:
                raise RuntimeError("Dialogue session already started")

            claim = await self._fetch(
                "root_claim", lambda: self.store.fetch_root_claim(topic)
            )

            root = Statement(
                id=claim.id,
                text=claim.text,
                parent_id=None,
                stance=Actor.PROPONENT,
                move_kind=MoveKind.CLAIM,
                source=claim.source,
            )
            state = SessionState(
                topic=topic,
                path=DialoguePath(root),
                history=MoveLog(),
                quotas=QuotaTracker(
                    max_turns=self.config.max_turns,
                    max_challenges=self.config.max_challenges,
                    max_rebuttals=self.config.max_rebuttals,
                ),
            )
            self.state = state

            # The Proponent's opening claim; the Opponent responds first
            self._finish_turn(state, Move(Actor.PROPONENT, MoveKind.CLAIM, claim.text), "")
            logger.info(f"Started dialogue on '{topic}' with root claim {root.id}")

        await self._flush_events()
        return state

    async def close(self) -> None:
        """Abandon the session and stop its timer."""
        async with self._lock:
            self.timer.stop()
            state = self.state
            if state is not None and not state.ended:
                state.version += 1
                self._end(state, EndReason.ABANDONED, None)
                self._queue_end_event(state)
                logger.info(f"Dialogue on '{state.topic}' abandoned")
        await self._flush_events()

    def _require_state(self) -> SessionState:
        if self.state is None:
            raise RuntimeError("No active dialogue session")
        return self.state

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def allowed_moves(self) -> frozenset[MoveKind]:
        """Moves the current actor may choose from the move menu."""
        state = self._require_state()
        if state.ended:
            return frozenset()
        if state.phase is SessionPhase.AWAITING_JUSTIFICATION:
            return JUSTIFICATION_PHASE_MOVES
        return allowed_moves(state.rule_context())

    def move_tracker(self) -> list[dict[str, Any]]:
        """Allowed moves with how many of each the current actor has left."""
        state = self._require_state()
        allowed = self.allowed_moves()
        quota = state.quotas.state(state.turn)

        tracker = []
        for kind in (*SELECTABLE_MOVES, MoveKind.JUSTIFY):
            if kind not in allowed:
                continue
            remaining = state.quotas.remaining(state.turn, kind)
            tracker.append(
                {
                    "type": kind.value,
                    "count": quota.turns_remaining if remaining is None else remaining,
                }
            )
        return tracker

    def snapshot(self) -> dict[str, Any]:
        state = self._require_state()
        data = state.to_dict()
        data["allowed_moves"] = sorted(kind.value for kind in self.allowed_moves())
        data["move_tracker"] = self.move_tracker()
        data["remaining_time"] = self.timer.remaining if self.timer.enabled else None
        return data

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    async def apply_move(
        self,
        kind: MoveKind,
        target: int | None = None,
        payload: str | Sequence[int] | None = None,
        expected_version: int | None = None,
        actor: Actor | None = None,
    ) -> MoveOutcome:
        """Validate and apply one move for the actor whose turn it is.

        Args:
            kind: The move being made
            target: Statement id for Challenge/Rebuttal target selection
            payload: Rebuttal text, or the selected candidate ids for Justify
            expected_version: State version the caller saw; stale calls are rejected
            actor: Participant making the move; rejected as stale when the turn has
                moved on, e.g. after a timeout skip

        Raises:
            SessionEndedError: The dialogue has already ended
            IllegalMoveError: The move is not permitted; nothing was changed
            NotFoundError: A store lookup found nothing; nothing was changed
            StoreUnavailableError: A store call failed; the move may be retried
        """
        async with self._lock:
            state = self._require_state()
            if actor is not None and actor is not state.turn and not state.ended:
                logger.info(f"Rejected late {kind.value} by {actor.value}")
                raise StaleMoveError.out_of_turn(actor.value, state.version)
            actor = state.turn
            try:
                outcome = await self._dispatch(state, actor, kind, target, payload, expected_version)
            except DialogueError as e:
                self._outbox.clear()
                logger.info(f"Rejected {kind.value} by {actor.value}: {e.message}")
                raise
        await self._flush_events()
        return outcome

    async def cancel_selection(self) -> SessionState:
        """Leave target selection without making a move."""
        async with self._lock:
            state = self._require_state()
            if state.phase is not SessionPhase.AWAITING_MOVE_TARGET:
                raise IllegalMoveError("There is no move selection to cancel.")
            state.clear_selection()
            state.phase = SessionPhase.AWAITING_MOVE
            return state

    async def _dispatch(
        self,
        state: SessionState,
        actor: Actor,
        kind: MoveKind,
        target: int | None,
        payload: str | Sequence[int] | None,
        expected_version: int | None,
    ) -> MoveOutcome:
        if state.ended:
            raise SessionEndedError()
        if expected_version is not None and expected_version != state.version:
            raise StaleMoveError.for_version(expected_version, state.version)
        if state.quotas.turns_exhausted(actor):
            raise IllegalMoveError(f"{actor.value} has used all their turns.")

        if state.phase is SessionPhase.AWAITING_JUSTIFICATION:
            match kind:
                case MoveKind.JUSTIFY:
                    return self._justify(state, actor, payload)
                case MoveKind.SKIP:
                    return self._skip(state, actor)
                case MoveKind.ACCEPT:
                    return self._accept(state, actor)
                case _:
                    raise IllegalMoveError(
                        "Justify the challenged statement or skip the turn."
                    )

        if kind is MoveKind.JUSTIFY:
            raise IllegalMoveError("There is no challenge awaiting justification.")
        if kind is MoveKind.CLAIM:
            raise IllegalMoveError("A claim can only open a dialogue.")

        permitted = allowed_moves(state.rule_context())
        if kind not in permitted:
            names = ", ".join(sorted(k.value for k in permitted))
            raise IllegalMoveError(f"{kind.value} is not allowed right now. Allowed: {names}.")

        if (
            state.phase is SessionPhase.AWAITING_MOVE_TARGET
            and kind is not state.pending_kind
            and kind not in (MoveKind.ACCEPT, MoveKind.SKIP)
        ):
            pending = state.pending_kind.value if state.pending_kind else "selection"
            raise IllegalMoveError(f"Finish or cancel the pending {pending} first.")

        if not state.quotas.can_consume(actor, kind):
            raise IllegalMoveError(f"You have no {QUOTA_LABELS[kind]} remaining.")

        match kind:
            case MoveKind.ACCEPT:
                return self._accept(state, actor)
            case MoveKind.SKIP:
                return self._skip(state, actor)
            case MoveKind.CHALLENGE:
                return await self._challenge(state, actor, target)
            case MoveKind.REBUTTAL:
                text = payload.strip() if isinstance(payload, str) else ""
                return await self._rebut(state, actor, target, text)
            case _:
                raise IllegalMoveError(f"Unsupported move: {kind.value}")

    def _accept(self, state: SessionState, actor: Actor) -> MoveOutcome:
        move = Move(actor, MoveKind.ACCEPT, "Accepted the argument.")
        state.history.append(move)
        state.version += 1
        self._end(state, EndReason.ACCEPTED, actor)
        state.notice = f"{actor.value} has accepted the argument. The debate ends."
        self._queue_move_event(state, move)
        logger.info(f"{actor.value} accepted; dialogue on '{state.topic}' ended")
        return self._outcome(state, move)

    def _skip(self, state: SessionState, actor: Actor) -> MoveOutcome:
        was_justifying = state.phase is SessionPhase.AWAITING_JUSTIFICATION
        state.quotas.use_turn(actor)
        state.clear_selection()
        state.phase = SessionPhase.AWAITING_MOVE

        notice = (
            "Turn skipped. No justification provided."
            if was_justifying
            else f"{actor.value} passed the turn."
        )
        move = Move(actor, MoveKind.SKIP, "Skipped the turn.")
        return self._finish_turn(state, move, notice)

    async def _challenge(
        self, state: SessionState, actor: Actor, target: int | None
    ) -> MoveOutcome:
        root = state.path.root
        if len(state.path) == 1 and target in (None, root.id):
            return await self._challenge_root(state, actor)
        if target is None:
            return self._arm(state, actor, MoveKind.CHALLENGE)
        return await self._challenge_statement(state, actor, target)

    def _guard_challenge_target(
        self, state: SessionState, actor: Actor, statement: Statement
    ) -> None:
        if statement.id in state.challenged_ids:
            raise IllegalMoveError("This argument has already been challenged.")
        if statement.stance is actor:
            raise IllegalMoveError("You cannot challenge your own justification.")

    async def _challenge_root(self, state: SessionState, actor: Actor) -> MoveOutcome:
        root = state.path.root
        self._guard_challenge_target(state, actor, root)

        tree = await self._fetch(
            "justification_tree",
            lambda: self.store.fetch_justification_tree(state.topic),
        )

        state.challenged_ids.add(root.id)
        state.quotas.consume(actor, MoveKind.CHALLENGE)
        state.quotas.use_turn(actor)
        state.clear_selection()
        state.challenged_id = root.id
        state.justification_tree = tree
        state.candidates = list(tree.walk())
        state.phase = SessionPhase.AWAITING_JUSTIFICATION

        move = Move(actor, MoveKind.CHALLENGE, f'Challenged: "{root.text}"')
        return self._finish_turn(state, move, f'Justify your argument: "{root.text}"')

    async def _challenge_statement(
        self, state: SessionState, actor: Actor, target: int
    ) -> MoveOutcome:
        statement = state.path.get(target)
        if statement is None:
            raise IllegalMoveError(f"Statement {target} is not part of this dialogue.")
        self._guard_challenge_target(state, actor, statement)

        argument_id = await self._fetch(
            "argument", lambda: self.store.resolve_argument_id(statement.id)
        )
        candidates = await self._fetch(
            "justifications", lambda: self.store.fetch_justifications(argument_id)
        )

        state.challenged_ids.add(statement.id)
        state.quotas.consume(actor, MoveKind.CHALLENGE)
        state.quotas.use_turn(actor)
        state.clear_selection()
        state.challenged_id = statement.id
        state.candidates = list(candidates)
        state.phase = SessionPhase.AWAITING_JUSTIFICATION

        move = Move(actor, MoveKind.CHALLENGE, f'Challenged: "{statement.text}"')
        return self._finish_turn(state, move, f'Justify your argument: "{statement.text}"')

    def _justify(
        self, state: SessionState, actor: Actor, payload: str | Sequence[int] | None
    ) -> MoveOutcome:
        if payload is None or isinstance(payload, str):
            selection: list[int] = []
        else:
            selection = list(dict.fromkeys(payload))
        if not selection:
            raise IllegalMoveError("Please select at least one reason or click Skip.")

        by_id = {candidate.id: candidate for candidate in state.candidates}
        unknown = [candidate_id for candidate_id in selection if candidate_id not in by_id]
        if unknown:
            raise IllegalMoveError(f"Not a candidate justification: {unknown}")

        parent_id = state.challenged_id if state.challenged_id is not None else state.path.root.id
        statements = [
            Statement(
                id=by_id[candidate_id].id,
                text=by_id[candidate_id].text,
                parent_id=parent_id,
                stance=actor,
                move_kind=MoveKind.CLAIM,
                source=by_id[candidate_id].source,
            )
            for candidate_id in selection
        ]
        state.path.check_appendable(statements)

        state.path.extend(statements)
        state.quotas.use_turn(actor)
        state.clear_selection()
        state.phase = SessionPhase.AWAITING_MOVE

        texts = ", ".join(f'"{s.text}"' for s in statements)
        move = Move(actor, MoveKind.JUSTIFY, f"Justified with: {texts}")
        return self._finish_turn(state, move, "", tuple(statements))

    async def _rebut(
        self, state: SessionState, actor: Actor, target: int | None, text: str
    ) -> MoveOutcome:
        if target is None and not text:
            if state.rebut_target_id is not None:
                raise IllegalMoveError("Please enter a valid rebuttal.")
            return self._arm(state, actor, MoveKind.REBUTTAL)

        selected_here = False
        if target is not None:
            if state.rebut_target_id is not None:
                raise IllegalMoveError("A rebuttal target is already selected.")
            await self._select_rebut_target(state, target)
            selected_here = True
            if not text:
                return self._outcome(state, None, MoveKind.REBUTTAL, actor)

        if not text:
            raise IllegalMoveError("Please enter a valid rebuttal.")
        if state.rebut_target_id is None:
            raise IllegalMoveError("Select a statement to rebut first.")

        try:
            return await self._submit_rebuttal(state, actor, text)
        except DialogueError:
            if selected_here:
                # A one-shot rebuttal either fully applies or leaves nothing behind
                state.clear_selection()
                state.phase = SessionPhase.AWAITING_MOVE
            raise

    async def _select_rebut_target(self, state: SessionState, target: int) -> None:
        statement = state.path.get(target)
        if statement is None or statement.is_root:
            raise IllegalMoveError("Select a justification to rebut.")

        records = await self._fetch("rebuttals", lambda: self.store.fetch_rebuttals(target))

        state.rebuttal_index[target] = list(records)
        state.phase = SessionPhase.AWAITING_MOVE_TARGET
        state.pending_kind = MoveKind.REBUTTAL
        state.rebut_target_id = target
        state.instruction = f'Write your rebuttal to: "{statement.text}"'
        loaded: RebuttalsLoadedEventData = {
            "target_id": target,
            "rebuttals": [r.to_dict() for r in records],
        }
        self._outbox.append(("rebuttals_loaded", loaded))

    async def _submit_rebuttal(
        self, state: SessionState, actor: Actor, text: str
    ) -> MoveOutcome:
        target_id = state.rebut_target_id
        if target_id is None:
            raise RuntimeError("No rebuttal target selected")

        request = RebuttalCreateRequest(
            target_claim_id=target_id, text=text, author=actor.value
        )
        saved = await self._fetch(
            "rebuttal_submit", lambda: self.sink.create_rebuttal(request)
        )

        statement = Statement(
            id=saved.id,
            text=saved.text,
            parent_id=target_id,
            stance=actor,
            move_kind=MoveKind.REBUTTAL,
            is_rebuttal=True,
            source=saved.author,
        )
        state.path.check_appendable([statement])

        state.path.append(statement)
        state.rebuttal_index.setdefault(target_id, []).append(saved)
        state.quotas.consume(actor, MoveKind.REBUTTAL)
        state.quotas.use_turn(actor)
        state.clear_selection()
        state.phase = SessionPhase.AWAITING_MOVE

        move = Move(actor, MoveKind.REBUTTAL, saved.text)
        return self._finish_turn(state, move, "", (statement,))

    def _arm(self, state: SessionState, actor: Actor, kind: MoveKind) -> MoveOutcome:
        """Enter target selection for a Challenge or Rebuttal."""
        if kind is MoveKind.REBUTTAL and len(state.path) <= 1:
            raise IllegalMoveError("There are no justifications to rebut yet.")
        if state.rebut_target_id is not None:
            raise IllegalMoveError("A rebuttal target is already selected.")

        state.phase = SessionPhase.AWAITING_MOVE_TARGET
        state.pending_kind = kind
        state.instruction = f"Click on a statement to {MOVE_VERBS[kind]}."
        logger.debug(f"{actor.value} selecting a target to {MOVE_VERBS[kind]}")
        return self._outcome(state, None, kind, actor)

    # ------------------------------------------------------------------
    # Timeout
    # ------------------------------------------------------------------

    async def handle_timeout(self, version: int) -> bool:
        """Skip the current turn if ``version`` still identifies it.

        Returns True when the skip was applied, False when the expiry was
        stale because a move got there first.
        """
        async with self._lock:
            state = self.state
            if state is None or state.ended or state.version != version:
                logger.debug(f"Discarding stale timeout for version {version}")
                return False

            actor = state.turn
            # An actor with no turns left passes without using a turn
            state.quotas.use_turn(actor)
            state.clear_selection()
            state.phase = SessionPhase.AWAITING_MOVE

            notice = f"{actor.value} ran out of time. Turn skipped."
            move = Move(actor, MoveKind.SKIP, "Skipped the turn (time ran out).")
            self._finish_turn(state, move, notice)
            timed_out: NoticeEventData = {"message": notice, "version": state.version}
            # Keep session_ended last when the skip used up the final turn
            position = len(self._outbox) - 1 if state.ended else len(self._outbox)
            self._outbox.insert(position, ("notice", timed_out))
            logger.info(f"Turn timer expired for {actor.value}; turn skipped")

        await self._flush_events()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _finish_turn(
        self,
        state: SessionState,
        move: Move,
        notice: str,
        statements: tuple[Statement, ...] = (),
    ) -> MoveOutcome:
        """Log the move, hand the turn over and restart the clock."""
        state.history.append(move)
        state.turn = move.actor.other
        state.version += 1
        state.notice = notice

        if state.quotas.all_exhausted():
            self._end(state, EndReason.TURNS_EXHAUSTED, None)
            state.notice = "Both sides have used all their turns. The debate ends."
        else:
            self.timer.start(self.handle_timeout, state.version)

        self._queue_move_event(state, move)
        logger.info(
            f"{move.actor.value} {move.kind.value} accepted; "
            f"turn -> {state.turn.value} (version {state.version})"
        )
        return self._outcome(state, move, statements=statements)

    def _end(self, state: SessionState, reason: EndReason, actor: Actor | None) -> None:
        self.timer.stop()
        state.clear_selection()
        state.phase = SessionPhase.ENDED
        state.end_reason = reason
        state.ended_by = actor

    def _queue_end_event(self, state: SessionState) -> None:
        if state.end_reason is None:
            raise RuntimeError("Session has not ended")
        ended: SessionEndedEventData = {
            "reason": state.end_reason.value,
            "actor": state.ended_by.value if state.ended_by else None,
            "version": state.version,
        }
        self._outbox.append(("session_ended", ended))

    def _outcome(
        self,
        state: SessionState,
        move: Move | None,
        kind: MoveKind | None = None,
        actor: Actor | None = None,
        statements: tuple[Statement, ...] = (),
    ) -> MoveOutcome:
        if move is not None:
            kind, actor = move.kind, move.actor
        if kind is None or actor is None:
            raise RuntimeError("Move outcome needs a move or a kind and actor")
        return MoveOutcome(
            kind=kind,
            actor=actor,
            committed=move is not None,
            notice=state.notice if move is not None else state.instruction,
            version=state.version,
            statements=statements,
        )

    def _queue_move_event(self, state: SessionState, move: Move) -> None:
        data: MoveAppliedEventData = {
            "actor": move.actor.value,
            "kind": move.kind.value,
            "content": move.content,
            "timestamp": move.timestamp.isoformat(),
            "version": state.version,
            "turn": state.turn.value,
            "phase": state.phase.value,
        }
        self._outbox.append(("move_applied", data))
        # The closing event always follows the move that ended the session
        if state.ended:
            self._queue_end_event(state)

    async def _fetch(self, purpose: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Run one store request, allowing a single outstanding call per purpose."""
        if purpose in self._pending_fetches:
            raise IllegalMoveError(f"A {purpose.replace('_', ' ')} request is already pending.")

        self._pending_fetches.add(purpose)
        try:
            return await fetch()
        except DialogueError as e:
            logger.error(f"Store request '{purpose}' failed: {type(e).__name__}: {e.message}")
            raise
        finally:
            self._pending_fetches.discard(purpose)

    async def _flush_events(self) -> None:
        events, self._outbox = self._outbox, []
        if not self.event_callback:
            return
        for event_type, data in events:
            try:
                await self.event_callback(event_type, data)
            except Exception as e:
                logger.error(f"Event callback failed for {event_type}: {e}")
