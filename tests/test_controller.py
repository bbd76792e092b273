"""Tests for the dialogue controller state machine."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from config.settings import DialogueConfig
from conftest import FlakyStore, RecordingSink
from dialogue_engine.core import DialogueController
from dialogue_engine.exceptions import (
    IllegalMoveError,
    SessionEndedError,
    StaleMoveError,
    StoreUnavailableError,
)
from dialogue_engine.types import Actor, EndReason, MoveKind, SessionPhase
from stores.base_store import RebuttalCreateRequest

ALL_KINDS = list(MoveKind)


async def start_television(controller: DialogueController) -> None:
    await controller.start("Television")


async def open_with_justification(controller: DialogueController, ids: list[int]) -> None:
    """Opponent challenges the root and the Proponent justifies with ``ids``."""
    await controller.start("Television")
    await controller.apply_move(MoveKind.CHALLENGE)
    await controller.apply_move(MoveKind.JUSTIFY, payload=ids)


def test_fresh_session_offers_challenge_or_accept(memory_store, dialogue_config) -> None:
    """The Opponent opens against the lone root claim with Challenge or Accept."""
    controller = DialogueController(dialogue_config, memory_store)
    state = asyncio.run(controller.start("Television"))

    assert state.path.root.text == "Television is harmful to children."
    assert state.path.root.stance is Actor.PROPONENT
    assert len(state.path) == 1
    assert state.turn is Actor.OPPONENT
    assert state.phase is SessionPhase.AWAITING_MOVE
    assert controller.allowed_moves() == {MoveKind.CHALLENGE, MoveKind.ACCEPT}
    assert controller.move_tracker() == [
        {"type": "Challenge", "count": 15},
        {"type": "Accept", "count": 5},
    ]


def test_unknown_topic_leaves_controller_unstarted(memory_store, dialogue_config) -> None:
    """A missing topic reports NotFound and no session is created."""
    from dialogue_engine.exceptions import NotFoundError

    controller = DialogueController(dialogue_config, memory_store)
    with pytest.raises(NotFoundError, match="Topic not found"):
        asyncio.run(controller.start("Nonexistent"))
    assert controller.state is None


def test_challenging_root_awaits_justification(memory_store, dialogue_config) -> None:
    """Challenging the root uses a challenge and hands the Proponent the tree."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        return await controller.apply_move(MoveKind.CHALLENGE)

    outcome = asyncio.run(scenario())
    state = controller.state
    assert state is not None

    assert outcome.committed is True
    assert outcome.notice == 'Justify your argument: "Television is harmful to children."'
    assert state.path.root.id in state.challenged_ids
    assert state.quotas.state(Actor.OPPONENT).challenges_remaining == 14
    assert state.turn is Actor.PROPONENT
    assert state.phase is SessionPhase.AWAITING_JUSTIFICATION
    assert [c.id for c in state.candidates] == [2, 4, 5, 3, 6, 7, 8]
    assert controller.allowed_moves() == {MoveKind.JUSTIFY, MoveKind.SKIP, MoveKind.ACCEPT}
    assert state.history.moves[-1].content == 'Challenged: "Television is harmful to children."'


def test_empty_justification_rejected_then_skip(memory_store, dialogue_config) -> None:
    """An empty selection changes nothing; Skip then passes the turn."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        state = controller.state
        version = state.version
        history_length = len(state.history)

        with pytest.raises(IllegalMoveError, match="Please select at least one reason or click Skip."):
            await controller.apply_move(MoveKind.JUSTIFY, payload=[])

        assert state.version == version
        assert len(state.history) == history_length
        assert state.turn is Actor.PROPONENT
        assert state.phase is SessionPhase.AWAITING_JUSTIFICATION

        return await controller.apply_move(MoveKind.SKIP)

    outcome = asyncio.run(scenario())
    state = controller.state

    assert outcome.notice == "Turn skipped. No justification provided."
    last = state.history.moves[-1]
    assert (last.actor, last.kind) == (Actor.PROPONENT, MoveKind.SKIP)
    assert state.turn is Actor.OPPONENT
    assert state.quotas.state(Actor.PROPONENT).turns_used == 1
    assert state.candidates == []
    assert state.phase is SessionPhase.AWAITING_MOVE


def test_justification_extends_path(memory_store, dialogue_config) -> None:
    """Selected candidates become children of the challenged statement."""
    controller = DialogueController(dialogue_config, memory_store)
    asyncio.run(open_with_justification(controller, [2, 7, 2]))
    state = controller.state

    assert [s.id for s in state.path] == [1, 2, 7]
    assert all(s.parent_id == 1 for s in list(state.path)[1:])
    assert all(s.stance is Actor.PROPONENT for s in list(state.path)[1:])
    assert state.history.moves[-1].content.startswith("Justified with: ")
    assert state.turn is Actor.OPPONENT
    assert controller.allowed_moves() == {
        MoveKind.CHALLENGE,
        MoveKind.REBUTTAL,
        MoveKind.ACCEPT,
    }


def test_unknown_candidate_rejected(memory_store, dialogue_config) -> None:
    """Only offered candidates may be used as justifications."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        await controller.apply_move(MoveKind.JUSTIFY, payload=[2, 99])

    with pytest.raises(IllegalMoveError, match="Not a candidate"):
        asyncio.run(scenario())
    assert len(controller.state.path) == 1


def test_rebuttal_is_persisted_and_appended(memory_store, dialogue_config) -> None:
    """A rebuttal goes to the sink and comes back as a rebuttal statement."""
    sink = RecordingSink(memory_store)
    controller = DialogueController(dialogue_config, memory_store, sink=sink)

    async def scenario():
        await open_with_justification(controller, [7])
        return await controller.apply_move(
            MoveKind.REBUTTAL, target=7, payload="counterexample"
        )

    outcome = asyncio.run(scenario())
    state = controller.state

    assert sink.requests == [
        RebuttalCreateRequest(target_claim_id=7, text="counterexample", author="Opponent")
    ]
    (statement,) = outcome.statements
    assert statement.is_rebuttal is True
    assert statement.parent_id == 7
    assert statement.stance is Actor.OPPONENT
    assert statement.id in state.path
    assert state.quotas.state(Actor.OPPONENT).rebuttals_remaining == 4
    assert state.turn is Actor.PROPONENT
    assert [r.text for r in state.rebuttal_index[7]] == ["counterexample"]
    assert controller.allowed_moves() == {MoveKind.ACCEPT, MoveKind.CHALLENGE}


def test_rebuttal_in_two_steps(memory_store, dialogue_config) -> None:
    """Arm, select a target, then submit text; blank text is rejected."""
    events: list[tuple[str, dict[str, Any]]] = []

    async def record(event_type: str, data: dict[str, Any]) -> None:
        events.append((event_type, data))

    controller = DialogueController(dialogue_config, memory_store, event_callback=record)

    async def scenario():
        await open_with_justification(controller, [3])
        version = controller.state.version

        armed = await controller.apply_move(MoveKind.REBUTTAL)
        assert armed.committed is False
        assert armed.notice == "Click on a statement to rebut."
        assert controller.state.phase is SessionPhase.AWAITING_MOVE_TARGET

        selected = await controller.apply_move(MoveKind.REBUTTAL, target=3)
        assert selected.committed is False
        assert controller.state.rebut_target_id == 3
        assert controller.state.version == version

        with pytest.raises(IllegalMoveError, match="Please enter a valid rebuttal."):
            await controller.apply_move(MoveKind.REBUTTAL, payload="   ")

        return await controller.apply_move(MoveKind.REBUTTAL, payload="Effects fade quickly.")

    outcome = asyncio.run(scenario())

    assert outcome.committed is True
    assert controller.state.rebut_target_id is None
    loaded = [data for event_type, data in events if event_type == "rebuttals_loaded"]
    assert loaded[0]["target_id"] == 3
    assert [r["id"] for r in loaded[0]["rebuttals"]] == [20]
    assert [r.text for r in controller.state.rebuttal_index[3]] == [
        "Most studies only measure short-term effects in a laboratory.",
        "Effects fade quickly.",
    ]


def test_rebuttal_needs_a_justification(memory_store, dialogue_config) -> None:
    """With only the root claim on the path there is nothing to rebut."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        # Opponent lets the clock run out; the Proponent may now pick any move
        await controller.handle_timeout(controller.state.version)
        assert MoveKind.REBUTTAL in controller.allowed_moves()
        await controller.apply_move(MoveKind.REBUTTAL)

    with pytest.raises(IllegalMoveError, match="There are no justifications to rebut yet."):
        asyncio.run(scenario())


def test_cannot_rebut_root(memory_store, dialogue_config) -> None:
    """Rebuttal targets must be justifications, not the root claim."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await open_with_justification(controller, [2])
        await controller.apply_move(MoveKind.REBUTTAL, target=1, payload="No.")

    with pytest.raises(IllegalMoveError, match="Select a justification to rebut."):
        asyncio.run(scenario())
    assert controller.state.phase is SessionPhase.AWAITING_MOVE


def test_duplicate_challenge_rejected(memory_store, dialogue_config) -> None:
    """A statement can be challenged only once per session."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await open_with_justification(controller, [2, 3])
        await controller.apply_move(MoveKind.CHALLENGE, target=2)
        assert [c.id for c in controller.state.candidates] == [4, 5]
        await controller.apply_move(MoveKind.JUSTIFY, payload=[4])
        await controller.apply_move(MoveKind.CHALLENGE, target=2)

    with pytest.raises(IllegalMoveError, match="This argument has already been challenged."):
        asyncio.run(scenario())
    assert controller.state.quotas.state(Actor.OPPONENT).challenges_remaining == 13


def test_cannot_challenge_own_statement(memory_store, dialogue_config) -> None:
    """The Proponent may not challenge its own justification."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await open_with_justification(controller, [7])
        await controller.apply_move(MoveKind.REBUTTAL, target=7, payload="counterexample")
        await controller.apply_move(MoveKind.CHALLENGE, target=7)

    with pytest.raises(IllegalMoveError, match="You cannot challenge your own justification."):
        asyncio.run(scenario())


def test_move_outside_allowed_set_rejected(memory_store, dialogue_config) -> None:
    """Skip is not on the Opponent's opening menu."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.SKIP)

    with pytest.raises(IllegalMoveError, match="Skip is not allowed right now"):
        asyncio.run(scenario())
    assert controller.state.turn is Actor.OPPONENT


def test_challenge_quota_exhausted(memory_store) -> None:
    """With no challenges left the move is refused before any fetch."""
    controller = DialogueController(DialogueConfig(turn_seconds=0, max_challenges=0), memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)

    with pytest.raises(IllegalMoveError, match="no challenges remaining"):
        asyncio.run(scenario())


def test_stale_version_rejected(memory_store, dialogue_config) -> None:
    """A move made against an older version is refused."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        stale = controller.state.version
        await controller.apply_move(MoveKind.CHALLENGE, expected_version=stale)
        await controller.apply_move(MoveKind.SKIP, expected_version=stale)

    with pytest.raises(StaleMoveError):
        asyncio.run(scenario())
    assert controller.state.turn is Actor.PROPONENT


def test_failed_fetch_leaves_state_unchanged(memory_store, dialogue_config) -> None:
    """A store failure mid-move is retryable and nothing was applied."""
    store = FlakyStore(memory_store, {"fetch_justification_tree": 1})
    controller = DialogueController(dialogue_config, store)

    async def scenario():
        await start_television(controller)
        before = controller.snapshot()

        with pytest.raises(StoreUnavailableError):
            await controller.apply_move(MoveKind.CHALLENGE)

        after = controller.snapshot()
        assert after["version"] == before["version"]
        assert after["quotas"] == before["quotas"]
        assert after["challenged_ids"] == []
        assert after["turn"] == "Opponent"

        return await controller.apply_move(MoveKind.CHALLENGE)

    outcome = asyncio.run(scenario())
    assert outcome.committed is True
    assert store.calls.count("fetch_justification_tree") == 2


def test_failed_rebuttal_submission_rolls_back_selection(memory_store, dialogue_config) -> None:
    """A one-shot rebuttal that fails to save leaves no target selected."""
    store = FlakyStore(memory_store, {"create_rebuttal": 1})
    controller = DialogueController(dialogue_config, store)

    async def scenario():
        await open_with_justification(controller, [7])
        with pytest.raises(StoreUnavailableError):
            await controller.apply_move(MoveKind.REBUTTAL, target=7, payload="counterexample")

    asyncio.run(scenario())
    state = controller.state
    assert state.rebut_target_id is None
    assert state.phase is SessionPhase.AWAITING_MOVE
    assert state.quotas.state(Actor.OPPONENT).rebuttals_remaining == 5
    assert state.turn is Actor.OPPONENT


def test_cancel_selection(memory_store, dialogue_config) -> None:
    """Leaving target selection restores the move menu without a move."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await open_with_justification(controller, [2])
        version = controller.state.version
        await controller.apply_move(MoveKind.CHALLENGE)
        assert controller.state.instruction == "Click on a statement to challenge."
        await controller.cancel_selection()
        assert controller.state.version == version

    asyncio.run(scenario())
    assert controller.state.phase is SessionPhase.AWAITING_MOVE
    assert controller.state.pending_kind is None

    with pytest.raises(IllegalMoveError, match="no move selection"):
        asyncio.run(controller.cancel_selection())


def test_accept_ends_session(memory_store, dialogue_config) -> None:
    """After Accept every further move reports SessionEnded and changes nothing."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.ACCEPT)
        before = controller.snapshot()

        for kind in ALL_KINDS:
            with pytest.raises(SessionEndedError):
                await controller.apply_move(kind, target=1, payload="late")

        assert controller.snapshot()["history"] == before["history"]
        assert controller.snapshot()["version"] == before["version"]

    asyncio.run(scenario())
    state = controller.state
    assert state.phase is SessionPhase.ENDED
    assert state.end_reason is EndReason.ACCEPTED
    assert state.ended_by is Actor.OPPONENT
    assert controller.allowed_moves() == frozenset()


def test_session_ends_when_turns_exhausted(memory_store) -> None:
    """Once both sides have used every turn the dialogue ends."""
    events: list[str] = []

    async def record(event_type: str, data: dict[str, Any]) -> None:
        events.append(event_type)

    controller = DialogueController(
        DialogueConfig(turn_seconds=0, max_turns=1), memory_store, event_callback=record
    )

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        await controller.apply_move(MoveKind.SKIP)

    asyncio.run(scenario())
    state = controller.state
    assert state.phase is SessionPhase.ENDED
    assert state.end_reason is EndReason.TURNS_EXHAUSTED
    assert events[-2:] == ["move_applied", "session_ended"]


def test_close_abandons_session(memory_store, dialogue_config) -> None:
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.close()

    asyncio.run(scenario())
    assert controller.state.end_reason is EndReason.ABANDONED


def test_store_without_sink_requires_explicit_sink(memory_store, dialogue_config) -> None:
    """Read-only stores need a separate rebuttal sink."""
    from stores.base_store import ContentStore

    class ReadOnlyStore(ContentStore):
        store_name = "read-only"

        async def fetch_topics(self):
            return []

        async def fetch_root_claim(self, topic):
            raise NotImplementedError

        async def fetch_justifications(self, argument_id):
            return []

        async def resolve_argument_id(self, claim_id):
            return 0

        async def fetch_justification_tree(self, topic):
            raise NotImplementedError

        async def fetch_rebuttals(self, target_id):
            return []

    with pytest.raises(ValueError, match="cannot persist rebuttals"):
        DialogueController(dialogue_config, ReadOnlyStore())

    controller = DialogueController(dialogue_config, ReadOnlyStore(), sink=memory_store)
    assert controller.sink is memory_store


@pytest.mark.slow
def test_timer_expiry_skips_turn(memory_store) -> None:
    """When the clock runs out the turn is skipped and the clock restarts."""
    notices: list[str] = []

    async def record(event_type: str, data: dict[str, Any]) -> None:
        if event_type == "notice":
            notices.append(data["message"])

    config = DialogueConfig(turn_seconds=0.2, timer_tick_seconds=0.2)
    controller = DialogueController(config, memory_store, event_callback=record)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        before = len(controller.state.history)

        for _ in range(200):
            await asyncio.sleep(0.01)
            if len(controller.state.history) > before:
                break

        state = controller.state
        last = state.history.moves[-1]
        assert (last.actor, last.kind) == (Actor.PROPONENT, MoveKind.SKIP)
        assert state.quotas.state(Actor.PROPONENT).turns_used == 1
        assert state.turn is Actor.OPPONENT
        assert state.phase is SessionPhase.AWAITING_MOVE
        assert controller.timer.running
        assert controller.timer.remaining == pytest.approx(0.2)

        await controller.close()
        assert not controller.timer.running

    asyncio.run(scenario())
    assert notices == ["Proponent ran out of time. Turn skipped."]


def test_stale_timeout_discarded(memory_store, dialogue_config) -> None:
    """An expiry for a turn that already ended changes nothing."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        old_version = controller.state.version
        await controller.apply_move(MoveKind.CHALLENGE)
        return await controller.handle_timeout(old_version)

    assert asyncio.run(scenario()) is False
    state = controller.state
    assert state.turn is Actor.PROPONENT
    assert state.phase is SessionPhase.AWAITING_JUSTIFICATION
    assert state.history.moves[-1].kind is MoveKind.CHALLENGE


def test_timeout_on_last_turn_ends_session(memory_store) -> None:
    """A timeout that uses the final turn ends the dialogue."""
    controller = DialogueController(DialogueConfig(turn_seconds=0, max_turns=1), memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        assert await controller.handle_timeout(controller.state.version) is True
        assert controller.state.phase is SessionPhase.ENDED
        assert controller.state.end_reason is EndReason.TURNS_EXHAUSTED

    asyncio.run(scenario())
    quotas = controller.state.quotas
    assert quotas.state(Actor.OPPONENT).turns_used == 1
    assert quotas.state(Actor.PROPONENT).turns_used == 1


def test_actor_without_turns_cannot_move(memory_store) -> None:
    """An actor who has used every turn is refused while the other side still plays."""
    controller = DialogueController(DialogueConfig(turn_seconds=0, max_turns=2), memory_store)

    async def scenario():
        await start_television(controller)
        state = controller.state
        state.quotas.use_turn(Actor.OPPONENT)
        state.quotas.use_turn(Actor.OPPONENT)
        version = state.version

        with pytest.raises(IllegalMoveError, match="Opponent has used all their turns."):
            await controller.apply_move(MoveKind.CHALLENGE)

        assert state.version == version
        assert state.path.root.id not in state.challenged_ids
        assert state.quotas.state(Actor.OPPONENT).challenges_remaining == 15
        assert not state.ended

    asyncio.run(scenario())


def test_timeout_notice_precedes_session_end(memory_store) -> None:
    events: list[str] = []

    async def record(event_type: str, data: dict[str, Any]) -> None:
        events.append(event_type)

    controller = DialogueController(
        DialogueConfig(turn_seconds=0, max_turns=1), memory_store, event_callback=record
    )

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        await controller.handle_timeout(controller.state.version)

    asyncio.run(scenario())
    assert events[-3:] == ["move_applied", "notice", "session_ended"]


def test_move_from_actor_out_of_turn_is_stale(memory_store, dialogue_config) -> None:
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        with pytest.raises(StaleMoveError, match="no longer Proponent's turn"):
            await controller.apply_move(MoveKind.ACCEPT, actor=Actor.PROPONENT)
        return await controller.apply_move(MoveKind.CHALLENGE, actor=Actor.OPPONENT)

    outcome = asyncio.run(scenario())
    assert outcome.actor is Actor.OPPONENT
    assert controller.state.turn is Actor.PROPONENT


@pytest.mark.slow
def test_late_move_after_timeout_is_discarded(memory_store) -> None:
    """A click that lands after the clock skipped the turn does not act for the other side."""
    config = DialogueConfig(turn_seconds=0.2, timer_tick_seconds=0.2)
    controller = DialogueController(config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        seen_version = controller.state.version

        for _ in range(200):
            await asyncio.sleep(0.01)
            if controller.state.turn is Actor.OPPONENT:
                break
        assert controller.state.history.moves[-1].kind is MoveKind.SKIP

        with pytest.raises(StaleMoveError):
            await controller.apply_move(MoveKind.ACCEPT, actor=Actor.PROPONENT)
        with pytest.raises(StaleMoveError):
            await controller.apply_move(MoveKind.ACCEPT, expected_version=seen_version)

        await controller.close()

    asyncio.run(scenario())
    state = controller.state
    assert state.end_reason is EndReason.ABANDONED
    assert state.ended_by is None
    assert [m.kind for m in state.history] == [MoveKind.CLAIM, MoveKind.CHALLENGE, MoveKind.SKIP]


@pytest.mark.parametrize("timeout_first", [True, False])
def test_timeout_and_move_race_has_one_winner(
    memory_store, dialogue_config, timeout_first: bool
) -> None:
    """A timeout and a move made against the same version: one applies, one is stale."""
    controller = DialogueController(dialogue_config, memory_store)

    async def scenario():
        await start_television(controller)
        await controller.apply_move(MoveKind.CHALLENGE)
        version = controller.state.version

        timeout = controller.handle_timeout(version)
        move = controller.apply_move(
            MoveKind.JUSTIFY, payload=[2], expected_version=version, actor=Actor.PROPONENT
        )
        calls = [timeout, move] if timeout_first else [move, timeout]
        results = await asyncio.gather(*calls, return_exceptions=True)
        return results if timeout_first else results[::-1]

    timed_out, moved = asyncio.run(scenario())
    state = controller.state

    if timeout_first:
        assert timed_out is True
        assert isinstance(moved, StaleMoveError)
        assert state.history.moves[-1].kind is MoveKind.SKIP
        assert len(state.path) == 1
    else:
        assert timed_out is False
        assert moved.committed is True
        assert state.history.moves[-1].kind is MoveKind.JUSTIFY
        assert [s.id for s in state.path] == [1, 2]

    assert [m.kind for m in state.history][:2] == [MoveKind.CLAIM, MoveKind.CHALLENGE]
    assert len(state.history) == 3
    assert state.turn is Actor.OPPONENT
    assert state.quotas.state(Actor.PROPONENT).turns_used == 1
