from __future__ import annotations

import asyncio
import logging

import pytest
from counter_samples import CounterAction, Decrement, Increment, IncrementAsync, SetAmount

from pyfluxstore import Effect, EffectsManager, create_effect


class RecordingDispatcher:
    def __init__(self) -> None:
        self.dispatched: list[object] = []

    def dispatch(self, action):
        self.dispatched.append(action)
        return action


class CounterEffects:
    def __init__(self) -> None:
        self.logged: list[object] = []

    @create_effect(IncrementAsync)
    async def increment_later(self, action, dispatcher):
        await asyncio.sleep(0)
        return [Increment(), Increment()]

    @create_effect(CounterAction, dispatch=False)
    async def log_counter_actions(self, action, dispatcher):
        self.logged.append(action)
        return Decrement()


class ResetOnSet(Effect):
    trigger = SetAmount

    async def handle(self, action, dispatcher) -> None:
        if action.amount < 0:
            dispatcher.dispatch(SetAmount(0))


def test_add_effects_collects_decorated_methods_from_classes() -> None:
    manager = EffectsManager()

    added = manager.add_effects(CounterEffects)

    names = sorted(e.get_name() for e in added)
    assert names == ["CounterEffects.increment_later", "CounterEffects.log_counter_actions"]
    assert [e.get_name() for e in manager.matching(Increment())] == ["CounterEffects.log_counter_actions"]
    assert len(manager.matching(IncrementAsync())) == 1


@pytest.mark.asyncio
async def test_returned_actions_are_dispatched_only_when_enabled() -> None:
    manager = EffectsManager()
    effects = CounterEffects()
    manager.add_effects(effects)
    dispatcher = RecordingDispatcher()

    errors = await manager.run(manager.matching(IncrementAsync()), IncrementAsync(), dispatcher)
    assert errors == []
    assert dispatcher.dispatched == [Increment(), Increment()]

    dispatcher.dispatched.clear()
    await manager.run(manager.matching(SetAmount(1)), SetAmount(1), dispatcher)
    assert dispatcher.dispatched == []
    assert effects.logged == [SetAmount(1)]


@pytest.mark.asyncio
async def test_effect_subclass() -> None:
    manager = EffectsManager()
    manager.add_effects(ResetOnSet)
    dispatcher = RecordingDispatcher()

    effects = manager.matching(SetAmount(-3))
    await manager.run(effects, SetAmount(-3), dispatcher)

    assert dispatcher.dispatched == [SetAmount(0)]
    assert manager.matching(Increment()) == []


@pytest.mark.asyncio
async def test_effects_run_concurrently() -> None:
    both_started = asyncio.Event()
    started: list[str] = []

    def make(name: str):
        @create_effect(Increment, dispatch=False)
        async def effect(action, dispatcher) -> None:
            started.append(name)
            if len(started) == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=1)

        return effect

    manager = EffectsManager()
    manager.add_effects(make("a"), make("b"))

    errors = await manager.run(manager.matching(Increment()), Increment(), RecordingDispatcher())

    assert errors == []
    assert sorted(started) == ["a", "b"]


@pytest.mark.asyncio
async def test_non_action_results_are_ignored_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    @create_effect(Increment)
    async def returns_junk(action, dispatcher):
        return "junk"

    manager = EffectsManager()
    manager.add_effects(returns_junk)
    dispatcher = RecordingDispatcher()

    with caplog.at_level(logging.WARNING, logger="pyfluxstore.effects"):
        await manager.run(manager.matching(Increment()), Increment(), dispatcher)

    assert dispatcher.dispatched == []
    assert "non-Action" in caplog.text


def test_remove_effects() -> None:
    manager = EffectsManager()
    effects = CounterEffects()
    manager.add_effects(effects, ResetOnSet())

    manager.remove_effects(effects)

    assert [type(e) for e in manager.effects] == [ResetOnSet]
    manager.teardown()
    assert manager.effects == ()
