from __future__ import annotations

import pytest
from counter_samples import CounterAction, Decrement, Increment, IncrementAsync

from pyfluxstore import ActionError, ActionSubscriber, StoreError, SubscriberError, create_action


class Owner:
    pass


def test_exact_and_covariant_matching() -> None:
    registry = ActionSubscriber()
    owner = Owner()
    exact, general = [], []
    registry.subscribe_to_action(owner, Increment, exact.append)
    registry.subscribe_to_action(owner, CounterAction, general.append)

    registry.notify(Increment())
    registry.notify(Decrement())
    registry.notify(IncrementAsync())

    assert [type(a) for a in exact] == [Increment]
    assert [type(a) for a in general] == [Increment, Decrement]


def test_action_creator_can_be_used_as_marker() -> None:
    registry = ActionSubscriber()
    ping = create_action("[Net] Ping")
    seen = []
    registry.subscribe_to_action(Owner(), ping, seen.append)

    registry.notify(ping())

    assert seen == [ping()]


def test_failing_callback_does_not_stop_the_others() -> None:
    registry = ActionSubscriber()
    received = []

    def broken(action) -> None:
        raise RuntimeError("subscriber failed")

    registry.subscribe_to_action(Owner(), Increment, broken)
    registry.subscribe_to_action(Owner(), Increment, received.append)

    with pytest.raises(SubscriberError) as excinfo:
        registry.notify(Increment())

    assert len(received) == 1
    assert excinfo.value.callback is broken
    assert len(excinfo.value.failures) == 1
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "broken" in str(excinfo.value)


def test_unsubscribe_from_all_actions_removes_only_that_subscriber() -> None:
    registry = ActionSubscriber()
    first, second = Owner(), Owner()
    first_seen, second_seen = [], []
    registry.subscribe_to_action(first, Increment, first_seen.append)
    registry.subscribe_to_action(first, CounterAction, first_seen.append)
    registry.subscribe_to_action(second, Increment, second_seen.append)

    registry.unsubscribe_from_all_actions(first)
    registry.unsubscribe_from_all_actions(first)
    registry.notify(Increment())

    assert first_seen == []
    assert len(second_seen) == 1
    assert not registry.has_subscriptions(first)


def test_unsubscriber_disposable() -> None:
    registry = ActionSubscriber()
    owner = Owner()
    seen = []
    registry.subscribe_to_action(owner, Increment, seen.append)

    with registry.get_action_unsubscriber(owner):
        pass
    registry.notify(Increment())

    assert seen == []


def test_unhashable_subscriber_identity() -> None:
    registry = ActionSubscriber()
    owner: dict = {}
    seen = []
    registry.subscribe_to_action(owner, Increment, seen.append)

    registry.notify(Increment())
    registry.unsubscribe_from_all_actions(owner)
    registry.notify(Increment())

    assert len(seen) == 1


def test_contract_violations_fail_fast() -> None:
    registry = ActionSubscriber()

    with pytest.raises(StoreError):
        registry.subscribe_to_action(None, Increment, lambda a: None)
    with pytest.raises(StoreError):
        registry.subscribe_to_action(Owner(), Increment, None)  # type: ignore[arg-type]
    with pytest.raises(StoreError) as excinfo:
        registry.unsubscribe_from_all_actions(None)
    assert excinfo.value.details["operation"] == "unsubscribe_from_all_actions"
    with pytest.raises(StoreError):
        registry.get_action_unsubscriber(None)
    with pytest.raises(ActionError):
        registry.notify(None)  # type: ignore[arg-type]
