from __future__ import annotations

import threading
import time

import pytest
from counter_samples import CounterState, Decrement, Increment, SetAmount, make_counter_feature

from pyfluxstore import Feature, Reducer, ReducerError, create_feature, on


def test_initial_state_is_created_lazily_exactly_once() -> None:
    calls = []

    def factory() -> CounterState:
        calls.append(1)
        time.sleep(0.01)
        return CounterState()

    feature = Feature("counter", factory)
    assert calls == []

    barrier = threading.Barrier(8)

    def read() -> None:
        barrier.wait()
        feature.get_state()

    threads = [threading.Thread(target=read) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert feature.state == CounterState()


def test_plain_value_initial_state() -> None:
    feature = create_feature("settings", {"theme": "dark"})

    assert feature.state == {"theme": "dark"}
    assert feature.get_name() == "settings"


def test_reducers_fold_in_attachment_order() -> None:
    feature = Feature(
        "counter",
        CounterState,
        [
            on(Increment, lambda s, _: CounterState(value=s.value + 1)),
            on(Increment, lambda s, _: CounterState(value=s.value * 10)),
        ],
    )

    feature.receive_dispatch(Increment())

    assert feature.state.value == 10


def test_reducer_with_multiple_action_types() -> None:
    feature = Feature("hits", 0, [on((Increment, Decrement), lambda s, _: s + 1)])

    feature.receive_dispatch(Increment())
    feature.receive_dispatch(Decrement())
    feature.receive_dispatch(SetAmount(3))

    assert feature.state == 2


def test_subclassed_reducer() -> None:
    class DoubleOnSet(Reducer[int]):
        action_types = SetAmount

        def reduce(self, state: int, action: SetAmount) -> int:
            return action.amount * 2

    feature = Feature("double", 0, [DoubleOnSet()])
    feature.receive_dispatch(SetAmount(4))

    assert feature.state == 8


def test_change_notification_only_when_value_changes() -> None:
    feature = make_counter_feature()
    changes = []
    feature.state_changed.subscribe(on_next=changes.append)

    feature.receive_dispatch(SetAmount(0))
    feature.receive_dispatch(Increment())
    feature.receive_dispatch(SetAmount(1))

    assert changes == [(CounterState(value=0), CounterState(value=1))]


def test_restore_state_always_notifies() -> None:
    feature = make_counter_feature()
    changes = []
    feature.state_changed.subscribe(on_next=changes.append)

    feature.restore_state(CounterState(value=0))
    feature.restore_state(CounterState(value=7))

    assert len(changes) == 2
    assert feature.state.value == 7


def test_reducer_exception_propagates() -> None:
    def boom(state: int, action: Increment) -> int:
        raise ZeroDivisionError("reducers must be total")

    feature = Feature("broken", 0, [on(Increment, boom)])

    with pytest.raises(ZeroDivisionError):
        feature.receive_dispatch(Increment())
    assert feature.state == 0


def test_select_emits_only_when_selected_value_changes() -> None:
    feature = Feature(
        "pair",
        {"a": 0, "b": 0},
        [
            on(SetAmount, lambda s, a: {**s, "b": a.amount}),
            on(Increment, lambda s, a: {**s, "a": s["a"] + 1}),
        ],
    )
    seen = []
    feature.select(lambda s: s["a"]).subscribe(on_next=seen.append)

    feature.receive_dispatch(SetAmount(1))
    feature.receive_dispatch(SetAmount(2))
    assert seen == []

    feature.receive_dispatch(Increment())
    feature.receive_dispatch(SetAmount(3))
    feature.receive_dispatch(Increment())

    assert seen == [(0, 1), (1, 2)]


def test_invalid_reducers_are_rejected() -> None:
    feature = make_counter_feature()

    with pytest.raises(ReducerError):
        feature.add_reducer(None)  # type: ignore[arg-type]
    with pytest.raises(ReducerError):
        feature.add_reducer(lambda s, a: s)  # type: ignore[arg-type]
    with pytest.raises(ReducerError):
        on(Increment, "not callable")  # type: ignore[arg-type]
    with pytest.raises(ReducerError):
        Feature("", 0)
