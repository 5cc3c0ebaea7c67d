from __future__ import annotations

import pytest
from counter_samples import Increment

from pyfluxstore import ActionError, Dispatcher, StoreError


def test_dispatch_rejects_none_and_non_actions() -> None:
    dispatcher = Dispatcher()

    with pytest.raises(ActionError):
        dispatcher.dispatch(None)  # type: ignore[arg-type]
    with pytest.raises(ActionError):
        dispatcher.dispatch("increment")  # type: ignore[arg-type]


def test_subscribe_rejects_none_callback() -> None:
    dispatcher = Dispatcher()

    with pytest.raises(StoreError) as excinfo:
        dispatcher.subscribe(None)  # type: ignore[arg-type]
    assert excinfo.value.details["operation"] == "subscribe"


def test_dispatch_notifies_observers_in_registration_order() -> None:
    dispatcher = Dispatcher()
    calls = []
    dispatcher.subscribe(lambda a: calls.append(("first", a)))
    dispatcher.subscribe(lambda a: calls.append(("second", a)))

    action = Increment()
    assert dispatcher.dispatch(action) is action

    assert calls == [("first", action), ("second", action)]


def test_disposed_observer_is_not_notified() -> None:
    dispatcher = Dispatcher()
    calls = []
    subscription = dispatcher.subscribe(calls.append)

    subscription.dispose()
    subscription.dispose()
    dispatcher.dispatch(Increment())

    assert calls == []


def test_observer_may_dispatch_reentrantly() -> None:
    dispatcher = Dispatcher()
    seen = []

    def observer(action) -> None:
        seen.append(action)
        if len(seen) == 1:
            dispatcher.dispatch(Increment())

    dispatcher.subscribe(observer)
    dispatcher.dispatch(Increment())

    assert len(seen) == 2
