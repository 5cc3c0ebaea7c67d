from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from pyfluxstore import Action, BaseMiddleware, Feature, Store, on


class CounterState(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: int = 0


class CounterAction(Action):
    """Marker base shared by every counter action."""


class Increment(CounterAction):
    pass


class Decrement(CounterAction):
    pass


class SetAmount(CounterAction):
    def __init__(self, amount: int) -> None:
        super().__init__(amount)

    @property
    def amount(self) -> int:
        return self.payload


class IncrementAsync(Action):
    pass


def make_counter_feature(name: str = "counter") -> Feature[CounterState]:
    return Feature(
        name,
        CounterState,
        [
            on(Increment, lambda state, _: CounterState(value=state.value + 1)),
            on(Decrement, lambda state, _: CounterState(value=state.value - 1)),
            on(SetAmount, lambda state, action: CounterState(value=action.amount)),
        ],
    )


def counter_value(store: Store, name: str = "counter") -> int:
    return store.features[name].state.value


class RecordingMiddleware(BaseMiddleware):
    def __init__(self, name: str, log: list[str]) -> None:
        super().__init__()
        self.name = name
        self.log = log

    def may_dispatch_action(self, action: Action) -> bool:
        self.log.append(f"{self.name}:may:{type(action).__name__}")
        return True

    def before_dispatch(self, action: Action) -> None:
        self.log.append(f"{self.name}:before:{type(action).__name__}")

    def after_dispatch(self, action: Action) -> None:
        self.log.append(f"{self.name}:after:{type(action).__name__}")
