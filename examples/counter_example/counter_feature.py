from pydantic import BaseModel, ConfigDict
from pyfluxstore import create_feature, on

from counter_actions import increment, decrement, set_amount


# ====== Model Definition ======
class CounterState(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: int = 0


# ====== Feature ======
counter_feature = create_feature(
    "counter",
    CounterState,
    on(increment, lambda state, _: CounterState(value=state.value + 1)),
    on(decrement, lambda state, _: CounterState(value=state.value - 1)),
    on(set_amount, lambda state, action: CounterState(value=action.payload)),
)
