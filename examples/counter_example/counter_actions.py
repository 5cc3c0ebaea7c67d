from pyfluxstore import Action, create_action


class CounterAction(Action):
    """所有計數器 action 的共同父類，可用於一次訂閱全部計數器事件。"""


increment = create_action("[Counter] Increment", base=CounterAction)
decrement = create_action("[Counter] Decrement", base=CounterAction)
set_amount = create_action("[Counter] Set Amount", lambda amount: amount, base=CounterAction)
increment_async = create_action("[Counter] Increment Async")
