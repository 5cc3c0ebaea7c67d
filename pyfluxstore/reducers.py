from typing import Any, Callable, Generic, Tuple, Type, TypeVar

from .actions import Action, resolve_action_classes
from .errors import ReducerError

S = TypeVar("S")
ReduceFunction = Callable[[S, Action[Any]], S]


class Reducer(Generic[S]):
    """
    純函數 reducer 的封裝，宣告它適用的 Action 變體。

    子類可以直接覆寫 `action_types` 與 `reduce`；
    大多數情況下使用 `on(...)` 建立即可。

    Attributes:
        action_types: 適用的 Action 類別 (或 action creator) 元組，以 isinstance 匹配。
    """
    action_types: Tuple[Any, ...] = ()

    def __init__(self, action_types: Any = None, reduce_fn: ReduceFunction = None):
        if action_types is not None:
            self.action_types = action_types
        self._action_classes: Tuple[Type[Any], ...] = resolve_action_classes(self.action_types)
        self._reduce_fn = reduce_fn

    def should_reduce_state_for_action(self, action: Action[Any]) -> bool:
        """判斷此 reducer 是否處理該 action（支援父類匹配）。"""
        return isinstance(action, self._action_classes)

    def reduce(self, state: S, action: Action[Any]) -> S:
        """
        根據 action 計算新的狀態。

        Args:
            state: 當前狀態。
            action: 要處理的 action。

        Returns:
            新的狀態；不得就地修改傳入的 state。
        """
        if self._reduce_fn is None:
            raise NotImplementedError(f"{type(self).__name__} must implement reduce()")
        return self._reduce_fn(state, action)

    def __repr__(self):
        names = ", ".join(c.__name__ for c in self._action_classes)
        return f"{type(self).__name__}({names})"


def on(action_creator_or_type, handler: ReduceFunction) -> Reducer[Any]:
    """
    創建一個 action 變體與處理函式的映射。

    Args:
        action_creator_or_type: Action 創建器、Action 類別，或它們的元組。
        handler: 處理該 Action 的函式，接收 (state, action) 並返回新狀態。

    Returns:
        一個 Reducer 實例。
    """
    if not callable(handler):
        raise ReducerError(f"Reducer handler must be callable, got {handler!r}")
    return Reducer(action_creator_or_type, handler)
