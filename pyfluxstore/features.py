"""
基於 PyFluxStore 的 Feature 定義模組。

Feature 擁有一個具名的狀態切片與一組有序的 reducers。
狀態只會透過 reducer 折疊 (receive_dispatch) 或還原 (restore_state) 改變，
每次改變都會在 state_changed 流上發送 (舊狀態, 新狀態)。
"""
import logging
import threading
from typing import Any, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

from reactivex import Observable, Subject
from reactivex import operators as ops

from .actions import Action
from .errors import ActionError, ReducerError
from .reducers import Reducer

logger = logging.getLogger(__name__)

S = TypeVar("S")

_UNSET = object()


class Feature(Generic[S]):
    """
    應用狀態的一個具名切片。

    初始狀態在第一次讀取時才計算（只計算一次，多執行緒下也不會重複初始化）。
    名稱在註冊後不可變更，Store 以不分大小寫的方式索引它。
    """

    def __init__(self, name: str, initial_state: Any, reducers: Iterable[Reducer[S]] = ()):
        """
        Args:
            name: Feature 名稱。
            initial_state: 初始狀態，或返回初始狀態的無參數函數。
            reducers: 依序套用的 reducers。
        """
        if not name:
            raise ReducerError("Feature name must be a non-empty string", feature_name=name)
        self._name = name
        self._initial_state = initial_state
        self._reducers: List[Reducer[S]] = []
        self._lock = threading.Lock()
        self._state: Any = _UNSET
        self._state_subject = Subject()
        for reducer in reducers:
            self.add_reducer(reducer)

    @property
    def name(self) -> str:
        return self._name

    def get_name(self) -> str:
        return self._name

    @property
    def reducers(self) -> Tuple[Reducer[S], ...]:
        return tuple(self._reducers)

    def get_initial_state(self) -> S:
        """計算初始狀態；子類可以覆寫。"""
        if callable(self._initial_state):
            return self._initial_state()
        return self._initial_state

    @property
    def state(self) -> S:
        state = self._state
        if state is not _UNSET:
            return state
        with self._lock:
            if self._state is _UNSET:
                self._state = self.get_initial_state()
            return self._state

    def get_state(self) -> S:
        return self.state

    @property
    def state_changed(self) -> Observable:
        """狀態改變時發送 (舊狀態, 新狀態) 的資料流。"""
        return self._state_subject

    def add_reducer(self, reducer: Reducer[S]) -> None:
        if reducer is None:
            raise ReducerError("Reducer must not be None", feature_name=self._name)
        if not isinstance(reducer, Reducer):
            raise ReducerError(f"Expected a Reducer, got {reducer!r}", feature_name=self._name)
        self._reducers.append(reducer)

    def receive_dispatch(self, action: Action[Any]) -> None:
        """
        依附加順序將所有匹配的 reducers 折疊到當前狀態上。

        只有當結果與當前狀態不相等時才賦值並發送一次變更通知。
        reducer 拋出的異常不會被捕獲。

        Args:
            action: 被分發的 Action
        """
        if action is None:
            raise ActionError("Action must not be None")

        current = self.state
        new_state = current
        for reducer in self._reducers:
            if reducer.should_reduce_state_for_action(action):
                new_state = reducer.reduce(new_state, action)

        if new_state == current:
            return
        self._set_state(current, new_state)

    def restore_state(self, value: S) -> None:
        """
        無條件設定狀態 (用於時間旅行或存檔還原)，仍然會發送變更通知。
        """
        old = self.state
        self._set_state(old, value)

    def _set_state(self, old: Any, new: Any) -> None:
        with self._lock:
            self._state = new
        self._state_subject.on_next((old, new))

    def select(self, selector: Callable[[S], Any]) -> Observable:
        """
        選擇狀態的一部分進行觀察。

        Args:
            selector: 一個函數，接收此 Feature 的狀態並返回希望觀察的部分。

        Returns:
            一個可觀察對象，發送 (舊選擇值, 新選擇值)，只在新選擇值改變時發出。
        """
        return self._state_subject.pipe(
            ops.map(lambda state_tuple: (selector(state_tuple[0]), selector(state_tuple[1]))),
            ops.filter(lambda pair: pair[0] != pair[1]),
            ops.distinct_until_changed(lambda x: x[1]),
        )

    def __repr__(self):
        return f"Feature(name={self._name!r}, reducers={len(self._reducers)})"


def create_feature(name: str, initial_state: Any, *handlers: Reducer[Any]) -> Feature[Any]:
    """
    創建一個 Feature。

    Args:
        name: Feature 名稱。
        initial_state: 初始狀態或工廠函數。
        *handlers: 使用 on 函式創建的 reducers。

    Returns:
        新的 Feature。

    範例:
        >>> counter = create_feature(
        ...     "counter", {"value": 0},
        ...     on(increment, lambda s, a: {**s, "value": s["value"] + 1}),
        ... )
    """
    return Feature(name, initial_state, handlers)
