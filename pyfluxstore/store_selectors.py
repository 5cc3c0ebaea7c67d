import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from reactivex import Observable, Subject

from .errors import SelectorError
from .features import Feature

S = TypeVar("S")
V = TypeVar("V")


def _default_value_equals(a: Any, b: Any) -> bool:
    return a is b or a == b


class StateSelection(Generic[S, V]):
    """
    從單一 Feature 中選擇一個值並在其改變時通知。

    只在有觀察者時才訂閱 Feature 的 state_changed；`select` 只能調用一次。
    """

    def __init__(self, feature: Feature[S]):
        if feature is None:
            raise SelectorError("Feature must not be None")
        self._feature = feature
        self._lock = threading.Lock()
        self._selector: Optional[Callable[[S], V]] = None
        self._value_equals: Callable[[V, V], bool] = _default_value_equals
        self._selected_value_changed_action: Optional[Callable[[V], None]] = None
        self._previous_value: Any = None
        self._subject = Subject()
        self._feature_subscription = None

    @property
    def value(self) -> V:
        if self._selector is None:
            raise SelectorError("Must call select() before accessing value")
        return self._selector(self._feature.state)

    @property
    def selected_value_changed(self) -> Observable:
        """
        選擇值改變時發送新值的資料流。

        訂閱時會確保已連接到 Feature。
        """
        self._ensure_subscribed()
        return self._subject

    def select(
        self,
        selector: Callable[[S], V],
        value_equals: Optional[Callable[[V, V], bool]] = None,
        selected_value_changed: Optional[Callable[[V], None]] = None,
    ) -> "StateSelection[S, V]":
        """
        設定選擇器。

        Args:
            selector: 從 Feature 狀態中取出值的函數
            value_equals: 可選的比較函數，預設使用 `is` 或 `==`
            selected_value_changed: 可選的回調，值改變時以新值調用

        Raises:
            SelectorError: 選擇器已經被設定過
        """
        if selector is None:
            raise SelectorError("Selector must not be None")
        with self._lock:
            if self._selector is not None:
                raise SelectorError("Selector has already been set", selector_name=getattr(selector, "__name__", None))
            self._selector = selector
            if value_equals is not None:
                self._value_equals = value_equals
            self._selected_value_changed_action = selected_value_changed
            self._previous_value = selector(self._feature.state)
        if selected_value_changed is not None:
            self._ensure_subscribed()
        return self

    def _ensure_subscribed(self) -> None:
        with self._lock:
            if self._feature_subscription is None:
                self._feature_subscription = self._feature.state_changed.subscribe(on_next=self._on_feature_state_changed)

    def _on_feature_state_changed(self, _state_tuple) -> None:
        if self._selector is None:
            return
        new_value = self._selector(self._feature.state)
        if self._value_equals(new_value, self._previous_value):
            return
        self._previous_value = new_value
        if self._selected_value_changed_action is not None:
            self._selected_value_changed_action(new_value)
        self._subject.on_next(new_value)

    def dispose(self) -> None:
        """斷開與 Feature 的連接。"""
        with self._lock:
            subscription, self._feature_subscription = self._feature_subscription, None
        if subscription is not None:
            subscription.dispose()
