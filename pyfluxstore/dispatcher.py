"""
Dispatcher：唯一的 action 入口。

它不做排隊也不處理順序，只是把 action 同步廣播給已註冊的觀察者
（主要觀察者是 Store）。排隊與重入控制由 Store 負責。
"""
import threading
from typing import Any, Callable, List

from reactivex.disposable import Disposable

from .actions import Action
from .errors import ActionError, StoreError

ActionDispatchedCallback = Callable[[Action[Any]], None]


class Dispatcher:
    """
    同步廣播 action 的分發器。

    觀察者以註冊順序被調用；`subscribe` 返回的 Disposable 用於明確的取消註冊。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: List[ActionDispatchedCallback] = []

    def subscribe(self, callback: ActionDispatchedCallback) -> Disposable:
        """
        註冊一個 "action dispatched" 觀察者。

        Args:
            callback: 接收 action 的回調

        Returns:
            釋放時移除此觀察者的 Disposable
        """
        if callback is None:
            raise StoreError("callback must not be None", operation="subscribe")
        with self._lock:
            self._observers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return Disposable(unsubscribe)

    def dispatch(self, action: Action[Any]) -> Action[Any]:
        """
        分發一個動作給所有觀察者。

        Args:
            action: 要分發的 Action 物件。

        Returns:
            傳入的 Action。

        Raises:
            ActionError: action 為 None 或不是 Action
        """
        if action is None:
            raise ActionError("Cannot dispatch None")
        if not isinstance(action, Action):
            raise ActionError(f"Cannot dispatch non-Action value {action!r}")

        # 複製一份，讓觀察者在回調中註冊/取消註冊也安全
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(action)
        return action
