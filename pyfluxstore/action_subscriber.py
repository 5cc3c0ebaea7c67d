"""
Action 訂閱註冊表。

訂閱同時以訂閱者身份（用於批量取消）和 action 類別（用於通知）索引。
通知採用協變匹配：以父類或標記類別訂閱的回調，也會收到更具體的 action。
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Tuple, Type

from reactivex.disposable import Disposable

from .actions import Action, resolve_action_class
from .errors import ActionError, StoreError, SubscriberError

logger = logging.getLogger(__name__)


class ActionSubscription:
    __slots__ = ("subscriber", "action_type", "callback")

    def __init__(self, subscriber: Any, action_type: Type[Any], callback: Callable[[Any], None]):
        if subscriber is None:
            raise StoreError("subscriber must not be None", operation="subscribe_to_action")
        if action_type is None:
            raise ActionError("action_type must not be None", operation="subscribe_to_action")
        if callback is None:
            raise StoreError("callback must not be None", operation="subscribe_to_action")
        self.subscriber = subscriber
        self.action_type = action_type
        self.callback = callback

    def __repr__(self):
        return f"ActionSubscription({self.subscriber!r}, {self.action_type.__name__}, {self.callback!r})"


class ActionSubscriber:
    """
    管理臨時的 action 回調訂閱。

    訂閱者身份以物件身份 (id) 索引，因此不可雜湊的物件也能作為訂閱者。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions_for_instance: Dict[int, List[ActionSubscription]] = {}
        self._subscriptions_for_type: Dict[Type[Any], List[ActionSubscription]] = {}

    def subscribe_to_action(self, subscriber: Any, action_type: Any, callback: Callable[[Any], None]) -> None:
        """
        訂閱某一類 action。

        Args:
            subscriber: 訂閱者身份，用於 unsubscribe_from_all_actions
            action_type: Action 類別、標記父類，或 action creator
            callback: 接收 action 的回調
        """
        subscription = ActionSubscription(subscriber, resolve_action_class(action_type), callback)
        with self._lock:
            self._subscriptions_for_instance.setdefault(id(subscriber), []).append(subscription)
            self._subscriptions_for_type.setdefault(subscription.action_type, []).append(subscription)

    def unsubscribe_from_all_actions(self, subscriber: Any) -> None:
        """移除此訂閱者的所有訂閱。"""
        if subscriber is None:
            raise StoreError("subscriber must not be None", operation="unsubscribe_from_all_actions")
        with self._lock:
            instance_subscriptions = self._subscriptions_for_instance.pop(id(subscriber), None)
            if not instance_subscriptions:
                return
            for subscription in instance_subscriptions:
                type_subscriptions = self._subscriptions_for_type.get(subscription.action_type)
                if type_subscriptions is None:
                    continue
                type_subscriptions.remove(subscription)
                if not type_subscriptions:
                    del self._subscriptions_for_type[subscription.action_type]

    def get_action_unsubscriber(self, subscriber: Any) -> Disposable:
        """返回一個釋放時取消此訂閱者所有訂閱的 Disposable。"""
        if subscriber is None:
            raise StoreError("subscriber must not be None", operation="get_action_unsubscriber")
        return Disposable(lambda: self.unsubscribe_from_all_actions(subscriber))

    def has_subscriptions(self, subscriber: Any) -> bool:
        with self._lock:
            return id(subscriber) in self._subscriptions_for_instance

    def notify(self, action: Action[Any]) -> None:
        """
        通知所有類別兼容的訂閱。

        每個回調各自隔離：某個回調拋出異常不會阻止其他回調執行，
        所有回調都執行完後才以 SubscriberError 重新拋出。

        Raises:
            SubscriberError: 有任何回調失敗時
        """
        if action is None:
            raise ActionError("Action must not be None")

        with self._lock:
            callbacks = [
                subscription.callback
                for action_type, subscriptions in self._subscriptions_for_type.items()
                if isinstance(action, action_type)
                for subscription in subscriptions
            ]

        failures: List[Tuple[Callable[[Any], None], BaseException]] = []
        for callback in callbacks:
            try:
                callback(action)
            except Exception as err:
                logger.debug("Action subscriber %r failed on %s", callback, action.type, exc_info=True)
                failures.append((callback, err))

        if failures:
            raise SubscriberError(failures, action_type=action.type) from failures[0][1]
