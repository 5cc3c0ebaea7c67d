import asyncio
import concurrent.futures
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from immutables import Map
from reactivex import Observable
from reactivex.disposable import Disposable

from .action_subscriber import ActionSubscriber
from .actions import Action
from .dispatcher import Dispatcher
from .effects import Effect, EffectsManager
from .errors import ErrorHandler, MiddlewareError, StoreError, SubscriberError
from .features import Feature
from .middleware import BaseMiddleware

logger = logging.getLogger(__name__)


class FeatureMap(Mapping[str, Feature]):
    """
    Feature 名稱到 Feature 的唯讀映射，查詢時不分大小寫。

    迭代時返回註冊時的原始名稱。
    """

    def __init__(self, features: Dict[str, Feature]):
        self._features = features

    def __getitem__(self, name: str) -> Feature:
        if not isinstance(name, str):
            raise KeyError(name)
        return self._features[name.casefold()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._features

    def __iter__(self) -> Iterator[str]:
        return (feature.name for feature in self._features.values())

    def __len__(self) -> int:
        return len(self._features)

    def __repr__(self):
        return f"FeatureMap({list(self)!r})"


class Store:
    """
    狀態容器，管理 features、middleware 與 effects，並擁有 action 佇列。

    所有 action 都經由 Dispatcher 進入 `_on_action_dispatched`，被排入佇列，
    然後由唯一一個活躍的 drain loop 依 FIFO 順序處理：

    1. 所有中介軟體的 may_dispatch_action（任一返回 False 即丟棄）
    2. 依註冊順序調用 before_dispatch
    3. 每個 feature 的 receive_dispatch
    4. 通知臨時訂閱者
    5. 依註冊順序調用 after_dispatch
    6. 非同步觸發匹配的 effects（不等待）

    在 reducer 或 effect 中再次 dispatch 只會把 action 排入同一個佇列，不會產生巢狀迴圈。
    """

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        """
        初始化一個空的 Store 實例，並訂閱 Dispatcher。

        Args:
            dispatcher: 要使用的 Dispatcher；省略時建立新的。
        """
        self._dispatcher = dispatcher if dispatcher is not None else Dispatcher()
        # 保護佇列、旗標與註冊表的單一互斥邊界
        self._lock = threading.Lock()
        self._features: Dict[str, Feature] = {}
        self._middlewares: List[BaseMiddleware] = []
        self._effects_manager = EffectsManager()
        self._action_subscriber = ActionSubscriber()
        self._error_handler = ErrorHandler(name=type(self).__name__)
        self._queued_actions: Deque[Action[Any]] = deque()
        self._is_dispatching = False
        self._is_initializing = False
        self._is_initialized = False
        self._is_disposed = False
        self._begin_middleware_change_count = 0
        self._processed_action_count = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending_tasks: Set[Any] = set()
        self._initialized_event = asyncio.Event()
        self._subscription = self._dispatcher.subscribe(self._on_action_dispatched)

    # ———— 屬性 ————
    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def features(self) -> FeatureMap:
        with self._lock:
            return FeatureMap(dict(self._features))

    @property
    def middlewares(self) -> Tuple[BaseMiddleware, ...]:
        with self._lock:
            return tuple(self._middlewares)

    @property
    def effects(self) -> Tuple[Effect, ...]:
        return self._effects_manager.effects

    @property
    def state(self) -> Map:
        """
        獲取當前組合狀態的快照。

        Returns:
            Feature 名稱到其狀態的不可變 Map。
        """
        with self._lock:
            features = list(self._features.values())
        return Map({feature.name: feature.state for feature in features})

    @property
    def initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_inside_middleware_change(self) -> bool:
        return self._begin_middleware_change_count > 0

    @property
    def processed_action_count(self) -> int:
        """已完成處理（未被否決、未被丟棄）的 action 數量。"""
        return self._processed_action_count

    @property
    def unhandled_errors(self) -> Observable:
        """effects、訂閱者回調與中介軟體初始化失敗的錯誤流。"""
        return self._error_handler.errors

    def on_unhandled_error(self, handler: Callable[[BaseException], None]):
        """註冊未處理錯誤的回調，返回用於取消註冊的 Disposable。"""
        return self._error_handler.register_handler(handler)

    # ———— 註冊 ————
    def add_feature(self, feature: Feature) -> "Store":
        """
        註冊一個 Feature。名稱不分大小寫，不可重複。

        Args:
            feature: 要註冊的 Feature。
        """
        if feature is None:
            raise StoreError("Feature must not be None", operation="add_feature")
        key = feature.get_name().casefold()
        with self._lock:
            if key in self._features:
                raise StoreError(
                    f"A feature named '{feature.get_name()}' is already registered",
                    operation="add_feature",
                    feature_name=feature.get_name(),
                )
            self._features[key] = feature
        return self

    def add_middleware(self, middleware: BaseMiddleware) -> "Store":
        """
        註冊一個中介軟體。

        若 Store 已初始化，會立即以非同步方式初始化它並調用 after_initialize_all_middlewares；
        失敗會送到未處理錯誤通道。
        """
        if middleware is None:
            raise StoreError("Middleware must not be None", operation="add_middleware")
        with self._lock:
            self._middlewares.append(middleware)
            initialize_now = self._is_initialized
        if initialize_now:
            self._spawn(self._initialize_middleware_async(middleware))
        return self

    def apply_middleware(self, *middlewares) -> "Store":
        """
        一次註冊多個中介軟體。

        Args:
            *middlewares: 要註冊的中介軟體，可以是類或實例。
        """
        for m in middlewares:
            self.add_middleware(m() if isinstance(m, type) else m)
        return self

    def add_effect(self, effect: Any) -> "Store":
        if effect is None:
            raise StoreError("Effect must not be None", operation="add_effect")
        self._effects_manager.add_effects(effect)
        return self

    def register_effects(self, *effects_items) -> "Store":
        """
        註冊一個或多個效果模組。

        Args:
            *effects_items: Effect 實例、類別、標記函數，或包含 effects 的模組或對象。
        """
        self._effects_manager.add_effects(*effects_items)
        return self

    def remove_effects(self, *effects_items) -> "Store":
        self._effects_manager.remove_effects(*effects_items)
        return self

    # ———— Action 訂閱 ————
    def subscribe_to_action(self, subscriber: Any, action_type: Any, callback: Callable[[Any], None]) -> None:
        self._action_subscriber.subscribe_to_action(subscriber, action_type, callback)

    def unsubscribe_from_all_actions(self, subscriber: Any) -> None:
        self._action_subscriber.unsubscribe_from_all_actions(subscriber)

    def get_action_unsubscriber(self, subscriber: Any) -> Disposable:
        return self._action_subscriber.get_action_unsubscriber(subscriber)

    # ———— 生命週期 ————
    async def initialize_async(self) -> None:
        """
        依序初始化所有中介軟體，然後處理初始化前排隊的 actions。

        重複調用不會有任何作用。
        """
        with self._lock:
            if self._is_initialized or self._is_initializing:
                return
            self._is_initializing = True
        self._loop = asyncio.get_running_loop()

        initialized = []
        index = 0
        while True:
            # 以索引迭代，讓初始化期間新增的中介軟體也被初始化
            with self._lock:
                if index >= len(self._middlewares):
                    break
                middleware = self._middlewares[index]
            index += 1
            try:
                await middleware.initialize_async(self._dispatcher, self)
            except Exception as err:
                self._report_middleware_error(middleware, "initialize_async", err)
                continue
            initialized.append(middleware)

        for middleware in initialized:
            try:
                middleware.after_initialize_all_middlewares()
            except Exception as err:
                self._report_middleware_error(middleware, "after_initialize_all_middlewares", err)

        with self._lock:
            self._is_initialized = True
            self._is_initializing = False
        self._initialized_event.set()
        logger.debug("Store initialized with %d middleware(s)", len(initialized))
        self._dequeue_actions()

    async def wait_until_initialized(self) -> None:
        await self._initialized_event.wait()

    async def wait_for_effects(self) -> None:
        """
        等待所有進行中的 effects（以及它們引發的後續 effects）完成。
        """
        while True:
            with self._lock:
                pending = list(self._pending_tasks)
            if not pending:
                return
            await asyncio.gather(
                *(asyncio.wrap_future(p) if isinstance(p, concurrent.futures.Future) else p for p in pending),
                return_exceptions=True,
            )

    def dispose(self) -> None:
        """從 Dispatcher 取消訂閱，清理中介軟體與 effects，並取消進行中的 effect 任務。重複調用無作用。"""
        with self._lock:
            if self._is_disposed:
                return
            self._is_disposed = True
            middlewares = list(self._middlewares)
            pending = list(self._pending_tasks)
        self._subscription.dispose()
        for middleware in middlewares:
            middleware.teardown()
        self._effects_manager.teardown()
        for task in pending:
            task.cancel()

    # ———— Dispatch ————
    def dispatch(self, action: Action[Any]) -> Action[Any]:
        """
        分發一個動作。

        Args:
            action: 要分發的 Action 物件。

        Returns:
            傳入的 Action。
        """
        return self._dispatcher.dispatch(action)

    def begin_internal_middleware_change(self) -> Disposable:
        """
        進入「請勿打擾」範圍。

        範圍內經由 Dispatcher 廣播的 actions 會被直接丟棄（不排隊），
        讓還原操作可以直接改寫 feature 狀態而不重新進入一般流程。

        Returns:
            釋放時退出範圍的 Disposable，可用於 with 語句。
        """
        with self._lock:
            self._begin_middleware_change_count += 1
            middlewares = list(self._middlewares)
        # 鎖外調用，中介軟體的 hook 可以讀取 Store 或 dispatch
        disposables = [m.begin_internal_middleware_change() for m in middlewares]
        disposables = [d for d in disposables if d is not None]

        def end() -> None:
            with self._lock:
                self._begin_middleware_change_count -= 1
            # 中介軟體自己的計數保證只有最後一層退出時才觸發 ending 回調
            for disposable in disposables:
                disposable.dispose()

        return Disposable(end)

    def _on_action_dispatched(self, action: Action[Any]) -> None:
        with self._lock:
            if self._begin_middleware_change_count > 0:
                logger.debug("Dropping %s: inside internal middleware change", action.type)
                return
            self._queued_actions.append(action)
            if not self._is_initialized:
                logger.debug("Queued %s until the store is initialized", action.type)
                return
            if self._is_dispatching:
                return
            self._is_dispatching = True
        self._drain()

    def _dequeue_actions(self) -> None:
        with self._lock:
            if self._is_dispatching:
                return
            self._is_dispatching = True
        self._drain()

    def _drain(self) -> None:
        """只能在持有 _is_dispatching 時調用；佇列清空時釋放它。"""
        try:
            while True:
                with self._lock:
                    if not self._queued_actions:
                        self._is_dispatching = False
                        return
                    action = self._queued_actions.popleft()
                    middlewares = list(self._middlewares)
                    features = list(self._features.values())
                self._process_action(action, middlewares, features)
        except BaseException:
            with self._lock:
                self._is_dispatching = False
            raise

    def _process_action(self, action: Action[Any], middlewares: List[BaseMiddleware], features: List[Feature]) -> None:
        if not all(m.may_dispatch_action(action) for m in middlewares):
            logger.debug("Action %s was vetoed by middleware", action.type)
            return

        for middleware in middlewares:
            middleware.before_dispatch(action)

        for feature in features:
            feature.receive_dispatch(action)

        try:
            self._action_subscriber.notify(action)
        except SubscriberError as err:
            self._error_handler.handle(err)

        for middleware in middlewares:
            middleware.after_dispatch(action)

        self._processed_action_count += 1
        self._trigger_effects(action)

    # ———— 非同步工作 ————
    def _trigger_effects(self, action: Action[Any]) -> None:
        effects = self._effects_manager.matching(action)
        if not effects:
            return
        self._spawn(self._run_effects(effects, action))

    async def _run_effects(self, effects: List[Effect], action: Action[Any]) -> None:
        errors = await self._effects_manager.run(effects, action, self._dispatcher)
        for error in errors:
            self._error_handler.handle(error)

    async def _initialize_middleware_async(self, middleware: BaseMiddleware) -> None:
        try:
            await middleware.initialize_async(self._dispatcher, self)
        except Exception as err:
            self._report_middleware_error(middleware, "initialize_async", err)
            return
        try:
            middleware.after_initialize_all_middlewares()
        except Exception as err:
            self._report_middleware_error(middleware, "after_initialize_all_middlewares", err)

    def _report_middleware_error(self, middleware: BaseMiddleware, stage: str, err: Exception) -> None:
        error = MiddlewareError(
            f"{type(middleware).__name__}.{stage} failed: {err}",
            middleware_name=type(middleware).__name__,
            stage=stage,
        )
        error.__cause__ = err
        self._error_handler.handle(error)

    def _spawn(self, coro) -> None:
        """在目前的事件迴圈（或初始化時記錄的事件迴圈）上排程協程，不等待。"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(coro)
        elif self._loop is not None and self._loop.is_running():
            task = asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            self._error_handler.handle(
                StoreError("No running event loop to schedule asynchronous work", operation="spawn")
            )
            return

        with self._lock:
            self._pending_tasks.add(task)
        task.add_done_callback(self._forget_task)

    def _forget_task(self, task) -> None:
        with self._lock:
            self._pending_tasks.discard(task)


def create_store(dispatcher: Optional[Dispatcher] = None) -> Store:
    """
    創建一個新的 Store 實例。

    Returns:
        Store: 新創建的 Store 實例。
    """
    return Store(dispatcher)


class StoreModule:
    """
    用於配置 Store 的工具類，類似於 NgRx 的 StoreModule。
    """

    @staticmethod
    def register_root(features, store: Optional[Store] = None) -> Store:
        """
        註冊應用的根級 features。

        Args:
            features: Feature 的可迭代對象。
            store: 可選的 Store 實例，如果不提供則創建新實例。

        Returns:
            配置好的 Store 實例。
        """
        if store is None:
            store = create_store()
        for feature in features:
            store.add_feature(feature)
        return store

    @staticmethod
    def register_feature(feature: Feature, store: Store) -> Store:
        """註冊一個特性模組。"""
        return store.add_feature(feature)


class EffectsModule:
    """
    用於配置 Effects 的工具類，類似於 NgRx 的 EffectsModule。
    """

    @staticmethod
    def register_root(effects_items, store: Store) -> Store:
        """
        註冊根級的 effects。

        Args:
            effects_items: 可以是單個 effect 類/實例，或包含多個 effect 類/實例的列表。
            store: 要註冊到的 Store 實例。
        """
        return store.register_effects(effects_items)

    @staticmethod
    def register_feature(effects_item, store: Store) -> Store:
        """註冊一個特性模組的 effects。"""
        return store.register_effects(effects_item)
