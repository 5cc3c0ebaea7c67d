"""
基於 PyFluxStore 的中介軟體定義模組。

中介軟體可以在動作分發過程中插入自定義邏輯：否決 action、
在 reducer 之前/之後觀察，以及參與「請勿打擾」(internal middleware change) 範圍。
"""
import datetime
import logging
import threading
from typing import TYPE_CHECKING, Any, Optional

from reactivex.disposable import Disposable

from .actions import Action

if TYPE_CHECKING:
    from .dispatcher import Dispatcher
    from .store import Store

logger = logging.getLogger(__name__)


# ———— Base Middleware ————
class BaseMiddleware:
    """
    基礎中介類，定義所有中介可能實現的鉤子。

    Store 在每個 action 上依註冊順序調用:
    may_dispatch_action -> before_dispatch -> (reducers / 訂閱者) -> after_dispatch
    """

    def __init__(self) -> None:
        self.dispatcher: Optional["Dispatcher"] = None
        self.store: Optional["Store"] = None
        self._change_lock = threading.Lock()
        self._begin_middleware_change_count = 0

    @property
    def is_inside_middleware_change(self) -> bool:
        """
        Store 目前是否處於「請勿打擾」範圍內。

        中介軟體應檢查此屬性以避免回饋循環（例如自動存檔不應在讀檔還原時存檔）。
        """
        return self._begin_middleware_change_count > 0

    async def initialize_async(self, dispatcher: "Dispatcher", store: "Store") -> None:
        """
        Store 初始化時依序調用（前一個完成後才調用下一個）。

        Args:
            dispatcher: Store 使用的 Dispatcher
            store: 所屬的 Store
        """
        self.dispatcher = dispatcher
        self.store = store

    def after_initialize_all_middlewares(self) -> None:
        """所有中介軟體都初始化完成後調用。"""
        pass

    def may_dispatch_action(self, action: Action[Any]) -> bool:
        """
        返回 False 會完全丟棄此 action（不歸約、不通知、不觸發 effects）。
        """
        return True

    def before_dispatch(self, action: Action[Any]) -> None:
        """在 action 發送給 features 之前調用。"""
        pass

    def after_dispatch(self, action: Action[Any]) -> None:
        """在 features 與訂閱者處理完 action 之後、effects 觸發之前調用。"""
        pass

    def on_internal_middleware_change_ending(self) -> None:
        """最外層的「請勿打擾」範圍即將結束時調用。"""
        pass

    def teardown(self) -> None:
        """當 Store 清理資源時調用，用於清理中間件持有的資源。"""
        pass

    def begin_internal_middleware_change(self) -> Disposable:
        """
        進入一層「請勿打擾」範圍。

        Returns:
            釋放時退出此層的 Disposable；只有最後一層退出時才調用
            on_internal_middleware_change_ending。
        """
        with self._change_lock:
            self._begin_middleware_change_count += 1

        def end() -> None:
            with self._change_lock:
                is_last = self._begin_middleware_change_count == 1
            # 只在最後一次遞減（即將變為 0）之前觸發回調
            if is_last:
                self.on_internal_middleware_change_ending()
            with self._change_lock:
                self._begin_middleware_change_count -= 1

        return Disposable(end)


# ———— LoggerMiddleware ————
class LoggerMiddleware(BaseMiddleware):
    """
    日誌中介，記錄每個 action 發送前和發送後的 state。

    使用場景:
    - 偵錯時需要觀察每次 state 的變化。
    - 確保 action 的執行順序正確。
    """

    def __init__(self, level: int = logging.DEBUG, log_state: bool = True) -> None:
        super().__init__()
        self.level = level
        self.log_state = log_state
        self._started_at: Optional[datetime.datetime] = None

    def before_dispatch(self, action: Action[Any]) -> None:
        self._started_at = datetime.datetime.now()
        logger.log(self.level, "[%s] ▶️ dispatching %s", self._started_at, action.type)
        if self.log_state and self.store is not None:
            logger.log(self.level, "[%s] 🔄 state before %s: %s", self._started_at, action.type, self.store.state)

    def after_dispatch(self, action: Action[Any]) -> None:
        if self.log_state and self.store is not None:
            logger.log(self.level, "[%s] ✅ state after %s: %s", self._started_at, action.type, self.store.state)
        else:
            logger.log(self.level, "[%s] ✅ dispatched %s", self._started_at, action.type)
        self._started_at = None

    def on_internal_middleware_change_ending(self) -> None:
        logger.log(self.level, "⏪ internal middleware change ending")
