"""
PyFluxStore 錯誤處理模組。

定義所有 PyFluxStore 異常類別，以及 Store 專屬的未處理錯誤通道 ErrorHandler。
"""
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional, Tuple

from reactivex import Observable, Subject
from reactivex.abc import DisposableBase

logger = logging.getLogger(__name__)


class FluxStoreError(Exception):
    """所有 PyFluxStore 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """將錯誤轉換為可序列化的字典。"""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.__cause__ is not None:
            cause = self.__cause__
            result["cause"] = repr(cause)
            result["traceback"] = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )
        return result

    def __str__(self) -> str:
        if not self.details:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({details})"


class ActionError(FluxStoreError):
    """與 Action 相關的錯誤。"""

    def __init__(self, message: str, action_type: Optional[str] = None, payload: Any = None, **kwargs: Any) -> None:
        details = {"action_type": action_type, **kwargs}
        if payload is not None:
            details["payload"] = payload
        super().__init__(message, details)


class ReducerError(FluxStoreError):
    """與 Reducer 註冊相關的錯誤。"""

    def __init__(self, message: str, feature_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"feature_name": feature_name, **kwargs})


class EffectError(FluxStoreError):
    """Effect 執行時拋出的錯誤。"""

    def __init__(self, message: str, effect_name: str, action_type: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"effect_name": effect_name, "action_type": action_type, **kwargs})
        self.effect_name = effect_name


class MiddlewareError(FluxStoreError):
    """中介軟體生命週期錯誤。"""

    def __init__(self, message: str, middleware_name: str, stage: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"middleware_name": middleware_name, "stage": stage, **kwargs})
        self.middleware_name = middleware_name


class SubscriberError(FluxStoreError):
    """
    Action 訂閱者的回調拋出錯誤。

    所有回調都執行完後才會拋出，`callback` 指向第一個失敗的回調，
    `failures` 保留全部 (callback, exception)。
    """

    def __init__(self, failures: List[Tuple[Callable[..., Any], BaseException]], action_type: Optional[str] = None) -> None:
        callback, _ = failures[0]
        super().__init__(
            f"Exception in action subscriber: {callback!r}",
            {"action_type": action_type, "failed_callbacks": len(failures)},
        )
        self.callback = callback
        self.failures = list(failures)


class StoreError(FluxStoreError):
    """與 Store 操作相關的錯誤。"""

    def __init__(self, message: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})


class SelectorError(FluxStoreError):
    """與 Selector 相關的錯誤。"""

    def __init__(self, message: str, selector_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"selector_name": selector_name, **kwargs})


class ConfigurationError(FluxStoreError):
    """配置相關的錯誤。"""

    def __init__(self, message: str, component: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"component": component, "config_key": config_key, **kwargs})


class ErrorHandler:
    """
    未處理錯誤通道。

    每個 Store 擁有自己的實例（非全域）。錯誤會被記錄到日誌，
    然後依註冊順序推送給所有處理器。
    """

    def __init__(self, name: str = "store") -> None:
        self.name = name
        self._subject: Subject = Subject()

    @property
    def errors(self) -> Observable:
        """所有未處理錯誤的資料流。"""
        return self._subject

    def register_handler(self, handler: Callable[[BaseException], None]) -> DisposableBase:
        """
        註冊一個錯誤處理器。

        Args:
            handler: 接收錯誤物件的回調

        Returns:
            釋放時取消註冊的 Disposable
        """
        return self._subject.subscribe(on_next=handler)

    def handle(self, error: BaseException) -> None:
        """記錄錯誤並推送給處理器。"""
        logger.error("[%s] unhandled error: %s", self.name, error, exc_info=error)
        self._subject.on_next(error)
