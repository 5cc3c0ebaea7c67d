import asyncio
import functools
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type

from .actions import Action, resolve_action_classes
from .errors import EffectError

logger = logging.getLogger(__name__)


class Effect:
    """
    對特定 Action 變體做出反應的非同步副作用。

    子類設定 `trigger` 並實作 `handle`；或用 `create_effect` 裝飾一個函數。
    """
    trigger: Any = ()
    name: Optional[str] = None

    def __init__(self, trigger: Any = None, name: Optional[str] = None):
        if trigger is not None:
            self.trigger = trigger
        if name is not None:
            self.name = name
        self._trigger_classes: Tuple[Type[Any], ...] = resolve_action_classes(self.trigger)

    def get_name(self) -> str:
        return self.name or type(self).__name__

    def should_react_to_action(self, action: Action[Any]) -> bool:
        return isinstance(action, self._trigger_classes)

    async def handle(self, action: Action[Any], dispatcher: Any) -> None:
        """
        執行副作用，可以透過 dispatcher 分發新的 actions。

        :param action: 觸發此 effect 的 Action。
        :param dispatcher: 用於分發後續 actions 的 Dispatcher。
        """
        raise NotImplementedError(f"{self.get_name()} must implement handle()")


class FunctionEffect(Effect):
    """
    包裝 create_effect 標記的函數 (或已綁定的方法)。

    函數的返回值若為 Action (或 Action 列表) 且 dispatch=True，會自動分發。
    """

    def __init__(self, fn: Callable[..., Any], trigger: Any, dispatch: bool = True, name: Optional[str] = None):
        super().__init__(trigger, name or getattr(fn, "__qualname__", repr(fn)))
        self._fn = fn
        self.dispatch = dispatch

    async def handle(self, action: Action[Any], dispatcher: Any) -> None:
        result = self._fn(action, dispatcher)
        if inspect.isawaitable(result):
            result = await result
        if not self.dispatch or result is None:
            return
        items = result if isinstance(result, (list, tuple)) else [result]
        for item in items:
            if isinstance(item, Action):
                dispatcher.dispatch(item)
            else:
                logger.warning("Effect %s emitted non-Action: %r", self.get_name(), item)


def create_effect(trigger: Any, *, dispatch: bool = True):
    """
    創建一個副作用裝飾器，用於標記函數為 Effect。

    用法：
      @create_effect(load_count_request)
      async def load_count(action, dispatcher): ...
    或在類別中
      class CounterEffects:
          @create_effect(increment_async, dispatch=False)
          async def log(self, action, dispatcher): ...

    :param trigger: 觸發此 effect 的 Action 類別、action creator 或它們的元組。
    :param dispatch: 是否自動 dispatch 函數返回的 Action，默認為 True。
    :return: 裝飾器。
    """
    # 立即驗證 trigger，讓錯誤在定義時就出現
    resolve_action_classes(trigger)

    def decorator(effect_fn: Callable[..., Awaitable[Any]]):
        @functools.wraps(effect_fn)
        def wrapper(*args, **kwargs):
            return effect_fn(*args, **kwargs)

        # 標記這個 wrapper 是一個 Effect，並記錄 trigger 與 dispatch 標誌
        wrapper.is_effect = True
        wrapper.trigger = trigger
        wrapper.dispatch = dispatch
        return wrapper

    return decorator


class EffectsManager:
    """
    管理所有的 Effect，負責註冊、匹配與並行執行。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._effects: List[Effect] = []
        self._effects_by_module = {}  # 按來源模組 (id) 分組的 Effect

    @property
    def effects(self) -> Tuple[Effect, ...]:
        with self._lock:
            return tuple(self._effects)

    def add_effects(self, *effects_items) -> List[Effect]:
        """
        添加 effects。

        :param effects_items: Effect 實例、Effect 子類、被 create_effect 標記的函數、
            含有標記方法的類別/實例/模組，或它們的列表。
        :return: 新註冊的 Effect 列表。
        """
        added = []
        for item in effects_items:
            for module, effect in self._process_effects_item(item):
                with self._lock:
                    if effect in self._effects:
                        continue
                    self._effects.append(effect)
                    self._effects_by_module.setdefault(id(module), []).append(effect)
                added.append(effect)
        return added

    def _process_effects_item(self, item) -> List[Tuple[Any, Effect]]:
        """
        處理單個 effects 項，返回 (來源, Effect) 列表。

        :param item: Effect 項，可以是類別、實例、函數或列表。
        """
        results = []
        if item is None:
            raise EffectError("Effect must not be None", effect_name="None")
        # 如果是列表或元組，遞歸處理每個子項
        if isinstance(item, (list, tuple)):
            for sub in item:
                results.extend(self._process_effects_item(sub))
        elif isinstance(item, Effect):
            results.append((item, item))
        elif inspect.isclass(item):
            # 如果是類別，直接實例化
            results.extend(self._process_effects_item(item()))
        elif getattr(item, "is_effect", False):
            results.append((item, self._bind(item, getattr(item, "__qualname__", repr(item)))))
        else:
            for name, member in inspect.getmembers(item):
                if getattr(member, "is_effect", False):
                    owner = type(item).__name__ if not inspect.ismodule(item) else item.__name__
                    results.append((item, self._bind(member, f"{owner}.{name}")))
        if not results:
            logger.warning("No effects found in %r", item)
        return results

    @staticmethod
    def _bind(member: Callable[..., Any], name: str) -> Effect:
        return FunctionEffect(member, member.trigger, dispatch=getattr(member, "dispatch", True), name=name)

    def remove_effects(self, *modules) -> None:
        """
        卸載指定來源的所有 effects，不影響其他來源。

        :param modules: 先前傳給 add_effects 的物件。
        """
        for module in modules:
            with self._lock:
                effects = self._effects_by_module.pop(id(module), [])
                self._effects = [e for e in self._effects if e not in effects]

    def matching(self, action: Action[Any]) -> List[Effect]:
        """返回所有應對此 action 做出反應的 effects。"""
        with self._lock:
            effects = list(self._effects)
        return [e for e in effects if e.should_react_to_action(action)]

    async def run(self, effects: List[Effect], action: Action[Any], dispatcher: Any) -> List[EffectError]:
        """
        並行執行 effects 並等待它們全部完成。

        :return: 失敗的 effects 對應的 EffectError 列表（每個失敗一個）。
        """
        results = await asyncio.gather(
            *(effect.handle(action, dispatcher) for effect in effects),
            return_exceptions=True,
        )
        errors = []
        for effect, result in zip(effects, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    continue
                error = EffectError(
                    f"Effect {effect.get_name()} failed: {result}",
                    effect_name=effect.get_name(),
                    action_type=action.type,
                )
                error.__cause__ = result
                errors.append(error)
        return errors

    def teardown(self) -> None:
        """清理所有 effects。"""
        with self._lock:
            self._effects.clear()
            self._effects_by_module.clear()
