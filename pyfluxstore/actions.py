"""
基於 PyFluxStore 的 Action 定義模組。

此模組提供 Action 類別以及創建 Action 的功能。
Actions 是描述「發生了什麼事」的不可變對象，其具體子類即為 Action 的變體，
訂閱、reducer 與 effect 都以類別（含父類別）來匹配。
"""
import re
from typing import Any, Callable, ClassVar, Dict, Generic, Optional, Tuple, Type, TypeVar, Union

from .errors import ActionError
from .immutable_utils import to_immutable

P = TypeVar("P")


class Action(Generic[P]):
    """
    表示一個有類型和可選負載的動作。

    泛型參數:
        P: 負載的類型

    屬性:
        type: 動作的類型字符串（類別屬性，預設為類別的完整名稱）
        payload: 動作的負載數據（可選，dict/list 會被轉為不可變結構）
    """
    __slots__ = ('payload',)

    type: ClassVar[str] = "Action"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "type" not in cls.__dict__:
            cls.type = f"{cls.__module__}.{cls.__qualname__}"

    def __init__(self, payload: Optional[P] = None):
        object.__setattr__(self, 'payload', to_immutable(payload))

    def __setattr__(self, name, value):
        raise AttributeError(f"Cannot modify immutable action attribute '{name}'")

    def __delattr__(self, name):
        raise AttributeError(f"Cannot delete immutable action attribute '{name}'")

    def __eq__(self, other):
        if not isinstance(other, Action):
            return NotImplemented
        return type(self) is type(other) and self.payload == other.payload

    def __hash__(self):
        return hash((type(self), self.payload))

    def __repr__(self):
        return f"{type(self).__name__}(type='{self.type}', payload={self.payload!r})"


ActionMarker = Union[Type[Any], Callable[..., Action]]


def resolve_action_class(marker: Any) -> Type[Any]:
    """
    將 Action 類別或 action creator 解析為用於 isinstance 匹配的類別。

    Args:
        marker: Action 子類、任意標記類別 (如共同父類)，或 create_action 返回的 creator

    Returns:
        對應的類別

    Raises:
        ActionError: 無法解析時
    """
    action_class = getattr(marker, "action_class", marker)
    if not isinstance(action_class, type):
        raise ActionError(f"Not an action class or action creator: {marker!r}")
    return action_class


def resolve_action_classes(markers: Any) -> Tuple[Type[Any], ...]:
    """解析單個或多個標記 (tuple/list)。"""
    if isinstance(markers, (tuple, list)):
        if not markers:
            raise ActionError("At least one action type is required")
        return tuple(resolve_action_class(m) for m in markers)
    return (resolve_action_class(markers),)


def _class_name(action_type: str) -> str:
    name = "".join(part[:1].upper() + part[1:] for part in re.split(r"[^0-9A-Za-z]+", action_type))
    if not name or name[0].isdigit():
        name = "Action" + name
    return name


def create_action(
    action_type: str,
    prepare_fn: Optional[Callable[..., Any]] = None,
    base: ActionMarker = Action,
) -> Callable[..., Action[Any]]:
    """
    創建一個 Action 生成器函數。

    每次調用都會產生一個新的 Action 子類，作為這個 action 的變體。
    共享同一個 `base` 的 creators 可以被以 `base` 訂閱的回調同時匹配。

    Args:
        action_type: Action 的類型標識符
        prepare_fn: 可選的預處理函數，用於在創建 Action 前處理輸入參數
        base: 父類，可以是 Action 子類或另一個 action creator

    Returns:
        一個可調用的函數，用於生成指定類型的 Action

    範例:
        >>> increment = create_action("[Counter] Increment")
        >>> increment()  # 返回 CounterIncrement(type='[Counter] Increment', payload=None)
        >>>
        >>> add = create_action("[Counter] Add", lambda amount: amount)
        >>> add(5)  # 返回 CounterAdd(type='[Counter] Add', payload=5)
    """
    base_class = resolve_action_class(base)
    if not issubclass(base_class, Action):
        raise ActionError("Action base must derive from Action", action_type=action_type)

    action_class: Type[Action[Any]] = type(
        _class_name(action_type), (base_class,), {"__slots__": (), "type": action_type}
    )

    def action_creator(*args: Any, **kwargs: Any) -> Action[Any]:
        if prepare_fn:
            return action_class(prepare_fn(*args, **kwargs))
        elif len(args) == 1 and not kwargs:
            return action_class(args[0])
        elif args or kwargs:
            payload: Dict[Union[int, str], Any] = dict(zip(range(len(args)), args))
            payload.update(kwargs)
            return action_class(payload)

        # 無參數，無負載
        return action_class()

    # 添加 type / action_class 屬性以便於識別與匹配
    action_creator.type = action_type  # type: ignore
    action_creator.action_class = action_class  # type: ignore
    action_creator.__name__ = action_class.__name__

    return action_creator
