"""
基於 PyFluxStore 的 DevTools 時間線記錄模組。

DevToolsMiddleware 在每個成功分發的 action 之後記錄組合狀態快照，
可選地計算與上一筆的差異並序列化為 JSON，以有界的環形緩衝保存，
並支援時間旅行 (replay_to) 將 Store 還原到任意歷史快照。
"""
import datetime
import json
import logging
import threading
from bisect import bisect_right
from typing import Any, List, Mapping, Optional, Tuple

from immutables import Map
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from reactivex import Observable, Subject

from .actions import Action
from .errors import ConfigurationError, StoreError
from .immutable_utils import to_dict
from .middleware import BaseMiddleware

logger = logging.getLogger(__name__)

MIN_ENTRIES = 100


class DevToolsSettings(BaseModel):
    """時間線記錄器的配置。"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_entries: int = Field(default=2000, ge=MIN_ENTRIES)
    capture_state_diffs: bool = True
    capture_raw_state_json: bool = True


class StateDiff(BaseModel):
    """兩個連續快照之間的新增 / 移除 / 改變的 feature 狀態。"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    added: Map = Field(default_factory=Map)
    removed: Map = Field(default_factory=Map)
    changed: Map = Field(default_factory=Map)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class TimelineEntry(BaseModel):
    """一次完成的 dispatch 所對應的不可變時間線記錄。"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: int
    timestamp: datetime.datetime
    action_type: str
    action: Any = None
    state: Map = Field(default_factory=Map)
    state_json: Optional[str] = None
    diff: Optional[StateDiff] = None


def compute_diff(old: Mapping[str, Any], new: Mapping[str, Any]) -> StateDiff:
    """
    以單次遍歷兩個快照鍵的聯集，計算差異。

    Args:
        old: 先前的快照
        new: 新的快照

    Returns:
        added 為只在 new 中的鍵，removed 為只在 old 中的鍵，
        changed 為兩者皆有但值不相等 (以 == 比較，而非身份) 的鍵。
    """
    added, removed, changed = {}, {}, {}
    for key in dict.fromkeys([*new.keys(), *old.keys()]):
        in_old, in_new = key in old, key in new
        if in_new and not in_old:
            added[key] = new[key]
        elif in_old and not in_new:
            removed[key] = old[key]
        elif old[key] != new[key]:
            changed[key] = new[key]
    return StateDiff(added=Map(added), removed=Map(removed), changed=Map(changed))


def _json_default(o: Any) -> Any:
    if isinstance(o, BaseModel):
        return o.model_dump()
    if isinstance(o, Map):
        return dict(o)
    if isinstance(o, Action):
        return {"type": o.type, "payload": to_dict(o.payload)}
    if hasattr(o, "__dict__"):
        return vars(o)
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def safe_to_json(state: Any) -> str:
    """將快照序列化為 JSON；失敗時返回 "{}"，永不拋出。"""
    if state is None:
        return "{}"
    try:
        return json.dumps(to_dict(state), default=_json_default, separators=(",", ":"))
    except Exception as err:
        logger.warning("Failed to serialize state snapshot: %s", err)
        return "{}"


class DevToolsMiddleware(BaseMiddleware):
    """
    記錄每次 action 與 state 快照，支援時間旅行調試。

    使用場景:
    - 當需要回溯 state 的變化歷史以進行調試時。

    範例:
        ```python
        devtools = DevToolsMiddleware(DevToolsSettings(max_entries=500))
        store.add_middleware(devtools)
        await store.initialize_async()

        store.dispatch(increment())
        store.dispatch(increment())
        devtools.replay_to(0)  # counter 回到第一次 increment 之後
        ```
    """

    def __init__(self, settings: Any = None) -> None:
        """
        Args:
            settings: DevToolsSettings、等價的字典，或 None (使用預設值)

        Raises:
            ConfigurationError: 配置不合法
        """
        super().__init__()
        self.settings = self._load_settings(settings)
        self._lock = threading.Lock()
        self._entries: List[TimelineEntry] = []
        self._next_index = 0
        self._is_replaying = False
        self._changed = Subject()

    @staticmethod
    def _load_settings(settings: Any) -> DevToolsSettings:
        if settings is None:
            return DevToolsSettings()
        if isinstance(settings, DevToolsSettings):
            return settings
        try:
            return DevToolsSettings.model_validate(dict(settings))
        except (PydanticValidationError, TypeError, ValueError) as err:
            raise ConfigurationError(
                f"Invalid devtools settings: {err}", component="DevToolsMiddleware"
            ) from err

    @property
    def entries(self) -> Tuple[TimelineEntry, ...]:
        """依 index 排序的唯讀時間線。"""
        with self._lock:
            return tuple(self._entries)

    @property
    def latest(self) -> Optional[TimelineEntry]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    @property
    def changed(self) -> Observable:
        """時間線改變（新增記錄、時間旅行、清空）時發送此中介軟體本身。"""
        return self._changed

    @property
    def is_replaying(self) -> bool:
        return self._is_replaying

    def after_dispatch(self, action: Action[Any]) -> None:
        """在 reducer 完成後記錄組合狀態的快照。"""
        if self._is_replaying or self.store is None:
            return

        # Store.state 是當下的淺拷貝 (不可變 Map)，之後 feature 的改變不會影響它
        state = self.store.state
        settings = self.settings
        with self._lock:
            previous = self._entries[-1] if self._entries else None
            entry = TimelineEntry(
                index=self._next_index,
                timestamp=datetime.datetime.now(datetime.timezone.utc),
                action_type=action.type,
                action=action,
                state=state,
                state_json=safe_to_json(state) if settings.capture_raw_state_json else None,
                diff=compute_diff(previous.state, state) if settings.capture_state_diffs and previous else None,
            )
            self._next_index += 1
            self._entries.append(entry)
            overflow = len(self._entries) - settings.max_entries
            if overflow > 0:
                del self._entries[:overflow]
        logger.debug("Recorded timeline entry %d for %s", entry.index, entry.action_type)
        self._changed.on_next(self)

    def find_closest(self, target_index: int) -> Optional[TimelineEntry]:
        """
        二分搜尋 index 最接近且不大於 target_index 的記錄。

        低於最舊保留記錄時返回最舊的，高於最新時返回最新的；時間線為空時返回 None。
        """
        with self._lock:
            if not self._entries:
                return None
            first, last = self._entries[0].index, self._entries[-1].index
            target_index = min(max(target_index, first), last)
            position = bisect_right(self._entries, target_index, key=lambda e: e.index) - 1
            return self._entries[position]

    def replay_to(self, target_index: int) -> Optional[TimelineEntry]:
        """
        時間旅行：將每個 feature 還原為指定記錄中的狀態。

        還原期間 Store 處於「請勿打擾」範圍，不會產生新的時間線記錄，
        也不會觸發訂閱者或 effects。快照中沒有的 feature 保持不變。

        Args:
            target_index: 目標記錄的 index

        Returns:
            實際還原的記錄；時間線為空時返回 None。
        """
        if self.store is None:
            raise StoreError("DevToolsMiddleware has not been initialized", operation="replay_to")

        self._is_replaying = True
        try:
            with self.store.begin_internal_middleware_change():
                entry = self.find_closest(target_index)
                if entry is None:
                    return None
                for name, feature in self.store.features.items():
                    if name in entry.state:
                        feature.restore_state(entry.state[name])
        finally:
            self._is_replaying = False

        logger.debug("Replayed to timeline entry %d (requested %d)", entry.index, target_index)
        self._changed.on_next(self)
        return entry

    def clear(self) -> None:
        """清空時間線；index 不會被重新使用。"""
        with self._lock:
            self._entries.clear()
        self._changed.on_next(self)
