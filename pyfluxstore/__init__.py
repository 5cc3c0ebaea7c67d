"""
PyFluxStore：單向資料流狀態管理 (Redux/Flux 風格) 與時間旅行調試。
"""

from .errors import (
    FluxStoreError, ActionError, ReducerError, EffectError, MiddlewareError,
    SubscriberError, StoreError, SelectorError, ConfigurationError, ErrorHandler,
)
from .actions import Action, create_action
from .reducers import Reducer, on
from .features import Feature, create_feature
from .dispatcher import Dispatcher
from .action_subscriber import ActionSubscriber
from .middleware import BaseMiddleware, LoggerMiddleware
from .effects import Effect, create_effect, EffectsManager
from .store import Store, FeatureMap, create_store, StoreModule, EffectsModule
from .store_selectors import StateSelection
from .devtools import (
    DevToolsMiddleware, DevToolsSettings, TimelineEntry, StateDiff, compute_diff,
)
from .immutable_utils import to_immutable, to_dict

# 匯出所有公開 API
__all__ = [
    # Errors
    "FluxStoreError", "ActionError", "ReducerError", "EffectError", "MiddlewareError",
    "SubscriberError", "StoreError", "SelectorError", "ConfigurationError", "ErrorHandler",

    # Actions
    "Action", "create_action",

    # Reducers / Features
    "Reducer", "on", "Feature", "create_feature",

    # Dispatch
    "Dispatcher", "ActionSubscriber",

    # Middleware
    "BaseMiddleware", "LoggerMiddleware",

    # Effects
    "Effect", "create_effect", "EffectsManager",

    # Store
    "Store", "FeatureMap", "create_store", "StoreModule", "EffectsModule",

    # Selectors
    "StateSelection",

    # DevTools
    "DevToolsMiddleware", "DevToolsSettings", "TimelineEntry", "StateDiff", "compute_diff",

    # Immutable Utils
    "to_immutable", "to_dict",
]
