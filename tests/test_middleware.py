from __future__ import annotations

import logging

import pytest
from counter_samples import Increment, make_counter_feature

from pyfluxstore import BaseMiddleware, LoggerMiddleware, Store


def test_base_middleware_defaults() -> None:
    middleware = BaseMiddleware()

    assert middleware.may_dispatch_action(Increment()) is True
    assert middleware.is_inside_middleware_change is False


def test_base_middleware_scope_counting() -> None:
    endings: list[int] = []

    class Tracking(BaseMiddleware):
        def on_internal_middleware_change_ending(self) -> None:
            endings.append(self._begin_middleware_change_count)

    middleware = Tracking()
    first = middleware.begin_internal_middleware_change()
    second = middleware.begin_internal_middleware_change()

    first.dispose()
    assert endings == []
    assert middleware.is_inside_middleware_change

    second.dispose()
    assert endings == [1]
    assert not middleware.is_inside_middleware_change


@pytest.mark.asyncio
async def test_logger_middleware_logs_each_dispatch(caplog: pytest.LogCaptureFixture) -> None:
    store = Store()
    store.add_feature(make_counter_feature())
    middleware = LoggerMiddleware(level=logging.INFO)
    store.add_middleware(middleware)
    await store.initialize_async()

    with caplog.at_level(logging.INFO, logger="pyfluxstore.middleware"):
        store.dispatch(Increment())

    assert middleware.store is store
    assert "dispatching" in caplog.text
    assert "state after" in caplog.text
    assert "value=1" in caplog.text


@pytest.mark.asyncio
async def test_apply_middleware_instantiates_classes() -> None:
    store = Store()
    store.apply_middleware(LoggerMiddleware, BaseMiddleware())
    await store.initialize_async()

    assert [type(m) for m in store.middlewares] == [LoggerMiddleware, BaseMiddleware]
