import asyncio
import logging

from pyfluxstore import (
    DevToolsMiddleware,
    DevToolsSettings,
    EffectsModule,
    LoggerMiddleware,
    StateSelection,
    StoreModule,
)

from counter_actions import decrement, increment, increment_async, set_amount
from counter_effects import CounterEffects
from counter_feature import counter_feature


async def main() -> None:
    # 創建 Store 並註冊 feature / effects / middleware
    store = StoreModule.register_root([counter_feature])
    EffectsModule.register_root(CounterEffects, store)
    devtools = DevToolsMiddleware(DevToolsSettings(max_entries=500))
    store.apply_middleware(LoggerMiddleware(level=logging.INFO), devtools)
    store.on_unhandled_error(lambda err: print(f"未處理錯誤: {err}"))

    # 訂閱狀態變化
    StateSelection(counter_feature).select(
        lambda state: state.value,
        selected_value_changed=lambda value: print(f"計數變化: {value}"),
    )

    await store.initialize_async()

    print("\n==== 開始測試基本操作 ====")
    store.dispatch(increment())
    store.dispatch(increment())
    store.dispatch(set_amount(10))
    store.dispatch(decrement())

    print("\n==== 開始測試異步操作 ====")
    store.dispatch(increment_async())
    await store.wait_for_effects()

    print("\n==== 時間線 ====")
    for entry in devtools.entries:
        print(f"#{entry.index} {entry.action_type}: {entry.state_json}")

    print("\n==== 時間旅行到 #1 ====")
    devtools.replay_to(1)
    print(store.state)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s %(message)s")
    asyncio.run(main())
