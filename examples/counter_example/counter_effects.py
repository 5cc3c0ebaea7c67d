import asyncio
import logging

from pyfluxstore import create_effect

from counter_actions import CounterAction, increment, increment_async

logger = logging.getLogger(__name__)


class CounterEffects:
    @create_effect(increment_async)
    async def increment_later(self, action, dispatcher):
        """模擬非同步工作，完成後 dispatch increment"""
        await asyncio.sleep(0.5)
        return increment()

    @create_effect(CounterAction, dispatch=False)
    async def log_actions(self, action, dispatcher):
        """只做日誌，不 dispatch 新 action"""
        logger.info("[Effect] counter action: %s", action.type)
