from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.3


class Debouncer:
    """Run only the last call issued within *delay* seconds.

    Typical use is search-as-you-type::

        debounced = Debouncer(store.search)
        debounced("rasc")
        debounced("rascunho")   # only this one reaches the store
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], delay: float = DEFAULT_DELAY) -> None:
        self._func = func
        self._delay = delay
        self._task: asyncio.Task | None = None
        self._fired: asyncio.Task | None = None

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(args, kwargs))
        return self._task

    async def _run(self, args: tuple, kwargs: dict) -> Any:
        await asyncio.sleep(self._delay)
        self._fired = asyncio.current_task()
        try:
            return await self._func(*args, **kwargs)
        except Exception:
            logger.warning("Chamada adiada falhou", exc_info=True)
            raise

    @property
    def pending(self) -> bool:
        """True while the latest call is still waiting out its delay."""
        task = self._task
        return task is not None and not task.done() and task is not self._fired

    def cancel(self) -> None:
        """Drop the waiting call. A call that already started runs to completion."""
        if self.pending:
            self._task.cancel()

    async def flush(self) -> Any:
        """Wait for the pending call, if any, and return its result."""
        task = self._task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            return None
