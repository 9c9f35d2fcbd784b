# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

lib_logger = logging.getLogger("key_router")


class PeriodicTask:
    """
    A background task that runs an async callable on a fixed interval.

    A failing tick is logged and the loop keeps going. With ``timeout``
    set, a tick that runs longer is cancelled and counts as failed.
    Cancelling via ``stop()`` interrupts the task wherever it is, including
    mid-call.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        run_on_start: bool = False,
        timeout: Optional[float] = None,
    ):
        self.name = name
        self._interval = interval
        self._func = func
        self._run_on_start = run_on_start
        self._timeout = timeout
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Starts the background task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            lib_logger.info(f"Background task '{self.name}' started. Interval: {self._interval} seconds.")

    async def stop(self):
        """Stops the background task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            lib_logger.info(f"Background task '{self.name}' stopped.")

    async def _tick(self):
        if self._timeout is not None:
            await asyncio.wait_for(self._func(), timeout=self._timeout)
        else:
            await self._func()

    async def _run(self):
        """The main loop for the background task."""
        if not self._run_on_start:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                lib_logger.warning(
                    f"Background task '{self.name}' timed out after {self._timeout}s"
                )
            except Exception as e:
                lib_logger.error(f"Error in background task '{self.name}': {e}")
            await asyncio.sleep(self._interval)
