"""Invocation of trial bodies."""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from trialkit.models.units import Invocation


logger = logging.getLogger(__name__)


class Invoker(Protocol):
    """Protocol for calling the body of an invocation."""

    async def invoke(self, invocation: Invocation) -> None:
        """Call the body with the invocation's arguments."""
        ...

    def shutdown(self) -> None:
        """Release resources once the run is over."""
        ...


@dataclass
class DefaultInvoker:
    """Default invoker that handles sync and async bodies.

    Methods of a suite class run on a fresh instance per invocation.
    Synchronous bodies run on a daemon thread each when ``threaded`` is set,
    so they can overlap with other invocations and be abandoned on timeout
    without holding up the event loop or interpreter exit. Otherwise they
    block the event loop while they run.
    """

    threaded: bool = True
    _running: set[str] = field(default_factory=set, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    async def invoke(self, invocation: Invocation) -> None:
        unit = invocation.unit
        args: tuple[Any, ...] = invocation.arguments
        if unit.owner is not None:
            args = (unit.owner(), *args)

        if unit.is_async:
            await unit.body(*args)
            return

        if self.threaded:
            result = await self._in_thread(invocation.identifier, unit.body, *args)
        else:
            result = unit.body(*args)
        if inspect.isawaitable(result):
            await result

    async def _in_thread(self, identifier: str, fn: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        # The body sees the invocation's context variables.
        ctx = contextvars.copy_context()

        def settle(result: Any, error: BaseException | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def call() -> None:
            result, error = None, None
            try:
                result = ctx.run(fn, *args)
            except BaseException as e:
                error = e
            finally:
                with self._lock:
                    self._running.discard(identifier)
            try:
                loop.call_soon_threadsafe(settle, result, error)
            except RuntimeError:
                logger.debug("%s finished after its run ended", identifier)

        with self._lock:
            self._running.add(identifier)
        threading.Thread(target=call, name=f"trialkit-{identifier}", daemon=True).start()
        return await future

    def shutdown(self) -> None:
        """Log bodies that outlived their time limit; their threads are left to finish alone."""
        with self._lock:
            abandoned, self._running = sorted(self._running), set()
        if abandoned:
            logger.warning(
                "Abandoning %d trial body(ies) still running: %s",
                len(abandoned),
                ", ".join(abandoned),
            )
