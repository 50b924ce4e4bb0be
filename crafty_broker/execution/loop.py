"""
Dedicated execution context for the async transport.

Lifecycle operations are blocking for the orchestrator, but the HTTP exchange
and the poll sleeps are awaited on an asyncio loop owned by one daemon
thread. Callers submit a coroutine and block on its result; the loop itself
never blocks, so other brokers sharing the process are not starved.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventLoopThread:
    """An asyncio event loop running forever in a background thread."""

    def __init__(self, name: str = "crafty-broker-loop"):
        self.name = name
        self._loop = asyncio.new_event_loop()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the loop and block the calling thread for its result."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"Event loop {self.name} is closed")
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("run() called from the loop thread would deadlock")

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def close(self, timeout: float = 5.0) -> None:
        """Stop the loop and join its thread. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Event loop thread %s did not stop within %.1fs", self.name, timeout)
