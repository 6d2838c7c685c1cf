"""Dispatch of WhatsApp client notifications.

Status notifications (qr, ready, auth_failure, disconnected) update the
runtime context in arrival order; each message notification is routed in
its own task. Every event is handled in isolation: a failure is logged and
recorded as the last error, and other events are processed normally.
"""

from __future__ import annotations

import asyncio
import logging

from adapters.qr_rendering import print_qr, qr_data_url
from core.models import ClientEvent
from core.ports import EventSourcePort
from core.router import MessageRouter
from core.runtime import RuntimeContext

LOGGER = logging.getLogger(__name__)


class EventDispatcher:
    """Applies client events to the runtime context and router."""

    def __init__(
        self,
        runtime: RuntimeContext,
        router: MessageRouter,
        print_codes: bool = True,
        drain_timeout: float = 10.0,
    ) -> None:
        self._runtime = runtime
        self._router = router
        self._print_codes = print_codes
        self._drain_timeout = drain_timeout
        self._pending: set[asyncio.Task] = set()

    async def dispatch(self, event: ClientEvent) -> None:
        try:
            await self._dispatch(event)
        except Exception as exc:
            LOGGER.exception("Error while handling %s event", event.kind)
            self._runtime.record_error(f"{event.kind}: {exc!r}")

    async def _dispatch(self, event: ClientEvent) -> None:
        payload = event.payload
        if event.message is not None:
            await self._router.handle(event.message)
        elif event.kind == "qr":
            self._on_qr(str(payload.get("qr") or ""))
        elif event.kind == "ready":
            self._runtime.set_ready(True)
            LOGGER.info("WhatsApp client ready")
        elif event.kind == "auth_failure":
            self._runtime.record_error(f"auth_failure: {payload.get('message') or ''}")
            LOGGER.error("%s", self._runtime.last_error)
        elif event.kind == "disconnected":
            self._runtime.set_ready(False)
            self._runtime.record_error(f"disconnected: {payload.get('reason') or ''}")
            LOGGER.error("%s", self._runtime.last_error)
        else:
            LOGGER.debug("Ignoring %s event", event.kind)

    def _on_qr(self, code: str) -> None:
        if not code:
            return
        LOGGER.info("QR code received. Scan it with WhatsApp on your phone.")
        if self._print_codes:
            print_qr(code)
        self._runtime.update_qr(code, qr_data_url(code))

    async def run(self, source: EventSourcePort) -> None:
        """Consume the event stream until it ends.

        Status events are applied in order as they arrive. Each message runs
        in its own task, so a slow send or chat lookup only holds up that
        message.
        """

        try:
            async for event in source.events():
                if event.message is not None:
                    self._spawn(event)
                else:
                    await self.dispatch(event)
            await self._drain()
        finally:
            leftovers = list(self._pending)
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)
        self._runtime.set_ready(False)
        self._runtime.record_error("disconnected: bridge event stream closed")
        LOGGER.error("WhatsApp bridge event stream closed")

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _spawn(self, event: ClientEvent) -> None:
        task = asyncio.create_task(self.dispatch(event))
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Message task failed", exc_info=exc)
            self._runtime.record_error(f"message: {exc!r}")

    async def _drain(self) -> None:
        if not self._pending:
            return
        _, still_running = await asyncio.wait(set(self._pending), timeout=self._drain_timeout)
        if still_running:
            LOGGER.warning("Cancelling %s message tasks still running at shutdown", len(still_running))
