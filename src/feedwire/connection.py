from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Frame = dict[str, Any]

CLOSE_SUPERSEDED = 4000


class Connection:
    """A live, authenticated channel to one client.

    ``deliver`` never blocks and never raises for transport trouble: it returns
    ``False`` when the frame could not be handed to the transport.
    """

    user_id: str | None = None

    @property
    def closed(self) -> bool:
        raise NotImplementedError

    def deliver(self, frame: Frame) -> bool:
        raise NotImplementedError

    def close(self, code: int = 1000, reason: str = "") -> None:
        raise NotImplementedError


class CallbackConnection(Connection):
    """Hands frames synchronously to a callback; used off-network."""

    def __init__(self, callback: Callable[[Frame], None]) -> None:
        self._callback = callback
        self._closed = False
        self.close_code: int | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, frame: Frame) -> bool:
        if self._closed:
            return False
        self._callback(frame)
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        if not self._closed:
            self._closed = True
            self.close_code = code


class QueuedConnection(Connection):
    """Bounded outbound queue drained by a writer task onto a WebSocket.

    Frames reach the socket in the order they were delivered. A full queue
    refuses the frame and closes the socket; a failed write closes the socket
    and fires ``on_write_failure``.
    """

    def __init__(
        self,
        ws,
        *,
        queue_size: int = 1000,
        on_write_failure: Optional[Callable[["QueuedConnection"], None]] = None,
    ) -> None:
        self._ws = ws
        self._outbound: asyncio.Queue[Optional[Frame]] = asyncio.Queue(maxsize=queue_size)
        self._on_write_failure = on_write_failure
        self._writer_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.closed

    def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(self._writer())

    def deliver(self, frame: Frame) -> bool:
        if self.closed:
            return False
        try:
            self._outbound.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("outbound queue full for %s; closing", self.user_id)
            self.close(code=1011, reason="backpressure")
            return False
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        self._close_task = asyncio.get_running_loop().create_task(
            self._ws.close(code=code, message=reason.encode("utf-8"))
        )

    async def _writer(self) -> None:
        try:
            while True:
                frame = await self._outbound.get()
                if frame is None:
                    break
                await self._ws.send_json(frame)
        except asyncio.CancelledError:
            return
        except (ConnectionError, RuntimeError) as exc:
            logger.warning("write to %s failed: %s", self.user_id, exc)
            self._closed = True
            if self._on_write_failure is not None:
                self._on_write_failure(self)

    async def drain_and_stop(self) -> None:
        """Flush frames already queued, then stop the writer."""

        if self._writer_task is not None:
            if self._ws.closed:
                self._writer_task.cancel()
            else:
                try:
                    self._outbound.put_nowait(None)
                except asyncio.QueueFull:
                    self._writer_task.cancel()
            await asyncio.gather(self._writer_task, return_exceptions=True)
            self._writer_task = None
        if self._close_task is not None:
            await asyncio.gather(self._close_task, return_exceptions=True)
