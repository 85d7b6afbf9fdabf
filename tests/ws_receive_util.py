import asyncio
from typing import Any, Callable

from aiohttp import WSMsgType, web


async def _receive_with_deadline(ws: web.WebSocketResponse, deadline: float):
    loop = asyncio.get_running_loop()
    remaining = deadline - loop.time()
    if remaining <= 0:
        raise asyncio.TimeoutError("Timed out waiting for websocket message")
    return await ws.receive(timeout=remaining)


async def recv_json_until(
    ws: web.WebSocketResponse,
    *,
    timeout: float = 2.0,
    predicate: Callable[[Any], bool],
) -> Any:
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        msg = await _receive_with_deadline(ws, deadline)
        if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR):
            raise AssertionError(f"WebSocket closed while waiting for message: {msg.type}")
        if msg.type != WSMsgType.TEXT:
            continue
        payload = msg.json()
        if predicate(payload):
            return payload


async def recv_types(ws: web.WebSocketResponse, count: int, *, timeout: float = 2.0) -> list[dict]:
    """Collect the next ``count`` JSON frames."""

    frames = []
    for _ in range(count):
        frames.append(await recv_json_until(ws, timeout=timeout, predicate=lambda _: True))
    return frames


async def assert_no_app_messages(ws: web.WebSocketResponse, *, timeout: float) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        try:
            msg = await _receive_with_deadline(ws, deadline)
        except asyncio.TimeoutError:
            return
        if msg.type == WSMsgType.TEXT:
            raise AssertionError(f"Unexpected websocket message: {msg.data}")
        if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR):
            return
