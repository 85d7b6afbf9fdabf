from __future__ import annotations

import logging
from typing import Any

from aiohttp import WSMsgType, web

from .config import Settings
from .connection import QueuedConnection
from .errors import StoreError
from .messaging import MessagingSession
from .protocol import ErrorNotice, FeedUpdate, normalize_identity
from .runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


@web.middleware
async def store_error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except StoreError:
        logger.exception("store failure handling %s %s", request.method, request.path)
        return web.json_response({"code": "store_unavailable", "message": "storage unavailable"}, status=503)


async def handle_health(_: web.Request) -> web.Response:
    return web.Response(text="ok")


def _unauthorized() -> web.Response:
    return web.json_response({"code": "unauthorized", "message": "invalid session"}, status=401)


def _invalid_request(message: str) -> web.Response:
    return web.json_response({"code": "invalid_request", "message": message}, status=400)


def _not_found(message: str) -> web.Response:
    return web.json_response({"code": "not_found", "message": message}, status=404)


def _authenticate_request(request: web.Request) -> str | None:
    runtime: Runtime = request.app["runtime"]
    user_id = runtime.validator.resolve_identity(request)
    if user_id is None or not runtime.social.user_exists(user_id):
        return None
    return user_id


def _target_user(request: web.Request) -> str | None:
    return normalize_identity(request.match_info.get("user_id"))


async def handle_me(request: web.Request) -> web.Response:
    runtime: Runtime = request.app["runtime"]
    user_id = _authenticate_request(request)
    if user_id is None:
        return web.json_response({"loggedIn": False})
    record = runtime.social.get_user(user_id)
    if record is None:
        return web.json_response({"loggedIn": False})
    return web.json_response(
        {
            "loggedIn": True,
            "user": {"id": user_id, "username": record.username, "dm_follow_only": bool(record.dm_follow_only)},
        }
    )


async def handle_dm_follow_only(request: web.Request) -> web.Response:
    runtime: Runtime = request.app["runtime"]
    user_id = _authenticate_request(request)
    if user_id is None:
        return _unauthorized()
    try:
        body = await request.json()
    except ValueError:
        return _invalid_request("malformed json")

    enabled = body.get("enabled") if isinstance(body, dict) else None
    if not isinstance(enabled, bool):
        return _invalid_request("enabled must be a boolean")
    try:
        runtime.social.set_privacy_preference(user_id, enabled)
    except KeyError:
        return _not_found("unknown user")
    return web.json_response({"ok": True})


async def handle_can_dm(request: web.Request) -> web.Response:
    runtime: Runtime = request.app["runtime"]
    user_id = _authenticate_request(request)
    if user_id is None:
        return _unauthorized()
    target = _target_user(request)
    if target is None:
        return _invalid_request("user id required")
    return web.json_response({"allowed": runtime.gate.can_message(user_id, target)})


async def _change_follow(request: web.Request, *, follow: bool) -> web.Response:
    runtime: Runtime = request.app["runtime"]
    user_id = _authenticate_request(request)
    if user_id is None:
        return _unauthorized()
    target = _target_user(request)
    if target is None:
        return _invalid_request("user id required")
    if not runtime.social.user_exists(target):
        return _not_found("unknown user")
    if follow:
        runtime.social.follow(user_id, target)
    else:
        runtime.social.unfollow(user_id, target)

    runtime.dispatcher.notify(user_id, FeedUpdate())
    return web.json_response({"ok": True})


async def handle_follow(request: web.Request) -> web.Response:
    return await _change_follow(request, follow=True)


async def handle_unfollow(request: web.Request) -> web.Response:
    return await _change_follow(request, follow=False)


async def handle_conversations(request: web.Request) -> web.Response:
    runtime: Runtime = request.app["runtime"]
    user_id = _authenticate_request(request)
    if user_id is None:
        return _unauthorized()
    convos = []
    for summary in runtime.messages.list_conversations(user_id):
        partner = runtime.social.get_user(summary.partner_id)
        convos.append(summary.to_api_dict(username=partner.username if partner else None))
    return web.json_response({"convos": convos})


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    runtime: Runtime = request.app["runtime"]
    settings: Settings = request.app["settings"]

    ws = web.WebSocketResponse(max_msg_size=settings.max_msg_size, heartbeat=settings.heartbeat)
    await ws.prepare(request)

    def drop_failed(connection: QueuedConnection) -> None:
        if connection.user_id is not None:
            runtime.registry.unregister(connection.user_id, connection)

    connection = QueuedConnection(ws, queue_size=settings.outbound_queue_size, on_write_failure=drop_failed)
    session = MessagingSession(runtime, connection)
    session.accept()
    connection.start()

    try:
        if not session.authenticate(request):
            return ws

        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                try:
                    payload: Any = msg.json()
                except ValueError:
                    connection.deliver(ErrorNotice(code="invalid_request", message="malformed json").to_frame())
                    continue
                session.handle(payload)
            elif msg.type == WSMsgType.ERROR:
                logger.warning("websocket error for %s: %s", session.user_id, ws.exception())
                break
            else:
                await ws.close(code=1003, message=b"unsupported frame type")
                break
    finally:
        session.close()
        await connection.drain_and_stop()

    return ws


def create_app(settings: Settings | None = None, *, runtime: Runtime | None = None) -> web.Application:
    settings = settings or Settings()
    runtime = runtime or build_runtime(settings)

    app = web.Application(middlewares=[store_error_middleware])
    app["settings"] = settings
    app["runtime"] = runtime
    app.router.add_get("/healthz", handle_health)
    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/api/me", handle_me)
    app.router.add_post("/api/settings/dm_follow_only", handle_dm_follow_only)
    app.router.add_get("/api/users/{user_id}/can_dm", handle_can_dm)
    app.router.add_post("/api/users/{user_id}/follow", handle_follow)
    app.router.add_post("/api/users/{user_id}/unfollow", handle_unfollow)
    app.router.add_get("/api/conversations", handle_conversations)

    async def close_connections(_: web.Application) -> None:
        for user_id in runtime.registry.identities():
            connection = runtime.registry.lookup(user_id)
            if connection is not None:
                connection.close(code=1001, reason="server shutdown")

    async def close_runtime(_: web.Application) -> None:
        runtime.close()

    app.on_shutdown.append(close_connections)
    app.on_cleanup.append(close_runtime)
    return app
