"""WebSocket transport for the install channel.

Frames are JSON objects:
    client -> server  {"type": "message", "name": ..., "payload": ...}
                      {"type": "request", "name": ..., "payload": ..., "id": ...}
    server -> client  {"type": "event", "name": ..., "payload": ...}
                      {"type": "response", "name": ..., "id": ..., "payload": ...}
                      {"type": "response", "name": ..., "id": ..., "error": {"key": ..., "message": ...}}
"""

import asyncio
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from comfysetup.exceptions import AppBaseError
from comfysetup.logger import get_logger
from comfysetup.services.installation.channel import InstallChannel

logger = get_logger(__name__)


def create_installation_router(channel: InstallChannel) -> APIRouter:
    router = APIRouter(prefix="/api/ws", tags=["WebSockets"])

    @router.websocket("/installation")
    async def installation_websocket(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Installation WebSocket connected")

        send_lock = asyncio.Lock()
        pending: set[asyncio.Task[None]] = set()

        async def send_frame(frame: dict[str, Any]) -> None:
            async with send_lock:
                await websocket.send_json(frame)

        async def forward_event(name: str, payload: Any) -> None:  # noqa: ANN401
            await send_frame({"type": "event", "name": name, "payload": payload})

        async def answer(name: str, request_id: Any, payload: Any) -> None:  # noqa: ANN401
            frame: dict[str, Any] = {"type": "response", "name": name, "id": request_id}
            try:
                frame["payload"] = await channel.request(name, payload)
            except AppBaseError as e:
                logger.warning(f"Request {name} failed: {e}")
                frame["error"] = {"key": e.error_key, "message": str(e)}
            try:
                await send_frame(frame)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Dropped response to {name}: {e}")

        unsubscribe = channel.subscribe(forward_event)
        try:
            while True:
                frame = await websocket.receive_json()
                logger.debug(f"Received WebSocket frame: {frame}")

                frame_type = frame.get("type")
                name = frame.get("name")
                payload = frame.get("payload")

                if frame_type == "message" and name:
                    channel.deliver_message(name, payload)
                elif frame_type == "request" and name:
                    # Requests may run for minutes; keep reading so abort can arrive
                    task = asyncio.create_task(answer(name, frame.get("id"), payload))
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                else:
                    logger.warning(f"Ignoring malformed frame: {frame}")
        except WebSocketDisconnect:
            logger.info("Installation WebSocket disconnected")
        finally:
            unsubscribe()
            for task in pending:
                task.cancel()

    return router
