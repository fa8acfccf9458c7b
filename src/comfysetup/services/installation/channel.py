"""Event channel between the installer and its UI.

Three kinds of traffic:
    - events: fire-and-forget notifications sent to every subscriber
    - messages: one-shot inbound values awaited with ``wait_for``
    - requests: inbound calls answered by a registered handler
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from comfysetup.exceptions import ValidationError
from comfysetup.logger import get_logger
from comfysetup.utils.subprocess_executor import ProcessCallbacks

logger = get_logger(__name__)

EventSink = Callable[[str, Any], Awaitable[None]]
RequestHandler = Callable[[Any], Awaitable[Any]]


class InstallChannel:
    """In-process channel. Transports (e.g. WebSocket) attach as subscribers."""

    # Outbound events
    VALIDATION_UPDATE = "validation-update"
    LOG_MESSAGE = "log-message"
    LOAD_PAGE = "load-page"
    REPAIR_TASKS = "repair-tasks"
    INSTALL_STAGE_UPDATE = "install-stage-update"
    SHOW_INVALID_FILE = "show-invalid-file"

    # Inbound messages
    INSTALL_COMFYUI = "install-comfyui"

    def __init__(self) -> None:
        self._subscribers: list[EventSink] = []
        self._waiters: dict[str, asyncio.Future[Any]] = {}
        self._handlers: dict[str, tuple[RequestHandler, bool]] = {}

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        """Attach an event receiver. Returns a function that detaches it."""
        self._subscribers.append(sink)

        def unsubscribe() -> None:
            if sink in self._subscribers:
                self._subscribers.remove(sink)

        return unsubscribe

    async def send(self, event: str, payload: Any = None) -> None:  # noqa: ANN401
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True)
        for sink in list(self._subscribers):
            try:
                await sink(event, payload)
            except Exception as e:
                # Sink failures are isolated from the installer
                logger.warning(f"Event sink failed for {event}: {e}")

    def wait_for(self, name: str) -> "asyncio.Future[Any]":
        """Future fulfilled by the next inbound message called ``name``.

        Register before prompting the UI so a fast reply is not lost.
        """
        existing = self._waiters.get(name)
        if existing is not None and not existing.done():
            return existing
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters[name] = future
        return future

    def deliver_message(self, name: str, payload: Any = None) -> bool:  # noqa: ANN401
        """Fulfil the pending waiter for ``name``. Returns False if nobody was waiting."""
        future = self._waiters.pop(name, None)
        if future is None or future.done():
            logger.warning(f"Dropped message with no waiter: {name}")
            return False
        future.set_result(payload)
        return True

    def handle(self, name: str, handler: RequestHandler) -> None:
        self._handlers[name] = (handler, False)

    def handle_once(self, name: str, handler: RequestHandler) -> None:
        """Register a handler that is removed after its first call."""
        self._handlers[name] = (handler, True)

    def remove_handler(self, name: str) -> None:
        self._handlers.pop(name, None)

    def has_handler(self, name: str) -> bool:
        return name in self._handlers

    async def request(self, name: str, payload: Any = None) -> Any:  # noqa: ANN401
        """Invoke the handler for ``name`` and return its result.

        Raises:
            ValidationError: If no handler is registered
        """
        entry = self._handlers.get(name)
        if entry is None:
            raise ValidationError("channel.handler.unknown", name=name)

        handler, once = entry
        if once:
            self._handlers.pop(name, None)

        result = await handler(payload)
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json", by_alias=True)
        return result


def create_process_callbacks(channel: InstallChannel, log_stderr_as_info: bool = False) -> ProcessCallbacks:
    """Callbacks that log subprocess output and forward it to the UI log stream."""

    async def on_stdout(line: str) -> None:
        logger.info(line)
        await channel.send(InstallChannel.LOG_MESSAGE, line)

    if log_stderr_as_info:
        return ProcessCallbacks(on_stdout=on_stdout, on_stderr=on_stdout)

    async def on_stderr(line: str) -> None:
        logger.error(line)
        await channel.send(InstallChannel.LOG_MESSAGE, line)

    return ProcessCallbacks(on_stdout=on_stdout, on_stderr=on_stderr)
