"""FastAPI application hosting the installer channel."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from comfysetup import __version__
from comfysetup.core.app_context import AppContext
from comfysetup.logger import get_logger
from comfysetup.routers import create_installation_router
from comfysetup.services.installation.channel import InstallChannel
from comfysetup.services.installation.orchestrator import InstallationOrchestrator

logger = get_logger(__name__)


def _log_installer_result(task: "asyncio.Task[object]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Installer stopped: {error}")


def create_app(context: AppContext, channel: InstallChannel | None = None, run_installer: bool = True) -> FastAPI:
    """Build the application.

    Args:
        context: Application context, disposed when the app shuts down
        channel: Channel shared with the orchestrator; a new one is created if omitted
        run_installer: Start ``ensure_installed`` in the background on startup
    """
    channel = channel or InstallChannel()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        installer_task: asyncio.Task[object] | None = None
        if run_installer:
            orchestrator = InstallationOrchestrator(context, channel)
            installer_task = asyncio.create_task(orchestrator.ensure_installed())
            installer_task.add_done_callback(_log_installer_result)
        app.state.installer_task = installer_task
        yield
        if installer_task is not None and not installer_task.done():
            installer_task.cancel()
            with suppress(asyncio.CancelledError):
                await installer_task
        context.dispose()

    app = FastAPI(title="comfysetup", version=__version__, lifespan=lifespan)
    app.state.channel = channel
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/hello")
    async def hello_get() -> dict[str, str]:
        """Return a simple hello message with version info."""
        return {"message": "Hello from comfysetup!", "version": __version__}

    app.include_router(create_installation_router(channel))
    return app
