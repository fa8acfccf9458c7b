"""HTTP and WebSocket routers."""

from comfysetup.routers.installation_ws import create_installation_router

__all__ = ["create_installation_router"]
