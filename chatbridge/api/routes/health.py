"""GET /health - liveness plus store, queue, sync and tool call stats."""

from fastapi import Request
from fastapi.responses import JSONResponse

from ...bridge import ChatBridge


async def health_endpoint(request: Request) -> JSONResponse:
    bridge: ChatBridge = request.app.state.bridge
    return JSONResponse({"status": "ok", **bridge.get_stats()})
