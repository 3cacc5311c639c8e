"""POST /v1/responses - Responses API endpoint backed by the ChatBridge."""

import json
import logging
from typing import Any, AsyncIterator, Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...bridge import ChatBridge
from ...core.exceptions import InvalidRequestError
from ...responses.events import encode_sse_event
from ..input import parse_input

logger = logging.getLogger("chatbridge")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _invalid_request(message: str, code: str = "invalid_request", param: Optional[str] = None) -> HTTPException:
    error: dict[str, Any] = {
        "type": "invalid_request",
        "code": code,
        "message": message,
    }
    if param is not None:
        error["param"] = param
    return HTTPException(status_code=400, detail={"error": error})


def _conversation_id(payload: dict[str, Any]) -> Optional[str]:
    conversation = payload.get("conversation")
    if isinstance(conversation, dict):
        conversation = conversation.get("id")
    if conversation is None:
        return None
    if not isinstance(conversation, str) or not conversation:
        raise _invalid_request("conversation must be a non-empty string", param="conversation")
    return conversation


async def responses_endpoint(request: Request) -> Response:
    """POST /v1/responses

    Returns:
        JSONResponse for non-streaming, StreamingResponse for streaming
    """
    bridge: ChatBridge = request.app.state.bridge

    try:
        body = await request.body()
        payload = json.loads(body or b"{}")
    except ClientDisconnect:
        logger.warning("Client disconnected before request body was fully read")
        return Response(status_code=499)
    except json.JSONDecodeError as exc:
        logger.error("Invalid JSON in Responses request: %s", exc)
        raise _invalid_request("Invalid JSON payload", code="invalid_json") from exc

    if not isinstance(payload, dict):
        raise _invalid_request("Request body must be a JSON object", code="invalid_request_body")

    instructions = payload.get("instructions")
    try:
        turns = parse_input(
            payload.get("input"),
            instructions if isinstance(instructions, str) else None,
        )
    except InvalidRequestError as exc:
        raise _invalid_request(exc.message, code=exc.code, param=exc.param) from exc

    model = payload.get("model") if isinstance(payload.get("model"), str) else None
    conversation_id = _conversation_id(payload)
    stream = bool(payload.get("stream"))
    logger.info(
        "Responses request: %d turns, stream=%s, conversation=%s",
        len(turns),
        stream,
        conversation_id or "<new>",
    )

    if stream:
        async def event_stream() -> AsyncIterator[bytes]:
            async for event in bridge.stream_response(conversation_id, turns, model=model):
                yield encode_sse_event(event)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    response = await bridge.create_response(conversation_id, turns, model=model)
    status_code = 200 if response.get("status") == "completed" else 502
    return JSONResponse(response, status_code=status_code)
