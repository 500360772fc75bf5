"""Run (invoke), streaming, and health routes."""

import dataclasses
import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..app import identity_from_headers, require_app, verify_api_key
from ..models import RunRequest, RunResponse

router = APIRouter()

# Run-level error type -> HTTP status for invoke mode
_ERROR_STATUS = {
    "ThreadNotFound": 404,
    "MaxIterationsExceeded": 422,
    "ModelCallFailed": 502,
}


def _json_default(obj):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    return str(obj)


@router.post("/run", response_model=RunResponse, dependencies=[Depends(verify_api_key)])
async def run(req: RunRequest, request: Request):
    identity = identity_from_headers(request)
    app = require_app()
    result = await app.run(
        req.conversation_id,
        req.message,
        identity,
        history=req.history,
        system_prompt=req.system_prompt,
    )
    body = RunResponse(
        conversation_id=req.conversation_id,
        response=result.response,
        state=result.state,
        turns=result.turns,
        tool_calls=[dataclasses.asdict(r) for r in result.tool_calls],
        token_usage=result.token_usage.to_dict(),
        duration_ms=result.duration_ms,
        root_node_id=result.root_node_id,
        error=result.error,
    )
    if result.error is not None:
        status = _ERROR_STATUS.get(result.error.get("error_type"), 500)
        return JSONResponse(status_code=status, content=body.model_dump())
    return body


@router.post("/stream", dependencies=[Depends(verify_api_key)])
async def stream(req: RunRequest, request: Request):
    identity = identity_from_headers(request)
    app = require_app()

    async def event_generator():
        async for event in app.stream(
            req.conversation_id,
            req.message,
            identity,
            history=req.history,
            system_prompt=req.system_prompt,
        ):
            data = json.dumps(event.to_dict(), ensure_ascii=False, default=_json_default)
            yield f"data: {data}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
    )


@router.get("/health")
async def health():
    return {"status": "ok"}
