"""Conversation thread routes."""

from fastapi import APIRouter, Depends, HTTPException

from ...errors import ThreadNotFound
from ..app import require_app, verify_api_key
from ..models import ThreadResponse

router = APIRouter(prefix="/conversations")


@router.get("/{conversation_id}/messages", response_model=ThreadResponse, dependencies=[Depends(verify_api_key)])
async def get_thread(conversation_id: str):
    app = require_app()
    try:
        messages = await app.load_thread(conversation_id)
    except ThreadNotFound as e:
        raise HTTPException(404, e.message)
    return ThreadResponse(
        conversation_id=conversation_id,
        messages=[m.to_dict() for m in messages],
    )


@router.delete("/{conversation_id}", dependencies=[Depends(verify_api_key)])
async def delete_thread(conversation_id: str):
    app = require_app()
    if not await app.delete_thread(conversation_id):
        raise HTTPException(404, f"Conversation thread '{conversation_id}' not found")
    return {"status": "ok", "conversation_id": conversation_id}
