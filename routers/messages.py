from typing import List

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError

from auth import current_user
from backend import RedisBackend, get_redis_backend
from logging_config import get_logger
from schemas.messages import MessageOut, SendMessageRequest

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/api/message", tags=["messages"])


def _chat_for_member(backend: RedisBackend, chat_id: str, user_id: str) -> dict:
    chat = backend.get_chat(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat Not Found")
    if user_id not in chat["users"]:
        raise HTTPException(status_code=403, detail="Not a member of this chat")
    return chat


@messages_router.get("/{chat_id}", response_model=List[MessageOut])
async def all_messages(chat_id: str, user: dict = Depends(current_user), backend: RedisBackend = Depends(get_redis_backend)):
    _chat_for_member(backend, chat_id, user["_id"])
    return [backend.populate_message(m) for m in backend.get_messages_for_chat(chat_id)]


@messages_router.post("", response_model=MessageOut)
async def send_message(
    body: SendMessageRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    """Persist a message. The returned document is what clients relay with ``new message``."""
    if not body.content or not body.content.strip() or not body.chatId:
        logger.warning("Invalid data passed into request")
        raise HTTPException(status_code=400, detail="Invalid data passed into request")
    _chat_for_member(backend, body.chatId, user["_id"])

    try:
        message = backend.create_message(user["_id"], body.content, body.chatId)
    except RedisError as e:
        logger.error(f"Error storing message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to send message")
    return backend.populate_message(message)
