import json
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError

from auth import current_user
from backend import RedisBackend, get_redis_backend
from logging_config import get_logger
from schemas.chats import AccessChatRequest, ChatOut, CreateGroupRequest, GroupMemberRequest, RenameGroupRequest

logger = get_logger(__name__)

chats_router = APIRouter(prefix="/api/chat", tags=["chats"])


def _parse_group_users(users) -> List[str]:
    if isinstance(users, str):
        try:
            users = json.loads(users)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="users must be a list of user ids")
    if not isinstance(users, list) or not all(isinstance(u, str) for u in users):
        raise HTTPException(status_code=400, detail="users must be a list of user ids")
    return users


@chats_router.post("", response_model=ChatOut)
async def access_chat(
    body: AccessChatRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    """Return the one-on-one chat between the caller and ``userId``, creating it if needed."""
    if not body.userId:
        logger.warning("Access chat failed: userId param not sent with request")
        raise HTTPException(status_code=400, detail="UserId param not sent with request")
    if backend.get_user(body.userId) is None:
        raise HTTPException(status_code=404, detail="User not found")

    chat = backend.find_direct_chat(user["_id"], body.userId)
    if chat is None:
        try:
            chat = backend.create_chat("sender", [user["_id"], body.userId])
        except RedisError as e:
            logger.error(f"Error creating chat: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to create chat")
    return backend.populate_chat(chat)


@chats_router.get("", response_model=List[ChatOut])
async def fetch_chats(user: dict = Depends(current_user), backend: RedisBackend = Depends(get_redis_backend)):
    return [backend.populate_chat(chat) for chat in backend.get_chats_for_user(user["_id"])]


@chats_router.post("/group", response_model=ChatOut)
async def create_group_chat(
    body: CreateGroupRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    if not body.name or body.users is None:
        raise HTTPException(status_code=400, detail="Please Fill all the fields")

    members = [u for u in _parse_group_users(body.users) if u != user["_id"]]
    if len(set(members)) < 2:
        raise HTTPException(status_code=400, detail="More than 2 users are required to form a group chat")
    missing = [u for u in members if backend.get_user(u) is None]
    if missing:
        raise HTTPException(status_code=404, detail=f"Unknown users: {', '.join(missing)}")

    try:
        chat = backend.create_chat(body.name, members + [user["_id"]], is_group_chat=True, group_admin=user["_id"])
    except RedisError as e:
        logger.error(f"Error creating group chat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create group chat")
    return backend.populate_chat(chat)


@chats_router.put("/rename", response_model=ChatOut)
async def rename_group(
    body: RenameGroupRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    chat = backend.update_chat(body.chatId, chatName=body.chatName)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat Not Found")
    logger.info(f"Chat {body.chatId} renamed by {user['_id']}")
    return backend.populate_chat(chat)


@chats_router.put("/groupadd", response_model=ChatOut)
async def add_to_group(
    body: GroupMemberRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    if backend.get_user(body.userId) is None:
        raise HTTPException(status_code=404, detail="User not found")
    chat = backend.add_user_to_chat(body.chatId, body.userId)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat Not Found")
    return backend.populate_chat(chat)


@chats_router.put("/groupremove", response_model=ChatOut)
async def remove_from_group(
    body: GroupMemberRequest,
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    chat = backend.remove_user_from_chat(body.chatId, body.userId)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat Not Found")
    return backend.populate_chat(chat)
