import json
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Iterable, List, Optional

import redis

from constants import REDIS_URL
from logging_config import get_logger
from redis_keys import (
    REDIS_CHAT_KEY,
    REDIS_CHAT_MESSAGES_KEY,
    REDIS_MESSAGE_KEY,
    REDIS_USER_CHATS_KEY,
    REDIS_USER_EMAIL_KEY,
    REDIS_USER_KEY,
    REDIS_USERS_KEY,
)

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _encode(document: dict) -> dict:
    return {k: json.dumps(v) for k, v in document.items()}


def _decode(raw: dict) -> dict:
    result = {}
    for k, v in raw.items():
        try:
            result[k] = json.loads(v)
        except (json.JSONDecodeError, TypeError):
            result[k] = v
    return result


def public_user(user: Optional[dict]) -> Optional[dict]:
    """User document without the password hash."""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k != "password"}


class RedisBackend:
    """Document store for users, chats and messages."""

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    def _get_document(self, key: str) -> Optional[dict]:
        raw = self.redis_client.hgetall(key)
        if not raw:
            return None
        return _decode(raw)

    def _save_document(self, key: str, document: dict):
        self.redis_client.hset(key, mapping=_encode(document))

    # Users

    def create_user(self, name: str, email: str, password_hash: str, pic: str) -> Optional[dict]:
        """Create a user, or return None when the email is already taken."""
        user_id = _new_id()
        email_key = REDIS_USER_EMAIL_KEY.format(email=email.lower())
        if not self.redis_client.set(email_key, user_id, nx=True):
            logger.debug(f"User with email {email} already exists")
            return None
        now = _now()
        user = {
            "_id": user_id,
            "name": name,
            "email": email,
            "password": password_hash,
            "pic": pic,
            "isAdmin": False,
            "createdAt": now,
            "updatedAt": now,
        }
        self._save_document(REDIS_USER_KEY.format(user_id=user_id), user)
        self.redis_client.sadd(REDIS_USERS_KEY, user_id)
        logger.info(f"Created user {user_id}")
        return user

    def get_user(self, user_id: str) -> Optional[dict]:
        return self._get_document(REDIS_USER_KEY.format(user_id=user_id))

    def get_user_by_email(self, email: str) -> Optional[dict]:
        user_id = self.redis_client.get(REDIS_USER_EMAIL_KEY.format(email=email.lower()))
        if not user_id:
            return None
        return self.get_user(user_id)

    def get_users(self, user_ids: Iterable[str]) -> List[dict]:
        users = []
        for user_id in user_ids:
            user = self.get_user(user_id)
            if user is not None:
                users.append(user)
        return users

    def search_users(self, keyword: str, exclude_id: Optional[str] = None) -> List[dict]:
        """Case-insensitive substring match on name or email."""
        keyword = (keyword or "").lower()
        matches = []
        for user_id in self.redis_client.smembers(REDIS_USERS_KEY):
            if user_id == exclude_id:
                continue
            user = self.get_user(user_id)
            if user is None:
                continue
            if not keyword or keyword in user["name"].lower() or keyword in user["email"].lower():
                matches.append(user)
        matches.sort(key=lambda u: u["name"].lower())
        logger.debug(f"User search '{keyword}' matched {len(matches)} users")
        return matches

    # Chats

    def create_chat(self, chat_name: str, users: List[str], is_group_chat: bool = False,
                    group_admin: Optional[str] = None) -> dict:
        chat_id = _new_id()
        now = _now()
        chat = {
            "_id": chat_id,
            "chatName": chat_name,
            "isGroupChat": is_group_chat,
            "users": list(dict.fromkeys(users)),
            "latestMessage": None,
            "groupAdmin": group_admin,
            "createdAt": now,
            "updatedAt": now,
        }
        self._save_document(REDIS_CHAT_KEY.format(chat_id=chat_id), chat)
        for user_id in chat["users"]:
            self.redis_client.sadd(REDIS_USER_CHATS_KEY.format(user_id=user_id), chat_id)
        logger.info(f"Created {'group' if is_group_chat else 'direct'} chat {chat_id} with {len(chat['users'])} users")
        return chat

    def get_chat(self, chat_id: str) -> Optional[dict]:
        return self._get_document(REDIS_CHAT_KEY.format(chat_id=chat_id))

    def update_chat(self, chat_id: str, **fields) -> Optional[dict]:
        chat = self.get_chat(chat_id)
        if chat is None:
            return None
        chat.update(fields)
        chat["updatedAt"] = _now()
        self._save_document(REDIS_CHAT_KEY.format(chat_id=chat_id), chat)
        return chat

    def add_user_to_chat(self, chat_id: str, user_id: str) -> Optional[dict]:
        chat = self.get_chat(chat_id)
        if chat is None:
            return None
        users = chat["users"]
        if user_id not in users:
            users.append(user_id)
        self.redis_client.sadd(REDIS_USER_CHATS_KEY.format(user_id=user_id), chat_id)
        return self.update_chat(chat_id, users=users)

    def remove_user_from_chat(self, chat_id: str, user_id: str) -> Optional[dict]:
        chat = self.get_chat(chat_id)
        if chat is None:
            return None
        users = [u for u in chat["users"] if u != user_id]
        self.redis_client.srem(REDIS_USER_CHATS_KEY.format(user_id=user_id), chat_id)
        return self.update_chat(chat_id, users=users)

    def find_direct_chat(self, user_a: str, user_b: str) -> Optional[dict]:
        shared = self.redis_client.sinter(
            REDIS_USER_CHATS_KEY.format(user_id=user_a),
            REDIS_USER_CHATS_KEY.format(user_id=user_b),
        )
        for chat_id in shared:
            chat = self.get_chat(chat_id)
            if chat and not chat["isGroupChat"] and set(chat["users"]) == {user_a, user_b}:
                return chat
        return None

    def get_chats_for_user(self, user_id: str) -> List[dict]:
        chats = []
        for chat_id in self.redis_client.smembers(REDIS_USER_CHATS_KEY.format(user_id=user_id)):
            chat = self.get_chat(chat_id)
            if chat is not None:
                chats.append(chat)
        chats.sort(key=lambda c: c["updatedAt"], reverse=True)
        return chats

    # Messages

    def create_message(self, sender_id: str, content: str, chat_id: str) -> dict:
        message_id = _new_id()
        now = _now()
        message = {
            "_id": message_id,
            "sender": sender_id,
            "content": content.strip(),
            "chat": chat_id,
            "readBy": [],
            "createdAt": now,
            "updatedAt": now,
        }
        self._save_document(REDIS_MESSAGE_KEY.format(message_id=message_id), message)
        self.redis_client.rpush(REDIS_CHAT_MESSAGES_KEY.format(chat_id=chat_id), message_id)
        self.update_chat(chat_id, latestMessage=message_id)
        logger.debug(f"Stored message {message_id} in chat {chat_id}")
        return message

    def get_message(self, message_id: str) -> Optional[dict]:
        return self._get_document(REDIS_MESSAGE_KEY.format(message_id=message_id))

    def get_messages_for_chat(self, chat_id: str) -> List[dict]:
        message_ids = self.redis_client.lrange(REDIS_CHAT_MESSAGES_KEY.format(chat_id=chat_id), 0, -1)
        messages = []
        for message_id in message_ids:
            message = self.get_message(message_id)
            if message is not None:
                messages.append(message)
        return messages

    # Population: replace stored ids with the documents they reference

    def populate_message(self, message: dict, with_chat: bool = True) -> dict:
        populated = dict(message)
        populated["sender"] = public_user(self.get_user(message["sender"]))
        if with_chat:
            chat = self.get_chat(message["chat"])
            if chat is not None:
                chat = dict(chat)
                chat["users"] = [public_user(u) for u in self.get_users(chat["users"])]
            populated["chat"] = chat
        return populated

    def populate_chat(self, chat: dict) -> dict:
        populated = dict(chat)
        populated["users"] = [public_user(u) for u in self.get_users(chat["users"])]
        if chat.get("groupAdmin"):
            populated["groupAdmin"] = public_user(self.get_user(chat["groupAdmin"]))
        if chat.get("latestMessage"):
            latest = self.get_message(chat["latestMessage"])
            populated["latestMessage"] = self.populate_message(latest, with_chat=False) if latest else None
        return populated


@lru_cache(maxsize=1)
def get_redis_backend() -> RedisBackend:
    client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    logger.info(f"Initializing RedisBackend for {REDIS_URL.split('@')[-1]}")
    return RedisBackend(client)
