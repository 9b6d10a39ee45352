"""Wire event names and the inbound event union.

Payloads are validated here, at the transport boundary, so the relay only ever
sees one of the frozen variants below or a ``MalformedEventPayload``.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from logging_config import get_logger

logger = get_logger(__name__)

# Names are kept byte-for-byte for existing socket.io clients (including the spelling).
SETUP = "setup"
JOIN_CHAT = "join chat"
TYPING = "typing"
STOP_TYPING = "stop typing"
NEW_MESSAGE = "new message"
CONNECTED = "connected"
MESSAGE_RECEIVED = "message recieved"

INBOUND_EVENTS = (SETUP, JOIN_CHAT, TYPING, STOP_TYPING, NEW_MESSAGE)


class MalformedEventPayload(ValueError):
    def __init__(self, event: str, reason: str):
        super().__init__(f"{event}: {reason}")
        self.event = event
        self.reason = reason


class UserRef(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    id: str = Field(alias="_id", min_length=1)


class ChatMember(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    id: Optional[str] = Field(default=None, alias="_id")


class ChatRef(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    id: Optional[str] = Field(default=None, alias="_id")
    users: Optional[List[ChatMember]] = None


class MessagePayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    chat: ChatRef
    sender: UserRef


@dataclass(frozen=True)
class IdentitySetup:
    user_id: str


@dataclass(frozen=True)
class JoinRoom:
    room_id: str


@dataclass(frozen=True)
class TypingStart:
    room_id: str


@dataclass(frozen=True)
class TypingStop:
    room_id: str


@dataclass(frozen=True)
class MessageSend:
    payload: dict
    sender_id: str
    recipient_ids: Tuple[str, ...]


InboundEvent = Union[IdentitySetup, JoinRoom, TypingStart, TypingStop, MessageSend]


def _scalar_id(event: str, data: Any) -> str:
    # Clients send either the bare id or the whole document.
    if isinstance(data, dict):
        data = data.get("_id", data.get("id"))
    if isinstance(data, bool) or data is None:
        raise MalformedEventPayload(event, "missing identifier")
    if isinstance(data, (str, int)):
        return str(data)
    raise MalformedEventPayload(event, f"unsupported identifier type {type(data).__name__}")


def _parse_setup(data: Any) -> IdentitySetup:
    user_id = _scalar_id(SETUP, data).strip()
    if not user_id:
        raise MalformedEventPayload(SETUP, "empty user id")
    return IdentitySetup(user_id=user_id)


def _parse_message(data: Any) -> MessageSend:
    if not isinstance(data, dict):
        raise MalformedEventPayload(NEW_MESSAGE, "message must be an object")
    try:
        message = MessagePayload.model_validate(data)
    except ValidationError as e:
        raise MalformedEventPayload(NEW_MESSAGE, f"invalid message shape: {e.error_count()} error(s)") from e

    if not message.chat.users:
        raise MalformedEventPayload(NEW_MESSAGE, "chat.users not defined")

    recipients = []
    for user in message.chat.users:
        if not user.id:
            logger.debug("Skipping chat member without an id")
            continue
        if user.id != message.sender.id and user.id not in recipients:
            recipients.append(user.id)
    return MessageSend(payload=data, sender_id=message.sender.id, recipient_ids=tuple(recipients))


def parse_inbound(event: str, data: Any = None) -> InboundEvent:
    """Turn a named wire event into an ``InboundEvent``.

    Raises ``MalformedEventPayload`` for unknown names or payloads of the wrong shape.
    """
    if event == SETUP:
        return _parse_setup(data)
    if event == JOIN_CHAT:
        return JoinRoom(room_id=_scalar_id(event, data))
    if event == TYPING:
        return TypingStart(room_id=_scalar_id(event, data))
    if event == STOP_TYPING:
        return TypingStop(room_id=_scalar_id(event, data))
    if event == NEW_MESSAGE:
        return _parse_message(data)
    raise MalformedEventPayload(str(event), "unknown event")
