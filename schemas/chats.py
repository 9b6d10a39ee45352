from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional, Union

from schemas.users import UserOut


class AccessChatRequest(BaseModel):
    userId: Optional[str] = None

class CreateGroupRequest(BaseModel):
    name: Optional[str] = None
    # Either a list of user ids or a JSON-encoded list, as sent by form-based clients
    users: Optional[Union[List[str], str]] = None

class RenameGroupRequest(BaseModel):
    chatId: str
    chatName: str

class GroupMemberRequest(BaseModel):
    chatId: str
    userId: str

class LatestMessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    sender: Optional[UserOut] = None
    content: str
    chat: Any = None
    createdAt: str
    updatedAt: str

class ChatOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    chatName: str
    isGroupChat: bool
    users: List[UserOut]
    latestMessage: Optional[LatestMessageOut] = None
    groupAdmin: Optional[UserOut] = None
    createdAt: str
    updatedAt: str
