from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from schemas.users import UserOut


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    chatId: Optional[str] = None

class MessageChatOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    chatName: str
    isGroupChat: bool
    users: List[UserOut]
    latestMessage: Optional[str] = None
    groupAdmin: Optional[str] = None
    createdAt: str
    updatedAt: str

class MessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    sender: UserOut
    content: str
    chat: Optional[MessageChatOut] = None
    readBy: List[str] = []
    createdAt: str
    updatedAt: str
