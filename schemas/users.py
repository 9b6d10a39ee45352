from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    pic: Optional[str] = None

class LoginRequest(BaseModel):
    email: str
    password: str

class UserOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    email: str
    pic: str
    isAdmin: bool = False

class AuthResponse(UserOut):
    token: str
