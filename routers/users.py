from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.exceptions import RedisError

from auth import current_user, hash_password, make_token, verify_password
from backend import RedisBackend, get_redis_backend
from constants import DEFAULT_PIC
from logging_config import get_logger
from schemas.users import AuthResponse, LoginRequest, RegisterRequest, UserOut

logger = get_logger(__name__)

users_router = APIRouter(prefix="/api/user", tags=["users"])


def _auth_response(user: dict) -> AuthResponse:
    return AuthResponse(**{k: v for k, v in user.items() if k != "password"}, token=make_token(user["_id"]))


@users_router.post("", response_model=AuthResponse, status_code=201)
async def register_user(body: RegisterRequest, backend: RedisBackend = Depends(get_redis_backend)):
    if not body.name or not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Please Enter all the Fields")

    logger.info(f"Registration request for {body.email}")
    try:
        user = backend.create_user(
            name=body.name.strip(),
            email=body.email.strip(),
            password_hash=hash_password(body.password),
            pic=body.pic or DEFAULT_PIC,
        )
    except RedisError as e:
        logger.error(f"Error creating user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create the user")

    if user is None:
        logger.warning(f"Registration failed: {body.email} already exists")
        raise HTTPException(status_code=400, detail="User already exists")
    return _auth_response(user)


@users_router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, backend: RedisBackend = Depends(get_redis_backend)):
    user = backend.get_user_by_email(body.email.strip())
    if not user or not verify_password(body.password, user["password"]):
        logger.warning(f"Login failed for {body.email}")
        raise HTTPException(status_code=401, detail="Invalid Email or Password")
    logger.info(f"User {user['_id']} logged in")
    return _auth_response(user)


@users_router.get("", response_model=List[UserOut])
async def all_users(
    search: Optional[str] = Query(None, description="Matches name or email, case-insensitive"),
    user: dict = Depends(current_user),
    backend: RedisBackend = Depends(get_redis_backend),
):
    return backend.search_users(search or "", exclude_id=user["_id"])
