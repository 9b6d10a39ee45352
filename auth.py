from datetime import datetime, timedelta, timezone

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from backend import RedisBackend, get_redis_backend
from constants import JWT_EXPIRE_DAYS, JWT_SECRET
from logging_config import get_logger

logger = get_logger(__name__)

pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(raw: str) -> str:
    return pwd.hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    return pwd.verify(raw, hashed)


def make_token(sub: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": sub, "iat": int(now.timestamp()), "exp": int((now + timedelta(days=JWT_EXPIRE_DAYS)).timestamp())}
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def parse_token(token: str) -> str:
    data = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    return data["sub"]


def current_user(authorization: str = Header(None), backend: RedisBackend = Depends(get_redis_backend)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    token = authorization.split(" ", 1)[1].strip()
    try:
        user_id = parse_token(token)
    except (JWTError, KeyError):
        logger.warning("Rejected request with invalid token")
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    user = backend.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user
