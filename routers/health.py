from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from backend import RedisBackend, get_redis_backend
from logging_config import get_logger

logger = get_logger(__name__)

health_router = APIRouter(tags=["health"])


def check_redis(backend: RedisBackend) -> Dict[str, Any]:
    try:
        backend.ping()
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return {"ok": False, "error": str(e)}
    return {"ok": True}


@health_router.get("/health")
async def health(request: Request, backend: RedisBackend = Depends(get_redis_backend)):
    components = {"redis": check_redis(backend)}
    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        components["relay"] = {"ok": True, **relay.stats()}

    all_ok = all(c.get("ok", False) for c in components.values())
    return JSONResponse(
        {"status": "ok" if all_ok else "degraded", "components": components},
        status_code=200 if all_ok else 503,
    )
