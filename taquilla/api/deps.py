from dataclasses import dataclass
from functools import lru_cache

import redis
from fastapi import Depends, HTTPException, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from taquilla.core.config import settings
from taquilla.core.errors import RateLimited
from taquilla.core.security import decode_token
from taquilla.services.mercadopago_client import build_gateway
from taquilla.services.rate_limiter import SlidingWindowRateLimiter

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str = "customer"


def get_current_user(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> CurrentUser:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id or payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token")
    return CurrentUser(id=str(user_id), role=str(payload.get("role") or "customer"))


def require_roles(*roles: str):
    def _guard(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


@lru_cache
def _redis_client() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, socket_timeout=1, socket_connect_timeout=1)


def get_redis() -> redis.Redis:
    return _redis_client()


def get_payment_gateway():
    return build_gateway()


def client_identity(request: Request, user: CurrentUser | None = None) -> str:
    if user:
        return f"user:{user.id}"
    fwd = request.headers.get("x-forwarded-for", "")
    ip = fwd.split(",")[0].strip() if fwd else ""
    if not ip and request.client:
        ip = request.client.host
    return f"ip:{ip or 'unknown'}"


def checkout_rate_limit(
    request: Request,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    r: redis.Redis = Depends(get_redis),
) -> None:
    if not settings.RATE_LIMIT_ENABLED:
        return
    limiter = SlidingWindowRateLimiter(r, settings.CHECKOUT_RATE_LIMIT, settings.CHECKOUT_RATE_WINDOW_SECONDS)
    result = limiter.hit(client_identity(request, user))
    if not result.allowed:
        raise RateLimited(remaining=result.remaining, reset_at=result.reset_at)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(result.reset_at)
