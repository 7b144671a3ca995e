"""
Rate limiting para los endpoints de confirmación y webhooks (slowapi + Redis)
"""
import hashlib
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """IP real del cliente considerando proxies/load balancers"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # La primera IP es la del cliente
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """IP + hash del token Bearer si existe"""
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token_hash = hashlib.md5(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


try:
    limiter = Limiter(
        key_func=get_user_identifier,
        storage_uri=settings.REDIS_URL,
        strategy="fixed-window",
        headers_enabled=False,  # compatibilidad con response_model de FastAPI
        in_memory_fallback_enabled=True,
    )
except Exception as e:
    logger.warning(f"Redis no disponible para rate limiting, usando memoria local: {e}")
    limiter = Limiter(
        key_func=get_user_identifier,
        strategy="fixed-window",
        headers_enabled=False,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Respuesta JSON 429 con Retry-After"""
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"

    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiadas solicitudes. Por favor espera antes de intentar nuevamente.",
            "retry_after_seconds": int(retry_after) if retry_after.isdigit() else 60,
        },
        headers={"Retry-After": str(retry_after)},
    )


RATE_LIMITS = {
    # Confirmación redundante desde el cliente
    "confirm": "20/minute",
    # Webhooks: los providers pueden reintentar en ráfaga
    "webhook": "100/minute",
    "default": "60/minute",
}
