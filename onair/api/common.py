import hmac
import os

from fastapi import HTTPException, Request

from onair.services.errors import (
    AuthorizationError,
    ChannelNotFoundError,
    DataAccessError,
    ScheduleValidationError,
)

ADMIN_TOKEN = (os.getenv("ONAIR_ADMIN_TOKEN", "") or "").strip()


def _bearer_token(request: Request) -> str:
    header = (request.headers.get("Authorization") or "").strip()
    if header[:7].lower() == "bearer ":
        return header[7:].strip()
    return ""


def check_admin(token: str, secret: str) -> None:
    if not secret:
        raise AuthorizationError("Admin token is not configured")
    if not token or not hmac.compare_digest(token.encode(), secret.encode()):
        raise AuthorizationError("Unauthorized")


def require_admin(request: Request) -> None:
    try:
        check_admin(_bearer_token(request), ADMIN_TOKEN)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc


def to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ScheduleValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ChannelNotFoundError):
        return HTTPException(status_code=404, detail="Channel not found")
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=401, detail="Unauthorized")
    if isinstance(exc, DataAccessError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")
