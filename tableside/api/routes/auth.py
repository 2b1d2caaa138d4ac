from typing import TypedDict
import logging

from fastapi import APIRouter, Cookie, HTTPException, Request, Response, status

from tableside.api.deps import SESSION_COOKIE, CurrentUserDep, LocalStoreDep, StoreDep, extract_token
from tableside.core.audit import audit_login_failed, audit_login_success, audit_logout, audit_register
from tableside.core.config import settings
from tableside.core.rate_limit import check_rate_limit
from tableside.core.security import create_session_token, decode_session_token
from tableside.schemas.auth import LoginRequest, PhoneCheckRequest, PhoneCheckResponse, SessionUser, UserPublic
from tableside.storage.local import CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, WISHLIST_KEY


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("tableside")


class CookieOptions(TypedDict, total=False):
    samesite: str
    secure: bool


def _cookie_options() -> CookieOptions:
    """Lax cookies over plain HTTP locally; cross-site HTTPS cookies everywhere else."""
    environment = (settings.environment or "local").lower()
    if environment == "local":
        return {"samesite": "lax", "secure": False}
    return {"samesite": "none", "secure": True}


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        max_age=settings.session_expire_minutes * 60,
        path="/",
        **_cookie_options(),
    )


@router.post("/check", response_model=PhoneCheckResponse)
async def check_phone(payload: PhoneCheckRequest, store: StoreDep, request: Request) -> PhoneCheckResponse:
    check_rate_limit(request, key_suffix="check")
    user = await store.get_user(payload.phone_number)
    return PhoneCheckResponse(exists=user is not None, name=user.name if user else None)


@router.post("/login", response_model=SessionUser)
async def login(
    payload: LoginRequest,
    response: Response,
    store: StoreDep,
    local: LocalStoreDep,
    request: Request,
) -> SessionUser:
    check_rate_limit(
        request,
        max_requests=settings.rate_limit_login_requests,
        window_seconds=60,
        key_suffix="login",
    )
    request_id = request.headers.get("X-Request-Id")
    logger.info("Auth login request id=%s phone=%s", request_id, payload.phone_number)

    user = await store.get_user(payload.phone_number)
    if user is None:
        if not payload.name:
            logger.info("Auth login needs name id=%s phone=%s", request_id, payload.phone_number)
            audit_login_failed(request, payload.phone_number, "name_required")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="name_required")
        user = await store.create_user(payload.phone_number, payload.name)
        audit_register(request, user.phone_number, user.name)
    else:
        await store.touch_login(user.phone_number)

    session_user = SessionUser(
        phone_number=user.phone_number,
        name=user.name,
        photo_url=user.photo_url,
        table_number=payload.table_number,
    )
    await local.set_json(user.phone_number, CURRENT_USER_KEY, session_user.model_dump(mode="json"))
    _set_session_cookie(response, create_session_token(user.phone_number))
    audit_login_success(request, user.phone_number)
    logger.info("Auth login success id=%s phone=%s", request_id, user.phone_number)
    return session_user


@router.get("/me", response_model=UserPublic)
async def get_me(current_user: CurrentUserDep) -> UserPublic:
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    local: LocalStoreDep,
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE),
) -> None:
    token = extract_token(request, session_token)
    payload = decode_session_token(token) if token else None
    phone_number = payload["sub"] if payload else None
    if phone_number:
        for key in (CURRENT_USER_KEY, LAST_ACTIVE_TAB_KEY, WISHLIST_KEY):
            await local.delete(phone_number, key)
    response.delete_cookie(SESSION_COOKIE, path="/", **_cookie_options())
    audit_logout(request, phone_number)
