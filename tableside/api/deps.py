from typing import Annotated
import logging

from fastapi import Cookie, Depends, HTTPException, Request, status

from tableside.core.config import settings
from tableside.core.errors import StoreError
from tableside.core.security import decode_session_token
from tableside.schemas.auth import UserPublic
from tableside.services.admin import AdminService
from tableside.storage.local import LocalStore, local_store
from tableside.store.documents import DocumentStore, document_store


SESSION_COOKIE = "session_token"
logger = logging.getLogger("tableside.auth")


def get_store() -> DocumentStore:
    return document_store


def get_local_store() -> LocalStore:
    return local_store


StoreDep = Annotated[DocumentStore, Depends(get_store)]
LocalStoreDep = Annotated[LocalStore, Depends(get_local_store)]


def extract_token(request: Request, cookie_token: str | None) -> str | None:
    if cookie_token:
        return cookie_token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def get_current_user(
    request: Request,
    store: StoreDep,
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE),
) -> UserPublic:
    token = extract_token(request, session_token)
    if not token:
        logger.info(
            "Auth token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    payload = decode_session_token(token)
    if not payload:
        logger.info("Auth token invalid path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    phone_number = payload["sub"]
    try:
        user = await store.get_user(phone_number)
    except StoreError:
        logger.exception("get_current_user: store error phone=%s", phone_number)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable") from None

    if not user:
        logger.info("Auth user missing path=%s phone=%s", request.url.path, phone_number)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


CurrentUserDep = Annotated[UserPublic, Depends(get_current_user)]


async def get_admin_user(user: CurrentUserDep) -> UserPublic:
    allowed = settings.admin_phone_numbers
    if allowed and user.phone_number not in allowed:
        logger.warning("Admin access denied phone=%s", user.phone_number)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


AdminUserDep = Annotated[UserPublic, Depends(get_admin_user)]


def get_admin_service(store: StoreDep) -> AdminService:
    return AdminService(store)


AdminServiceDep = Annotated[AdminService, Depends(get_admin_service)]
