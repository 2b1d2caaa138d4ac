"""Audit logging for back-office and account operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("tableside.audit")


class AuditAction(str, Enum):
    """Audit action types."""
    # Sessions
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    REGISTER = "register"

    # Gifts
    GIFT_CREATE = "gift_create"
    GIFT_DELETE = "gift_delete"

    # Menu administration
    PRODUCT_CREATE = "product_create"
    PRODUCT_UPDATE = "product_update"
    PRODUCT_DELETE = "product_delete"

    # Table service
    ORDER_CREATE = "order_create"
    TABLE_READY = "table_ready"
    TABLE_CLEAR = "table_clear"

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


_SENSITIVE_KEYS = ("token", "secret", "key", "authorization")


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: Phone number of the acting diner or admin
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        client_host = None
        if request.client:
            client_host = request.client.host
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in _SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_login_success(request: Request, phone_number: str) -> None:
    audit_log(AuditAction.LOGIN, request=request, user_id=phone_number)


def audit_login_failed(request: Request, phone_number: str, reason: str) -> None:
    audit_log(
        AuditAction.LOGIN_FAILED,
        request=request,
        details={"phone_number": phone_number, "reason": reason},
        success=False,
    )


def audit_logout(request: Request, phone_number: str | None) -> None:
    audit_log(AuditAction.LOGOUT, request=request, user_id=phone_number)


def audit_register(request: Request, phone_number: str, name: str) -> None:
    audit_log(
        AuditAction.REGISTER,
        request=request,
        user_id=phone_number,
        details={"name": name},
    )


def audit_gift_action(
    action: AuditAction,
    request: Request | None,
    phone_number: str,
    gift_id: str,
    details: dict[str, Any] | None = None,
) -> None:
    event_details: dict[str, Any] = {"gift_id": gift_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, user_id=phone_number, details=event_details)


def audit_product_action(
    action: AuditAction,
    request: Request | None,
    product_id: str,
    details: dict[str, Any] | None = None,
) -> None:
    event_details: dict[str, Any] = {"product_id": product_id}
    if details:
        event_details.update(details)
    audit_log(action, request=request, details=event_details)


def audit_table_action(
    action: AuditAction,
    request: Request | None,
    table_number: str,
    order_count: int,
) -> None:
    audit_log(
        action,
        request=request,
        details={"table_number": table_number, "order_count": order_count},
    )


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int) -> None:
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
