"""API dependencies - authentication, authorization and throttling"""

from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from feedauth.config import settings
from feedauth.core.database import get_db
from feedauth.models.account import Account
from feedauth.services.auth_gate import AuthContext, auth_gate
from feedauth.services.auth_service import ClientInfo


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def client_info(request: Request, device_info: Optional[str] = None) -> ClientInfo:
    """Session metadata for the calling device"""
    return ClientInfo(
        device_info=device_info or "Unknown Device",
        ip_address=request.client.host if request.client else "Unknown IP",
        user_agent=request.headers.get("User-Agent") or "Unknown User Agent",
    )


def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Run the authentication gate for the current request

    Args:
        request: Incoming request; the context is stored on request.state
        authorization: Raw Authorization header
        db: Database session

    Returns:
        Authenticated context

    Raises:
        AuthenticationError: On any failed check
    """
    context = auth_gate.authenticate(db, authorization)
    request.state.auth = context
    return context


def get_optional_auth_context(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    return auth_gate.optional_authenticate(db, authorization)


def get_current_account(context: AuthContext = Depends(get_auth_context)) -> Account:
    return context.account


def require_fresh_auth(max_age_seconds: int) -> Callable[..., AuthContext]:
    """Dependency factory: the access token must have been issued within max_age_seconds."""

    def dependency(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        auth_gate.require_fresh_auth(context, max_age_seconds)
        return context

    return dependency


def require_ownership(param: str = "user_id") -> Callable[..., AuthContext]:
    """Dependency factory: the path or query parameter must name the caller's account."""

    def dependency(request: Request, context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        value = request.path_params.get(param) or request.query_params.get(param)
        auth_gate.require_ownership(context, value)
        return context

    return dependency


def require_role(*roles: str) -> Callable[..., AuthContext]:
    def dependency(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        auth_gate.require_role(context, *roles)
        return context

    return dependency


def login_rate_limit(
    limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
    scope: str = "login",
) -> Callable[..., None]:
    """Dependency factory: per-client sliding window, defaults to the login limits."""

    def dependency(request: Request) -> None:
        address = client_address(request)
        if limit is None and window_seconds is None and scope == "login":
            auth_gate.check_login_rate(address)
            return
        auth_gate.check_rate(
            f"{scope}:{address}",
            limit or settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
            window_seconds or settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
            "Too many requests.",
        )

    return dependency


get_current_admin = require_role("admin")
