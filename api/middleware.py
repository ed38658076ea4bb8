"""Caller identity middleware using ContextVar.

The upstream identity provider authenticates the request and forwards the
caller as X-User-ID / X-User-Role headers. The identity is stored in a
ContextVar so routers and services can call get_current_caller() without
explicit parameter passing.
"""

import logging
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.errors import AuthenticationError
from core.identity import CallerIdentity, Role

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Task-local caller identity
# ---------------------------------------------------------------------------

_current_caller: ContextVar[CallerIdentity | None] = ContextVar("current_caller", default=None)


def get_current_caller() -> CallerIdentity:
    """Return the caller for the current request.

    Raises AuthenticationError when the request carried no identity::

        caller = get_current_caller()
        rentals = await service.history(caller.user_id)
    """
    caller = _current_caller.get()
    if caller is None:
        raise AuthenticationError("Caller identity required")
    return caller


def _parse_role(raw: str | None) -> Role:
    try:
        return Role((raw or Role.MEMBER.value).lower())
    except ValueError:
        logger.warning("unknown role %r, treating caller as member", raw)
        return Role.MEMBER


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class IdentityMiddleware(BaseHTTPMiddleware):
    """Extract the caller from identity headers.

    - X-User-ID: required for any caller-specific route
    - X-User-Role: "member" (default) or "admin"
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        user_id = (request.headers.get("X-User-ID") or "").strip()
        caller = None
        if user_id:
            caller = CallerIdentity(
                user_id=user_id,
                role=_parse_role(request.headers.get("X-User-Role")),
            )

        token = _current_caller.set(caller)
        try:
            response = await call_next(request)
            return response
        finally:
            _current_caller.reset(token)
