"""
BizIntel API Dependencies

The dispatcher lives on app.state; bearer credentials are optional at the
HTTP layer because the dispatcher decides whether a call is authenticated.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dispatch.dispatcher import Dispatcher

security = HTTPBearer(auto_error=False)


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_call_meta(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Metadata for the call: the bearer token, when one was sent."""
    if credentials is None:
        return {}
    return {"authToken": credentials.credentials}


def get_caller_id(request: Request) -> str | None:
    return request.client.host if request.client else None
