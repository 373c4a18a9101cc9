import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from memoryshare.core.errors import MemoryShareError
from memoryshare.core.logging import INCOMING

logger = logging.getLogger(INCOMING)

NOT_FOUND_BODY = "404 page not found"
PUBLIC_PREFIXES = ("/reset",)
STATIC_PREFIX = "/static/"
CONTENT_PREFIX = "/static/content/"
STAGING_PREFIX = "/temp_uploaded/"
LOGIN_PATH = "/login"


def not_found() -> Response:
    return PlainTextResponse(NOT_FOUND_BODY, status_code=status.HTTP_404_NOT_FOUND)


def staging_owner(path: str) -> str:
    # /temp_uploaded/<username>/<file>
    segments = path[len(STAGING_PREFIX):].split("/", 1)
    return segments[0]


class RequestGateMiddleware(BaseHTTPMiddleware):
    """Authorisation checks applied before any route or static mount runs."""

    def __init__(self, app, public_prefixes: tuple[str, ...] = PUBLIC_PREFIXES):
        super().__init__(app)
        self.public_prefixes = public_prefixes

    async def dispatch(self, request: Request, call_next: Callable):
        path = request.url.path
        host = request.client.host if request.client else "-"
        logger.info("%s -> %s [%s]", host, request.url, request.method)

        # no directory listings anywhere
        if path != "/" and path.endswith("/"):
            return not_found()
        if path.startswith(self.public_prefixes):
            return await call_next(request)
        if path.startswith(STATIC_PREFIX) and not path.startswith(CONTENT_PREFIX):
            return await call_next(request)

        user_store = request.app.state.user_store
        if path.startswith(STAGING_PREFIX):
            try:
                session_user = user_store.get_session_user(request)
            except MemoryShareError:
                return not_found()
            if session_user.username != staging_owner(path):
                return not_found()

        authorised = user_store.authenticate(request)
        is_read = request.method in ("GET", "HEAD")

        if path == LOGIN_PATH:
            if not authorised:
                return await call_next(request)
            if is_read:
                return RedirectResponse("/", status_code=status.HTTP_302_FOUND)
            return PlainTextResponse("already authenticated")

        if not authorised:
            if is_read:
                return RedirectResponse(LOGIN_PATH, status_code=status.HTTP_302_FOUND)
            return PlainTextResponse("unauthorised", status_code=status.HTTP_401_UNAUTHORIZED)

        return await call_next(request)
