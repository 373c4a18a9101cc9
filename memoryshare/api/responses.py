import json
import logging
from typing import Any

from fastapi import status
from fastapi.responses import PlainTextResponse, Response

from memoryshare.core.logging import OUTPUT

logger = logging.getLogger(OUTPUT)


def respond(body: str, status_code: int = status.HTTP_200_OK) -> PlainTextResponse:
    logger.info(body)
    return PlainTextResponse(body, status_code=status_code)


def respond_json(payload: Any, pretty: bool = False) -> Response:
    if isinstance(payload, str):
        body = payload
    else:
        body = json.dumps(payload, indent="\t" if pretty else None)
    logger.debug(body)
    return Response(body, media_type="application/json")


def is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "t", "true", "yes", "on")
