import logging
from typing import Any

from fastapi import Request

from memoryshare.core.logging import AUDIT

logger = logging.getLogger(AUDIT)


def log_event(
    actor: str | None,
    action: str,
    file_id: str | None = None,
    request: Request | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    ip = request.client.host if request and request.client else None
    user_agent = request.headers.get("user-agent") if request else None
    logger.info(
        "%s actor=%s file=%s ip=%s agent=%s %s",
        action,
        actor or "-",
        file_id or "-",
        ip or "-",
        user_agent or "-",
        metadata or {},
    )
