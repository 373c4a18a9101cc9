import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.concurrency import run_in_threadpool

from memoryshare.api import deps
from memoryshare.api.responses import is_truthy, respond
from memoryshare.core import rbac
from memoryshare.core.errors import Forbidden, InvalidField, MissingField
from memoryshare.core.logging import INPUT
from memoryshare.db import models
from memoryshare.services.audit import log_event
from memoryshare.services.file_store import FileStore
from memoryshare.services.user_store import UserStore

input_logger = logging.getLogger(INPUT)

router = APIRouter()

OPERATIONS = ("favourite", "add", "confirm", "block", "unblock")


def _account_type(value: str | None, creator: models.User) -> models.AccountType:
    if not value:
        return models.AccountType.STANDARD
    try:
        account_type = models.AccountType(value.strip().upper())
    except ValueError:
        raise InvalidField("type")
    # only a SuperAdmin hands out admin rights
    if rbac.is_admin(account_type) and creator.type != models.AccountType.SUPER_ADMIN:
        raise Forbidden()
    return account_type


@router.post("/user")
async def manage_user(
    request: Request,
    operation: str | None = Form(default=None),
    file_id: str | None = Form(default=None, alias="fileUUID"),
    state: str | None = Form(default=None),
    username: str | None = Form(default=None),
    forename: str = Form(default=""),
    surname: str = Form(default=""),
    email: str = Form(default=""),
    password: str = Form(default=""),
    account_type: str | None = Form(default=None, alias="type"),
    session_user: models.User = Depends(deps.get_current_user),
    users: UserStore = Depends(deps.get_user_store),
    file_store: FileStore = Depends(deps.get_file_store),
):
    if operation not in OPERATIONS:
        input_logger.info("Unknown user operation %r from %s", operation, session_user.username)
        raise InvalidField("operation")

    if operation == "favourite":
        if not file_id:
            raise MissingField("fileUUID")
        added = is_truthy(state)
        if added:
            # only published files can be favourited
            await file_store.get_file(file_id)
        known_ids = await file_store.file_ids()
        await run_in_threadpool(users.set_favourite, session_user.username, file_id, added, known_ids)
        log_event(session_user.username, "FAVOURITE_ADDED" if added else "FAVOURITE_REMOVED", file_id=file_id, request=request)
        return respond("favourite_successfully_added" if added else "favourite_successfully_removed")

    rbac.authorize_admin(session_user.type)

    if operation == "add":
        new_type = _account_type(account_type, session_user)
        created = await run_in_threadpool(
            users.add_user,
            forename,
            surname,
            email,
            password,
            new_type,
            models.AccountState.ADMIN_CONFIRMED,
        )
        log_event(session_user.username, "USER_ADDED", request=request, metadata={"username": created.username})
        return respond("success")

    if not username:
        raise MissingField("username")
    if operation == "confirm":
        changed = await run_in_threadpool(users.confirm_by_admin, username)
    elif operation == "block":
        if username == session_user.username:
            raise Forbidden("cannot block yourself")
        changed = await run_in_threadpool(users.block, username)
    else:
        changed = await run_in_threadpool(users.unblock, username)
    log_event(
        session_user.username,
        f"USER_{operation.upper()}",
        request=request,
        metadata={"username": changed.username, "state": changed.state.value},
    )
    return respond("success")
