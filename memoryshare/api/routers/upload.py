import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from memoryshare.api import deps
from memoryshare.api.responses import is_truthy, respond
from memoryshare.core import rbac
from memoryshare.core.config import Settings
from memoryshare.core.errors import InvalidField, InvalidRequest, MissingField, TooLarge
from memoryshare.core.gate import not_found
from memoryshare.core.logging import INPUT
from memoryshare.db import models
from memoryshare.services.audit import log_event
from memoryshare.services.file_store import FileStore
from memoryshare.utils.checks import is_safe_segment
from memoryshare.utils.inputs import parse_date, process_input_list
from memoryshare.web import templates

input_logger = logging.getLogger(INPUT)

router = APIRouter()


def _memory_date(value: str | None):
    try:
        return parse_date(value)
    except ValueError:
        input_logger.info("Rejected memory date %r", value)
        raise InvalidField("date")


def _required_id(file_id: str | None) -> str:
    if not file_id:
        raise MissingField("fileUUID")
    return file_id


@router.post("/upload/temp")
async def upload_temp(
    request: Request,
    upload: UploadFile | None = File(default=None, alias="file-input"),
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    rbac.authorize_upload(user.type)
    if upload is None or not upload.filename:
        input_logger.info("Upload from %s carried no file part", user.username)
        raise InvalidRequest("no file part")

    # one byte past the cap is enough to detect an oversize body
    data = await upload.read(settings.max_upload_bytes + 1)
    await upload.close()
    if len(data) > settings.max_upload_bytes:
        input_logger.info("Upload %s from %s exceeds %d bytes", upload.filename, user.username, settings.max_upload_bytes)
        raise TooLarge()

    staged = await file_store.stage_upload(upload.filename, data, user.username)
    log_event(user.username, "FILE_STAGED", file_id=staged.id, request=request, metadata={"size": staged.size})
    return templates.TemplateResponse(request, "upload_form.html", {"uploaded_file": staged})


@router.post("/upload/temp_delete")
async def upload_temp_delete(
    request: Request,
    file_id: str | None = Form(default=None, alias="fileUUID"),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    file_id = _required_id(file_id)
    await file_store.delete_staged(file_id, user.username)
    log_event(user.username, "FILE_STAGED_REMOVED", file_id=file_id, request=request)
    return respond("success")


@router.post("/upload/publish")
async def upload_publish(
    request: Request,
    file_id: str | None = Form(default=None, alias="fileUUID"),
    description: str = Form(default="", alias="description-input"),
    tags: str = Form(default="", alias="tags-input"),
    people: str = Form(default="", alias="people-input"),
    memory_date: str = Form(default="", alias="date-input"),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    file_id = _required_id(file_id)
    published = await file_store.publish(
        file_id,
        user.username,
        description=description,
        tags=process_input_list(tags),
        people=process_input_list(people),
        memory_date=_memory_date(memory_date),
    )
    log_event(user.username, "FILE_PUBLISHED", file_id=published.id, request=request)
    return respond("success")


@router.post("/upload/edit")
async def upload_edit(
    request: Request,
    file_id: str | None = Form(default=None, alias="fileUUID"),
    description: str | None = Form(default=None, alias="description-input"),
    tags: str | None = Form(default=None, alias="tags-input"),
    people: str | None = Form(default=None, alias="people-input"),
    memory_date: str | None = Form(default=None, alias="date-input"),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    file_id = _required_id(file_id)
    edited = await file_store.edit(
        file_id,
        user.username,
        user.type,
        description=description,
        tags=None if tags is None else process_input_list(tags),
        people=None if people is None else process_input_list(people),
        memory_date=_memory_date(memory_date) if memory_date else None,
    )
    log_event(user.username, "FILE_EDITED", file_id=edited.id, request=request)
    return respond("success")


@router.post("/upload/delete")
async def upload_delete(
    request: Request,
    file_id: str | None = Form(default=None, alias="fileUUID"),
    hard: str | None = Form(default=None),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    file_id = _required_id(file_id)
    hard_delete = is_truthy(hard)
    deleted = await file_store.delete(file_id, user.username, user.type, hard=hard_delete)
    log_event(user.username, "FILE_HARD_DELETED" if hard_delete else "FILE_DELETED", file_id=deleted.id, request=request)
    return respond("success")


@router.get("/temp_uploaded/{user_id}/{file_name}")
async def temp_uploaded(
    user_id: str,
    file_name: str,
    file_store: FileStore = Depends(deps.get_file_store),
):
    if not (is_safe_segment(user_id) and is_safe_segment(file_name)):
        return not_found()
    path = file_store.storage.staged_path(user_id, file_name)
    if not path.is_file():
        return not_found()
    return FileResponse(path)
