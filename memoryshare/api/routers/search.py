import logging

from fastapi import APIRouter, Depends, Form, Request

from memoryshare.api import deps
from memoryshare.api.responses import is_truthy, respond, respond_json
from memoryshare.core.errors import FileNotFound, UserNotFound
from memoryshare.core.logging import INPUT
from memoryshare.db import models
from memoryshare.services.file_store import FileStore
from memoryshare.services.search import SearchQuery
from memoryshare.services.user_store import UserStore
from memoryshare.utils.inputs import process_input_list
from memoryshare.web import templates

input_logger = logging.getLogger(INPUT)

router = APIRouter()

HTML_FORMATS = {
    "html_tiled": "files_list_tiled.html",
    "html_detailed": "files_list_detailed.html",
}


@router.get("/search")
async def search(
    request: Request,
    desc: str | None = None,
    tags: str | None = None,
    people: str | None = None,
    min_date: str | None = None,
    max_date: str | None = None,
    file_types: str | None = None,
    page: str | None = None,
    results_per_page: str | None = None,
    format: str = "json",
    pretty: str | None = None,
    _: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    query = SearchQuery.from_params(
        desc=desc,
        tags=tags,
        people=people,
        min_date=min_date,
        max_date=max_date,
        file_types=file_types,
        page=page,
        results_per_page=results_per_page,
    )
    result = await file_store.search(query)

    template = HTML_FORMATS.get(format)
    if template is not None:
        if not result.files:
            template = "no_match.html"
        return templates.TemplateResponse(request, template, {"files": result.files})
    return respond_json(result.to_json(pretty=is_truthy(pretty)))


@router.get("/data")
async def aggregate(
    fetch: str | None = None,
    _: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    results = await file_store.aggregate(process_input_list(fetch))
    return respond_json(results)


@router.post("/data")
async def fetch_item(
    request: Request,
    target: str | None = Form(default=None, alias="UUID"),
    item_type: str | None = Form(default=None, alias="type"),
    format: str = Form(default="json"),
    session_user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
    users: UserStore = Depends(deps.get_user_store),
):
    if not target:
        return respond("no_UUID_provided")
    pretty = format == "json_pretty"

    if item_type == "file":
        if target == "random":
            picked = await file_store.random_pick(1)
            if not picked:
                return respond("no_UUID_match")
            target = picked[0].id
        try:
            file = await file_store.get_file(target)
        except FileNotFound:
            input_logger.info("No published file %s", target)
            return respond("no_UUID_match")

        if format == "html":
            uploader = users.get_by_username(file.uploader)
            context = {
                "file": file,
                "uploader": uploader,
                "is_favourite": file.id in session_user.favourites,
            }
            return templates.TemplateResponse(request, "file_content_overlay.html", context)
        return respond_json(file.to_json_dict(), pretty=pretty)

    if item_type == "user":
        try:
            user = users.get_by_username(target)
        except UserNotFound:
            return respond("no_UUID_match")
        if format == "html":
            return respond("html_not_supported")
        return respond_json(user.to_public_dict(), pretty=pretty)

    return respond("no_type_provided")
