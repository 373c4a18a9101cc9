from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from memoryshare.api import deps
from memoryshare.api.responses import respond_json
from memoryshare.core.config import Settings
from memoryshare.db import models
from memoryshare.services.file_store import FileStore
from memoryshare.services.search import SearchResult
from memoryshare.services.user_store import UserStore
from memoryshare.web import page_context, templates

router = APIRouter()


def _browser(request: Request, settings: Settings, user: models.User, file_id: str | None = None):
    context = page_context(
        "Memories",
        settings.brand_name,
        user,
        "search",
        file_id=file_id,
        media_classes=[m.value for m in models.MediaClass],
    )
    return templates.TemplateResponse(request, "search.html", context)


@router.get("/")
async def home(
    request: Request,
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
):
    return _browser(request, settings, user)


@router.get("/view")
async def view(
    request: Request,
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
):
    return _browser(request, settings, user)


@router.get("/memory/{file_id}")
async def memory(
    file_id: str,
    request: Request,
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
):
    # the page script opens the overlay for file_id
    return _browser(request, settings, user, file_id=file_id)


@router.get("/upload")
async def upload(
    request: Request,
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
    file_store: FileStore = Depends(deps.get_file_store),
):
    staged = await file_store.files_by_user(user.username, models.FileState.UPLOADED)
    context = page_context(
        "Upload",
        settings.brand_name,
        user,
        "upload",
        files=staged,
        max_file_upload_size=settings.max_upload_bytes,
    )
    return templates.TemplateResponse(request, "upload.html", context)


@router.get("/users")
async def users_list(
    request: Request,
    settings: Settings = Depends(deps.get_settings),
    user: models.User = Depends(deps.get_current_user),
    users: UserStore = Depends(deps.get_user_store),
):
    listed = await run_in_threadpool(users.list_users)
    context = page_context("Users", settings.brand_name, user, "users", users=listed)
    return templates.TemplateResponse(request, "users_list.html", context)


@router.get("/user/{username}")
async def user_profile(
    username: str,
    request: Request,
    format: str = "html",
    page: int = 0,
    results_per_page: int = 0,
    settings: Settings = Depends(deps.get_settings),
    session_user: models.User = Depends(deps.get_current_user),
    users: UserStore = Depends(deps.get_user_store),
    file_store: FileStore = Depends(deps.get_file_store),
):
    profile = users.get_by_username(username)
    favourites: SearchResult = await file_store.get_files(profile.favourites, page, results_per_page)

    if format == "json":
        payload = profile.to_public_dict()
        payload["favourite_files"] = [f.to_json_dict() for f in favourites.files]
        return respond_json(payload)

    focus = "user" if profile.username == session_user.username else "users"
    context = page_context("Profile", settings.brand_name, session_user, focus, user=profile, files=favourites.files)
    return templates.TemplateResponse(request, "user_content.html", context)
