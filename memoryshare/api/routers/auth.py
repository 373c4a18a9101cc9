import logging

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from memoryshare.api import deps
from memoryshare.api.responses import respond
from memoryshare.core.config import Settings
from memoryshare.core.errors import MemoryShareError
from memoryshare.services.audit import log_event
from memoryshare.services.user_store import UserStore
from memoryshare.web import page_context, templates

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/login")
async def login_form(request: Request, settings: Settings = Depends(deps.get_settings)):
    return templates.TemplateResponse(
        request, "login.html", page_context("Login", settings.brand_name)
    )


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
    users: UserStore = Depends(deps.get_user_store),
):
    response = respond("success")
    try:
        # bcrypt is slow on purpose; keep it off the event loop
        success = await run_in_threadpool(users.login, email, password, response)
    except MemoryShareError:
        logger.error("Login failed for %s", email, exc_info=True)
        return respond("error", status.HTTP_500_INTERNAL_SERVER_ERROR)
    if not success:
        log_event(None, "LOGIN_REJECTED", request=request, metadata={"email": email})
        return respond("unauthorised", status.HTTP_401_UNAUTHORIZED)
    log_event(email, "LOGIN", request=request)
    return response


@router.get("/logout")
async def logout(request: Request, users: UserStore = Depends(deps.get_user_store)):
    response = RedirectResponse("/login", status_code=status.HTTP_302_FOUND)
    users.logout(response)
    log_event(None, "LOGOUT", request=request)
    return response


@router.get("/reset")
async def reset_form(request: Request, settings: Settings = Depends(deps.get_settings)):
    return templates.TemplateResponse(
        request, "reset_password.html", page_context("Reset Password", settings.brand_name)
    )


@router.post("/reset/{reset_type}")
async def reset(reset_type: str):
    # needs the mailer, which this service does not ship
    logger.info("Password reset of type %s requested", reset_type)
    return respond("not_implemented", status.HTTP_501_NOT_IMPLEMENTED)
