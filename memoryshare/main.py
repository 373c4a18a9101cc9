import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from memoryshare.api.routers import auth, search, ui, upload, users
from memoryshare.core.config import Settings, get_settings, write_missing_defaults
from memoryshare.core.errors import MemoryShareError
from memoryshare.core.gate import RequestGateMiddleware
from memoryshare.core.logging import OUTPUT, configure_logging
from memoryshare.services.codec import CatalogCodec
from memoryshare.services.file_store import FileStore
from memoryshare.services.file_type_policy import FileTypePolicy
from memoryshare.services.session import SessionAuthority
from memoryshare.services.storage import BlobStorage
from memoryshare.services.user_store import UserStore

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(OUTPUT)

configure_logging()


def build_services(app: FastAPI, settings: Settings) -> None:
    storage = BlobStorage(settings.root_path)
    storage.ensure_layout()
    write_missing_defaults(settings)

    codec = CatalogCodec()
    sessions = SessionAuthority.load_or_create(
        storage.session_key_file,
        codec,
        settings.session_max_age_seconds,
        secure=settings.session_cookie_secure,
    )
    user_store = UserStore(
        storage.user_catalog,
        codec,
        sessions=sessions,
        hash_rounds=settings.password_hash_rounds,
        allow_incomplete_login=settings.allow_incomplete_login,
    )
    user_store.deserialize()
    file_store = FileStore(
        storage,
        codec,
        FileTypePolicy.from_settings(settings),
        version=settings.version,
        max_upload_bytes=settings.max_upload_bytes,
    )

    app.state.storage = storage
    app.state.sessions = sessions
    app.state.user_store = user_store
    app.state.file_store = file_store


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if getattr(app.state, "file_store", None) is None:
        build_services(app, settings)
    file_store: FileStore = app.state.file_store
    user_store: UserStore = app.state.user_store

    app.state.loop = asyncio.get_running_loop()
    await file_store.start()
    logger.info("%s %s serving from %s", settings.brand_name, settings.version, settings.root_path)
    try:
        yield
    finally:
        known_ids = await file_store.file_ids()
        await file_store.stop()
        user_store.serialize(known_ids)
        logger.info("Shut down cleanly")


async def memoryshare_error_handler(request: Request, exc: MemoryShareError):
    if exc.internal:
        logger.critical("%s %s failed: %s", request.method, request.url.path, exc.detail)
    output_logger.info(exc.tag)
    return PlainTextResponse(exc.tag, status_code=exc.status_code)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.brand_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.file_store = None

    app.add_middleware(RequestGateMiddleware)
    app.add_exception_handler(MemoryShareError, memoryshare_error_handler)
    app.mount(
        "/static",
        StaticFiles(directory=str(settings.root_path / "static"), check_dir=False),
        name="static",
    )

    app.include_router(auth.router, tags=["auth"])
    app.include_router(ui.router, tags=["ui"])
    app.include_router(upload.router, tags=["upload"])
    app.include_router(search.router, tags=["search"])
    app.include_router(users.router, tags=["users"])

    return app


app = create_app()
