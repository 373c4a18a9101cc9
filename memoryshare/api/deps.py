from fastapi import Depends, Request

from memoryshare.core.config import Settings
from memoryshare.db.models import User
from memoryshare.services.file_store import FileStore
from memoryshare.services.user_store import UserStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_file_store(request: Request) -> FileStore:
    return request.app.state.file_store


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_current_user(request: Request, users: UserStore = Depends(get_user_store)) -> User:
    return users.get_session_user(request)

