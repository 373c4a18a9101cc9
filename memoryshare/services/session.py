import logging
from pathlib import Path

from fastapi import Request, Response

from memoryshare.core.errors import NoSession
from memoryshare.core.security import create_session_token, decode_session_token, generate_session_key
from memoryshare.services.codec import CatalogCodec

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "memory-share"


class SessionAuthority:
    """Signed cookie sessions carrying ``authenticated`` and ``email``.

    The signing key lives in ``config/session_key.dat`` so sessions survive
    restarts; replacing it (``rotate``) invalidates every outstanding cookie.
    """

    def __init__(
        self,
        key: bytes,
        max_age_seconds: int,
        key_path: Path | None = None,
        codec: CatalogCodec | None = None,
        secure: bool = False,
    ):
        self._key = key
        self.max_age_seconds = max_age_seconds
        self.key_path = key_path
        self.codec = codec or CatalogCodec()
        self.secure = secure

    @classmethod
    def load_or_create(
        cls, key_path: Path, codec: CatalogCodec, max_age_seconds: int, secure: bool = False
    ) -> "SessionAuthority":
        if key_path.exists():
            key = codec.decode_key(codec.read(key_path))
            logger.info("Loaded session key from %s", key_path)
        else:
            key = generate_session_key()
            codec.write(key_path, codec.encode_key(key))
            logger.info("Generated new session key at %s", key_path)
        return cls(key, max_age_seconds, key_path=key_path, codec=codec, secure=secure)

    def rotate(self) -> None:
        key = generate_session_key()
        if self.key_path is not None:
            self.codec.write(self.key_path, self.codec.encode_key(key))
        self._key = key
        logger.warning("Session key rotated; all sessions are now invalid")

    def issue(self, response: Response, email: str) -> None:
        token = create_session_token({"authenticated": True, "email": email}, self._key, self.max_age_seconds)
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=token,
            max_age=self.max_age_seconds,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")

    def read(self, request: Request) -> dict:
        token = request.cookies.get(SESSION_COOKIE_NAME)
        if not token:
            return {}
        return decode_session_token(token, self._key) or {}

    def is_authenticated(self, request: Request) -> bool:
        return self.read(request).get("authenticated") is True

    def session_email(self, request: Request) -> str:
        values = self.read(request)
        email = values.get("email")
        if values.get("authenticated") is not True or not isinstance(email, str) or not email:
            raise NoSession()
        return email
