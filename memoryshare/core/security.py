import datetime as dt
import secrets

import bcrypt
import jwt

ALGORITHM = "HS256"
SESSION_KEY_BYTES = 64


def get_password_hash(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def generate_session_key() -> bytes:
    return secrets.token_bytes(SESSION_KEY_BYTES)


def create_session_token(payload: dict, key: bytes, expires_seconds: int) -> str:
    to_encode = payload.copy()
    now = dt.datetime.now(dt.timezone.utc)
    to_encode["iat"] = now
    to_encode["exp"] = now + dt.timedelta(seconds=expires_seconds)
    return jwt.encode(to_encode, key, algorithm=ALGORITHM)


def decode_session_token(token: str, key: bytes) -> dict | None:
    try:
        return jwt.decode(token, key, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
