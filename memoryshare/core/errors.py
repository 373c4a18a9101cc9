from fastapi import status


class MemoryShareError(Exception):
    """Base error; ``tag`` is the short machine-readable body returned to callers."""

    tag = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    internal = False

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.tag)
        self.detail = detail or self.tag


# validation


class UnsupportedFormat(MemoryShareError):
    tag = "unsupported_format"


class TooLarge(MemoryShareError):
    tag = "too_large"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class InvalidRequest(MemoryShareError):
    tag = "invalid_request"


class InvalidField(MemoryShareError):
    def __init__(self, field: str, detail: str | None = None):
        self.field = field
        self.tag = f"invalid_{field}"
        super().__init__(detail)


class MissingField(MemoryShareError):
    def __init__(self, field: str, detail: str | None = None):
        self.field = field
        self.tag = f"no_{field}"
        super().__init__(detail)


class DuplicateContent(MemoryShareError):
    tag = "duplicate_content"
    status_code = status.HTTP_409_CONFLICT


class DuplicateEmail(MemoryShareError):
    tag = "account_already_exists"
    status_code = status.HTTP_409_CONFLICT


class WeakPassword(MemoryShareError):
    tag = "invalid_password"


# authorisation


class Unauthorised(MemoryShareError):
    tag = "unauthorised"
    status_code = status.HTTP_401_UNAUTHORIZED


class NoSession(Unauthorised):
    pass


class Forbidden(MemoryShareError):
    tag = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


# lookups


class UserNotFound(MemoryShareError):
    tag = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class FileNotFound(MemoryShareError):
    tag = "file_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class WrongState(MemoryShareError):
    tag = "wrong_state"
    status_code = status.HTTP_409_CONFLICT


# internal; callers only ever see "error"


class InternalError(MemoryShareError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    internal = True


class StoreIOError(InternalError):
    pass


class SerializationError(InternalError):
    pass
