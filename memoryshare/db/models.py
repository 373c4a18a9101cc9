import datetime as dt
import enum
import time
import uuid

from pydantic import BaseModel, Field, field_serializer


def new_id() -> str:
    return str(uuid.uuid4())


def now_ns() -> int:
    return time.time_ns()


def day_of(timestamp_ns: int) -> dt.date:
    return dt.datetime.fromtimestamp(timestamp_ns / 1e9, tz=dt.timezone.utc).date()


class MediaClass(str, enum.Enum):
    image = "image"
    video = "video"
    audio = "audio"
    text = "text"
    other = "other"


class FileState(str, enum.Enum):
    UPLOADED = "UPLOADED"
    PUBLISHED = "PUBLISHED"
    DELETED = "DELETED"


class TransactionType(str, enum.Enum):
    CREATE = "CREATE"
    EDIT = "EDIT"
    DELETE = "DELETE"


class AccountType(str, enum.Enum):
    STANDARD = "STANDARD"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    GUEST = "GUEST"


class AccountState(str, enum.Enum):
    UNREGISTERED = "UNREGISTERED"
    ADMIN_CONFIRMED = "ADMIN_CONFIRMED"
    EMAIL_CONFIRMED = "EMAIL_CONFIRMED"
    COMPLETE = "COMPLETE"
    BLOCKED = "BLOCKED"


class MetaData(BaseModel):
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    people: list[str] = Field(default_factory=list)
    memory_date: dt.date | None = None


class File(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    extension: str
    added_at: int = Field(default_factory=now_ns)
    uploader: str
    state: FileState = FileState.UPLOADED
    media_class: MediaClass
    hash: str = ""
    size: int = 0
    metadata: MetaData = Field(default_factory=MetaData)

    @property
    def full_file_name(self) -> str:
        return f"{self.name}.{self.extension}"

    @property
    def storage_name(self) -> str:
        return f"{self.id}.{self.extension}"

    def to_json_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["full_file_name"] = self.full_file_name
        return data


class Transaction(BaseModel):
    """Immutable record of one catalog-changing event."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=new_id)
    file_id: str
    type: TransactionType
    created_at: int = Field(default_factory=now_ns)
    version: str


class User(BaseModel):
    username: str
    email: str
    password: str
    temp_reset_password: str | None = None
    forename: str
    surname: str
    type: AccountType = AccountType.STANDARD
    created_at: int = Field(default_factory=now_ns)
    image: str = ""
    favourites: set[str] = Field(default_factory=set)
    state: AccountState = AccountState.UNREGISTERED
    blocked_from: AccountState | None = None

    @field_serializer("favourites")
    def _sorted_favourites(self, favourites: set[str]) -> list[str]:
        return sorted(favourites)

    def to_public_dict(self) -> dict:
        return self.model_dump(mode="json", exclude={"password", "temp_reset_password"})


class FileCatalog(BaseModel):
    files: dict[str, File] = Field(default_factory=dict)
    transactions: list[Transaction] = Field(default_factory=list)


class UserCatalog(BaseModel):
    users: dict[str, User] = Field(default_factory=dict)
