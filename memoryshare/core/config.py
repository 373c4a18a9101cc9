import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from memoryshare.core.config_file import ConfigFile

ENV_PREFIX = "MEMORYSHARE_"
CONFIG_FILE_NAME = "settings.ini"


def config_file_path(root_path: Path | str) -> Path:
    return Path(root_path) / "config" / CONFIG_FILE_NAME


class IniFileSettingsSource(PydanticBaseSettingsSource):
    """Reads recognised options from ``<root>/config/settings.ini``."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path):
        super().__init__(settings_cls)
        self.config_file = ConfigFile.load(path)

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self.config_file.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name in self.settings_cls.model_fields:
            value, _, _ = self.get_field_value(self.settings_cls.model_fields[name], name)
            if value is not None and value.strip() != "":
                values[name] = value.strip()
        return values


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_file=".env", env_file_encoding="utf-8", extra="ignore")

    root_path: Path = Path(".")

    version: str = "0.3.0"
    brand_name: str = "MemoryShare"
    http_host: str = "localhost"
    http_port: int = 8000
    enable_console_commands: bool = False

    max_session_age: int = 7
    session_cookie_secure: bool = False
    max_file_upload_size: int = 10
    allow_incomplete_login: bool = False
    password_hash_rounds: int = Field(default=12, ge=12, le=31)

    image_formats: str = "jpg,jpeg,png,gif,bmp,webp"
    video_formats: str = "mp4,mov,avi,webm,mkv"
    audio_formats: str = "mp3,wav,ogg,flac,m4a"
    text_formats: str = "txt,md,pdf"
    other_formats: str = "zip,rar"

    # mailer collaborator settings, kept so they survive config rewrites
    core_email_server: str = ""
    core_email_port: int = 465
    core_email_addr: str = ""
    core_email_password: str = ""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        init_kwargs = getattr(init_settings, "init_kwargs", {}) or {}
        root = init_kwargs.get("root_path") or os.environ.get(f"{ENV_PREFIX}ROOT_PATH") or "."
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            IniFileSettingsSource(settings_cls, config_file_path(root)),
            file_secret_settings,
        )

    @property
    def config_file(self) -> Path:
        return config_file_path(self.root_path)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_file_upload_size * 1024 * 1024

    @property
    def session_max_age_seconds(self) -> int:
        return self.max_session_age * 86400


def file_defaults() -> dict[str, str]:
    """Default values written into a fresh settings.ini, in declaration order."""
    defaults = {}
    for name, field in Settings.model_fields.items():
        if name == "root_path":
            continue
        value = field.default
        defaults[name] = str(value).lower() if isinstance(value, bool) else str(value)
    return defaults


def write_missing_defaults(settings: Settings) -> ConfigFile:
    config_file = ConfigFile.load(settings.config_file)
    if config_file.ensure_defaults(file_defaults()) or not settings.config_file.exists():
        config_file.save()
    return config_file


@lru_cache
def get_settings() -> Settings:
    return Settings()
