from dataclasses import dataclass

from memoryshare.core.config import Settings
from memoryshare.db.models import MediaClass

DEFAULT_MAX_SIZE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str | None = None
    details: dict[str, str | int] | None = None
    name: str = ""
    extension: str = ""
    media_class: MediaClass | None = None


def parse_format_list(value: str) -> tuple[str, ...]:
    formats = []
    for item in value.split(","):
        item = item.strip().lower().lstrip(".")
        if item and item not in formats:
            formats.append(item)
    return tuple(formats)


def split_filename(filename: str) -> tuple[str, str]:
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in base:
        return base, ""
    name, extension = base.rsplit(".", 1)
    return name, extension.lower()


@dataclass(frozen=True)
class FileTypePolicy:
    formats: dict[MediaClass, tuple[str, ...]]

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileTypePolicy":
        return cls(
            formats={
                MediaClass.image: parse_format_list(settings.image_formats),
                MediaClass.video: parse_format_list(settings.video_formats),
                MediaClass.audio: parse_format_list(settings.audio_formats),
                MediaClass.text: parse_format_list(settings.text_formats),
                MediaClass.other: parse_format_list(settings.other_formats),
            }
        )

    def media_class_for(self, extension: str) -> MediaClass | None:
        # reject before lookup so "jpg,exe" can never match a list entry
        if "," in extension:
            return None
        extension = extension.lower()
        for media_class, extensions in self.formats.items():
            if extension in extensions:
                return media_class
        return None


def validate_upload_metadata(
    policy: FileTypePolicy,
    *,
    original_filename: str,
    size_bytes: int | None,
    max_size_bytes: int | None = DEFAULT_MAX_SIZE_BYTES,
) -> ValidationResult:
    if not original_filename or not original_filename.strip():
        return ValidationResult(ok=False, reason="invalid_request", details={"filename": "missing"})

    name, extension = split_filename(original_filename.strip())
    if not extension:
        return ValidationResult(
            ok=False,
            reason="unsupported_format",
            details={"filename": original_filename},
        )
    media_class = policy.media_class_for(extension)
    if media_class is None:
        return ValidationResult(ok=False, reason="unsupported_format", details={"ext": extension})

    if max_size_bytes is not None and size_bytes is not None and size_bytes > max_size_bytes:
        return ValidationResult(
            ok=False,
            reason="too_large",
            details={"size": size_bytes, "max": max_size_bytes},
        )

    return ValidationResult(ok=True, name=name, extension=extension, media_class=media_class)
