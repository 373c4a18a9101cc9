import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class BlobStorage:
    """On-disk layout for catalogs, per-user staging and published blobs.

    <root>/db/file_db.dat, <root>/db/user_db.dat
    <root>/db/temp/<username>/<file-id>.<ext>   staged uploads
    <root>/db/deleted/<file-id>.<ext>           soft-deleted blobs
    <root>/static/content/<file-id>.<ext>       published blobs
    <root>/config/session_key.dat
    """

    def __init__(self, root_path: Path | str):
        self.root = Path(root_path)
        self.db_dir = self.root / "db"
        self.temp_dir = self.db_dir / "temp"
        self.deleted_dir = self.db_dir / "deleted"
        self.static_dir = self.root / "static"
        self.content_dir = self.static_dir / "content"
        self.config_dir = self.root / "config"

    @property
    def file_catalog(self) -> Path:
        return self.db_dir / "file_db.dat"

    @property
    def user_catalog(self) -> Path:
        return self.db_dir / "user_db.dat"

    @property
    def session_key_file(self) -> Path:
        return self.config_dir / "session_key.dat"

    def ensure_layout(self) -> None:
        for directory in (self.temp_dir, self.deleted_dir, self.content_dir, self.config_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def staged_path(self, username: str, storage_name: str) -> Path:
        return self.temp_dir / username / storage_name

    def content_path(self, storage_name: str) -> Path:
        return self.content_dir / storage_name

    def deleted_path(self, storage_name: str) -> Path:
        return self.deleted_dir / storage_name

    def write_staged(self, username: str, storage_name: str, data: bytes) -> Path:
        path = self.staged_path(username, storage_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def publish(self, username: str, storage_name: str) -> Path:
        target = self.content_path(storage_name)
        shutil.move(str(self.staged_path(username, storage_name)), str(target))
        return target

    def retire(self, storage_name: str) -> Path:
        target = self.deleted_path(storage_name)
        shutil.move(str(self.content_path(storage_name)), str(target))
        return target

    def remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def purge(self, storage_name: str) -> None:
        removed = self.remove(self.content_path(storage_name))
        removed = self.remove(self.deleted_path(storage_name)) or removed
        if not removed:
            logger.warning("No blob found to purge for %s", storage_name)

    def reset(self) -> None:
        for directory in (self.content_dir, self.temp_dir, self.deleted_dir):
            if not directory.exists():
                continue
            for child in directory.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
