"""Binary catalog codec.

Every catalog file is a fixed header followed by a zlib-compressed canonical
JSON document of the pydantic model:

    magic "MSHR" | format version (u8) | kind (u8) | crc32 (u32) | length (u32) | payload

Canonical JSON (sorted keys, compact separators) and a fixed compression level
make the encoding a pure function of the in-memory state.
"""

import enum
import json
import os
import struct
import zlib
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from memoryshare.core.errors import SerializationError

MAGIC = b"MSHR"
FORMAT_VERSION = 1
COMPRESSION_LEVEL = 9
HEADER = struct.Struct(">4sBBII")

ModelT = TypeVar("ModelT", bound=BaseModel)


class CatalogKind(enum.IntEnum):
    FILES = 1
    USERS = 2
    SESSION_KEY = 3


def canonical_json(payload: Any) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class CatalogCodec:
    def encode_payload(self, kind: CatalogKind, payload: Any) -> bytes:
        body = zlib.compress(canonical_json(payload), COMPRESSION_LEVEL)
        header = HEADER.pack(MAGIC, FORMAT_VERSION, int(kind), zlib.crc32(body), len(body))
        return header + body

    def decode_payload(self, kind: CatalogKind, blob: bytes) -> Any:
        if len(blob) < HEADER.size:
            raise SerializationError("catalog blob is truncated")
        magic, version, stored_kind, crc, length = HEADER.unpack_from(blob)
        if magic != MAGIC:
            raise SerializationError("catalog blob has an unknown signature")
        if version != FORMAT_VERSION:
            raise SerializationError(f"unsupported catalog format version {version}")
        if stored_kind != int(kind):
            raise SerializationError(f"expected {kind.name} catalog, found kind {stored_kind}")
        body = blob[HEADER.size:]
        if len(body) != length or zlib.crc32(body) != crc:
            raise SerializationError("catalog blob failed its integrity check")
        try:
            return json.loads(zlib.decompress(body).decode("utf-8"))
        except (zlib.error, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SerializationError(f"catalog payload is unreadable: {exc}") from exc

    def encode(self, kind: CatalogKind, model: BaseModel) -> bytes:
        return self.encode_payload(kind, model.model_dump(mode="json"))

    def decode(self, kind: CatalogKind, blob: bytes, model_cls: type[ModelT]) -> ModelT:
        payload = self.decode_payload(kind, blob)
        try:
            return model_cls.model_validate(payload)
        except ValidationError as exc:
            raise SerializationError(f"catalog does not match {model_cls.__name__}: {exc}") from exc

    def encode_key(self, key: bytes) -> bytes:
        return self.encode_payload(CatalogKind.SESSION_KEY, {"key": key.hex()})

    def decode_key(self, blob: bytes) -> bytes:
        payload = self.decode_payload(CatalogKind.SESSION_KEY, blob)
        try:
            return bytes.fromhex(payload["key"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SerializationError("session key file is malformed") from exc

    def write(self, path: Path, blob: bytes) -> None:
        """Replace ``path`` atomically so a crash never leaves half a catalog."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            raise SerializationError(f"could not write {path}: {exc}") from exc

    def read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise SerializationError(f"could not read {path}: {exc}") from exc
