import hashlib
import re

# path segments served from the staging tree: no separators, no leading dot
SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9=_\-][A-Za-z0-9=_.\-]*$")


def compute_checksum(data: bytes, algorithm: str = "sha256") -> str:
    if algorithm != "sha256":
        raise ValueError("Unsupported algorithm")
    digest = hashlib.sha256()
    digest.update(data)
    return digest.hexdigest()


def is_safe_segment(segment: str) -> bool:
    return bool(SAFE_SEGMENT.match(segment)) and ".." not in segment
