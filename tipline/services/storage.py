"""
Evidence storage.

The core only needs a stable reference per uploaded file plus its content
type and original name. ``LocalEvidenceStorage`` writes to a directory;
anything with the same ``upload`` and ``delete`` methods can replace it.
"""
import logging
import os
import re
import uuid
from dataclasses import dataclass
from typing import Protocol

from tipline.services.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({
    # Images
    "image/png",
    "image/jpg",
    "image/jpeg",
    "image/gif",
    "image/webp",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    # Videos
    "video/mp4",
    "video/mpeg",
    "video/ogg",
    "video/webm",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-matroska",
})

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class Upload:
    """A file received from the client, not yet stored."""
    original_name: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class StoredObject:
    reference: str
    content_type: str
    original_name: str


class EvidenceStorage(Protocol):
    def upload(self, original_name: str, content_type: str, data: bytes) -> StoredObject:
        ...

    def delete(self, reference: str) -> None:
        ...


def validate_upload_count(count: int, max_files: int) -> None:
    if count > max_files:
        raise ValidationError(f"At most {max_files} evidence files can be attached at once")


def validate_upload(upload: Upload, max_bytes: int) -> None:
    """Reject files by type and size before anything is written."""
    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"File type not allowed: {upload.content_type}")
    if len(upload.data) > max_bytes:
        raise ValidationError(
            f"File '{upload.original_name}' exceeds the {max_bytes} byte upload limit"
        )


class LocalEvidenceStorage:
    """Stores evidence files under a directory on local disk."""

    def __init__(self, root: str):
        self.root = root

    def upload(self, original_name: str, content_type: str, data: bytes) -> StoredObject:
        safe_name = _UNSAFE_NAME_CHARS.sub("_", os.path.basename(original_name or "upload")) or "upload"
        key = f"{uuid.uuid4().hex}_{safe_name}"
        path = os.path.join(self.root, key)
        try:
            os.makedirs(self.root, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("Evidence upload failed", extra={"key": key}, exc_info=True)
            raise UpstreamError(f"Could not write evidence file {key}: {e}") from e

        logger.info("Stored evidence file", extra={"key": key, "size": len(data)})
        return StoredObject(reference=key, content_type=content_type, original_name=original_name)

    def delete(self, reference: str) -> None:
        """Remove a stored file. Deleting a missing file is not an error."""
        path = os.path.join(self.root, os.path.basename(reference))
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise UpstreamError(f"Could not delete evidence file {reference}: {e}") from e
        logger.info("Deleted evidence file", extra={"key": reference})
