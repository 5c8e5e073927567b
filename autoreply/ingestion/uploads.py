"""Accept raw call audio into blob storage as new ``uploaded`` units."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from autoreply.ingestion.models import IngestionUnit
from autoreply.ingestion.storage import BlobStore, CallRepository

logger = logging.getLogger(__name__)

MAX_AUDIO_BYTES = 100 * 1024 * 1024


class UploadRejected(ValueError):
    """The file is not acceptable audio (wrong type or too large)."""


def storage_key(file_name: str) -> str:
    """Unique blob key that keeps the original extension."""
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else "mp3"
    stamp = int(datetime.now(UTC).timestamp() * 1000)
    return f"{stamp}-{uuid.uuid4().hex[:12]}.{ext}"


class CallUploader:
    def __init__(
        self, blobs: BlobStore, repo: CallRepository, max_bytes: int = MAX_AUDIO_BYTES
    ) -> None:
        self._blobs = blobs
        self._repo = repo
        self.max_bytes = max_bytes

    def upload(
        self,
        file_name: str,
        data: bytes,
        content_type: str | None,
        phone_number: str | None,
    ) -> IngestionUnit:
        """Store *data* and create an ``uploaded`` unit pointing at it.

        Raises:
            UploadRejected: Not an ``audio/*`` type, empty, or over the size limit.
        """
        if not content_type or not content_type.startswith("audio/"):
            raise UploadRejected("Invalid file type. Only audio files are allowed.")
        if not data:
            raise UploadRejected("Uploaded file is empty.")
        if len(data) > self.max_bytes:
            raise UploadRejected(f"File too large. Maximum size is {self.max_bytes // (1024 * 1024)}MB.")

        key = self._blobs.upload(storage_key(file_name), data, content_type)
        try:
            unit = self._repo.create(
                file_name=file_name,
                storage_path=key,
                phone_number=phone_number,
                file_size=len(data),
                mime_type=content_type,
            )
        except Exception:
            logger.error("Insert failed for %s; removing stored blob %s", file_name, key)
            try:
                self._blobs.delete(key)
            except Exception:
                logger.exception("Could not remove orphaned blob %s", key)
            raise

        logger.info("Uploaded call %s (%s, %d bytes)", unit.id, file_name, len(data))
        return unit
