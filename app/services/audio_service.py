"""AudioService: voice-training samples kept in object storage."""

import logging
import re
import time
from pathlib import PurePath
from typing import List, Optional

from app.core.config import get_settings
from app.core.errors import internal_error, not_found_error, validation_error
from app.services.storage_service import StorageError, StorageService, StoredObject, get_storage_service

logger = logging.getLogger(__name__)
settings = get_settings()

TRAINING_TAG = "voice-training"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
PUBLIC_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

# MIME type -> stored file extension
_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
}


def _safe_id_part(value: str) -> str:
    return _UNSAFE_ID_CHARS.sub("-", value).strip("-") or "sample"


class AudioService:
    """Upload, list and delete voice-training audio samples."""

    def __init__(self, storage: Optional[StorageService] = None):
        self.storage = storage or get_storage_service()
        self.folder = settings.training_audio_folder

    @property
    def max_upload_bytes(self) -> int:
        return settings.max_audio_size_bytes

    def ensure_size_allowed(self, size: int) -> None:
        if size > self.max_upload_bytes:
            raise validation_error(f"File too large. Maximum size is {settings.max_audio_size_mb}MB")

    async def upload_training_audio(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        owner: Optional[str],
    ) -> StoredObject:
        """
        Validate and store one recorded sample.

        The public id is ``{owner}_{epoch_ms}_{stem}`` so samples sort by
        owner and upload time.
        """
        if not data:
            raise validation_error("No file uploaded")

        content_type = (content_type or "").split(";")[0].strip().lower()
        allowed = settings.allowed_audio_types_list
        if content_type not in allowed:
            raise validation_error(f"Invalid file type. Allowed types: {', '.join(allowed)}")

        self.ensure_size_allowed(len(data))

        if not owner or not owner.strip():
            raise validation_error("Owner name is required")
        owner = owner.strip()

        stem = _safe_id_part(PurePath(filename or "sample").stem)
        public_id = f"{_safe_id_part(owner)}_{int(time.time() * 1000)}_{stem}"
        extension = _EXTENSIONS.get(content_type) or content_type.split("/")[-1]

        logger.info(f"Uploading audio sample: {public_id} ({len(data)} bytes, {content_type})")
        try:
            stored = await self.storage.upload_bytes(
                data,
                folder=self.folder,
                public_id=public_id,
                owner=owner,
                extension=extension,
                content_type=content_type,
                tags=[TRAINING_TAG, f"user-{owner}"],
            )
        except StorageError as e:
            raise internal_error(
                "Failed to upload audio sample",
                errors=None if settings.is_production else str(e),
            )

        logger.info(f"Upload successful: {stored.public_id}")
        return stored

    async def list_training_audio(self, limit: Optional[int] = None) -> List[StoredObject]:
        """List samples newest first."""
        try:
            return await self.storage.list_objects(self.folder, limit or settings.list_audio_limit)
        except StorageError as e:
            raise internal_error(
                "Failed to retrieve audio files",
                errors=None if settings.is_production else str(e),
            )

    async def delete_training_audio(self, public_id: str) -> None:
        public_id = (public_id or "").strip()
        if not public_id:
            raise validation_error("Public ID is required")
        # Only ids of the form built on upload; rejects wildcards and path parts
        if not PUBLIC_ID_PATTERN.fullmatch(public_id):
            raise validation_error("Invalid public ID")
        try:
            deleted = await self.storage.delete_object(self.folder, public_id)
        except StorageError as e:
            raise internal_error(
                "Failed to delete audio file",
                errors=None if settings.is_production else str(e),
            )
        if not deleted:
            raise not_found_error("Audio file not found")
        logger.info(f"Audio file deleted: {public_id}")


def get_audio_service() -> AudioService:
    return AudioService()
