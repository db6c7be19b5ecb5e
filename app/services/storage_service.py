"""
Cloud Storage Service for Cloudflare R2 (S3-compatible).

Holds voice-training audio samples. Falls back to local storage if R2 is
not configured.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import aiofiles
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class StorageError(Exception):
    """Raised when the storage backend rejects an operation."""


@dataclass
class StoredObject:
    """Metadata describing one stored file."""
    url: str
    public_id: str
    owner: str
    created_at: datetime
    format: str
    size: int
    tags: List[str] = field(default_factory=list)


class StorageService:
    """
    Unified storage service that supports both local and cloud (R2/S3) storage.

    If R2 credentials are configured, files are uploaded to the cloud.
    Otherwise, files are stored locally under ``upload_dir`` (for development),
    with owner metadata kept in a JSON sidecar next to each file.
    """

    def __init__(self, upload_dir: Optional[str] = None):
        self.use_cloud = self._is_cloud_configured()
        self.upload_dir = Path(upload_dir or settings.upload_dir)

        if self.use_cloud:
            self._init_r2_client()
            logger.info("Storage: Using Cloudflare R2 cloud storage")
        else:
            logger.info("Storage: Using local file storage (R2 not configured)")

    def _is_cloud_configured(self) -> bool:
        """Check if R2/S3 credentials are configured."""
        return bool(
            settings.r2_account_id and
            settings.r2_access_key_id and
            settings.r2_secret_access_key and
            settings.r2_bucket_name
        )

    def _init_r2_client(self):
        """Initialize the R2 (S3-compatible) client."""
        self.s3_client = boto3.client(
            's3',
            endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            config=Config(
                signature_version='s3v4',
                retries={'max_attempts': 3, 'mode': 'standard'}
            ),
            region_name='auto'
        )
        self.bucket_name = settings.r2_bucket_name
        self.public_url_base = settings.r2_public_url

    # ─── Upload ─────────────────────────────────
    async def upload_bytes(
        self,
        data: bytes,
        folder: str,
        public_id: str,
        owner: str,
        extension: str,
        content_type: str = 'application/octet-stream',
        tags: Optional[List[str]] = None,
    ) -> StoredObject:
        """
        Store an in-memory payload.

        Args:
            data: File contents
            folder: Logical folder (e.g. 'voice-web-app/training-audio')
            public_id: Stable identifier, unique within the folder
            owner: Owner tag stored with the object
            extension: File extension without the dot
            content_type: MIME type of the file
            tags: Free-form labels stored with the object

        Returns:
            The stored object's metadata, including its public URL
        """
        key = f"{folder.strip('/')}/{public_id}.{extension}"
        stored = StoredObject(
            url="",
            public_id=public_id,
            owner=owner,
            created_at=datetime.now(timezone.utc),
            format=extension,
            size=len(data),
            tags=list(tags or []),
        )
        if self.use_cloud:
            await self._upload_to_r2(data, key, content_type, stored)
        else:
            await self._store_locally(data, key, stored)
        return stored

    async def _upload_to_r2(self, data: bytes, key: str, content_type: str, stored: StoredObject) -> None:
        """Upload payload to Cloudflare R2."""
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={
                    "owner": stored.owner,
                    "uploaded-at": stored.created_at.isoformat(),
                    "tags": ",".join(stored.tags),
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 upload failed: {e}")
            raise StorageError(str(e)) from e

        stored.url = self._r2_url(key)
        logger.info(f"Uploaded to R2: {key}")

    async def _store_locally(self, data: bytes, key: str, stored: StoredObject) -> None:
        """Store payload locally (development mode)."""
        path = self.upload_dir / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
            async with aiofiles.open(self._sidecar(path), "w") as f:
                await f.write(json.dumps({
                    "owner": stored.owner,
                    "uploaded_at": stored.created_at.isoformat(),
                    "tags": stored.tags,
                }))
        except OSError as e:
            logger.error(f"Local store failed: {e}")
            raise StorageError(str(e)) from e

        stored.url = f"{settings.effective_base_url}/uploads/{key}"
        logger.info(f"Stored locally: {path}")

    # ─── Listing ────────────────────────────────
    async def list_objects(self, folder: str, limit: int = 50) -> List[StoredObject]:
        """List objects in a folder, newest first."""
        if self.use_cloud:
            objects = await self._list_r2(folder, limit)
        else:
            objects = await asyncio.to_thread(self._list_local, folder)
        objects.sort(key=lambda o: o.created_at, reverse=True)
        return objects[:limit]

    async def _list_r2(self, folder: str, limit: int) -> List[StoredObject]:
        prefix = f"{folder.strip('/')}/"
        try:
            listing = await asyncio.to_thread(
                self.s3_client.list_objects_v2,
                Bucket=self.bucket_name,
                Prefix=prefix,
            )
            contents = sorted(listing.get("Contents", []), key=lambda o: o["LastModified"], reverse=True)
            objects = []
            for item in contents[:limit]:
                head = await asyncio.to_thread(
                    self.s3_client.head_object, Bucket=self.bucket_name, Key=item["Key"]
                )
                metadata = head.get("Metadata", {})
                objects.append(self._object_from_key(
                    item["Key"],
                    owner=metadata.get("owner", "unknown"),
                    created_at=item["LastModified"],
                    size=item.get("Size", 0),
                    tags=[t for t in metadata.get("tags", "").split(",") if t],
                    url=self._r2_url(item["Key"]),
                ))
            return objects
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 listing failed: {e}")
            raise StorageError(str(e)) from e

    def _list_local(self, folder: str) -> List[StoredObject]:
        base = self.upload_dir / folder.strip("/")
        if not base.exists():
            return []

        objects = []
        for path in base.iterdir():
            if not path.is_file() or path.name.endswith(".meta.json"):
                continue
            meta = {}
            sidecar = self._sidecar(path)
            if sidecar.exists():
                meta = json.loads(sidecar.read_text())
            stat = path.stat()
            uploaded_at = meta.get("uploaded_at")
            key = f"{folder.strip('/')}/{path.name}"
            objects.append(self._object_from_key(
                key,
                owner=meta.get("owner", "unknown"),
                created_at=(
                    datetime.fromisoformat(uploaded_at) if uploaded_at
                    else datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                ),
                size=stat.st_size,
                tags=meta.get("tags", []),
                url=f"{settings.effective_base_url}/uploads/{key}",
            ))
        return objects

    # ─── Deletion ───────────────────────────────
    async def delete_object(self, folder: str, public_id: str) -> bool:
        """
        Delete an object by public id.

        Returns:
            True if something was deleted, False if no such object exists
        """
        if self.use_cloud:
            return await self._delete_from_r2(folder, public_id)
        return await asyncio.to_thread(self._delete_locally, folder, public_id)

    async def _delete_from_r2(self, folder: str, public_id: str) -> bool:
        prefix = f"{folder.strip('/')}/{public_id}."
        try:
            listing = await asyncio.to_thread(
                self.s3_client.list_objects_v2, Bucket=self.bucket_name, Prefix=prefix
            )
            keys = [
                item["Key"] for item in listing.get("Contents", [])
                if item["Key"].rsplit("/", 1)[-1].rpartition(".")[0] == public_id
            ]
            for key in keys:
                await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket_name, Key=key)
                logger.info(f"Deleted from R2: {key}")
            return bool(keys)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 delete failed: {e}")
            raise StorageError(str(e)) from e

    def _delete_locally(self, folder: str, public_id: str) -> bool:
        base = self.upload_dir / folder.strip("/")
        if not base.is_dir():
            return False

        deleted = False
        for path in list(base.iterdir()):
            if path.name.endswith(".meta.json") or not path.is_file():
                continue
            if path.name.rpartition(".")[0] != public_id:
                continue
            path.unlink()
            self._sidecar(path).unlink(missing_ok=True)
            logger.info(f"Deleted locally: {path}")
            deleted = True
        return deleted

    # ─── Helpers ────────────────────────────────
    @staticmethod
    def _sidecar(path: Path) -> Path:
        return path.with_name(path.name + ".meta.json")

    def _r2_url(self, key: str) -> str:
        if self.public_url_base:
            return f"{self.public_url_base.rstrip('/')}/{key}"
        # Fallback to direct R2 URL (requires public bucket)
        return f"https://{self.bucket_name}.{settings.r2_account_id}.r2.cloudflarestorage.com/{key}"

    @staticmethod
    def _object_from_key(key: str, **kwargs) -> StoredObject:
        name = key.rsplit("/", 1)[-1]
        public_id, _, extension = name.rpartition(".")
        return StoredObject(public_id=public_id or name, format=extension, **kwargs)


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get or create the storage service singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
