"""
services/upload_service.py
--------------------------
Image uploads. Objects live under `{company_id}/{folder}/{uuid}.{ext}`;
the Upload row is tenant-scoped, so a key from another company is simply
not found.
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidInput, NotFound
from app.core.logging import get_logger
from app.db.session import atomic
from app.db.tenant_access import TenantAwareDataAccess
from app.models.upload import Upload
from app.services.storage_service import StorageService, storage_service

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class UploadService:

    def __init__(self, storage: StorageService = storage_service) -> None:
        self.storage = storage

    async def upload(
        self,
        db: AsyncSession,
        company_id: str,
        user_id: str,
        file_name: str,
        content_type: str,
        data: bytes,
        folder: str = "products",
    ) -> tuple[Upload, str]:
        extension = ALLOWED_CONTENT_TYPES.get(content_type)
        if extension is None:
            raise InvalidInput(
                "Unsupported file type",
                code="UPLOAD_INVALID_TYPE",
                details={"allowed": sorted(ALLOWED_CONTENT_TYPES)},
            )
        if not data:
            raise InvalidInput("File is empty", code="UPLOAD_EMPTY")
        if len(data) > MAX_UPLOAD_BYTES:
            raise InvalidInput("File is too large", code="UPLOAD_TOO_LARGE")
        if not folder.isalnum():
            raise InvalidInput("Invalid folder name", code="UPLOAD_INVALID_FOLDER")

        key = f"{company_id}/{folder}/{uuid.uuid4()}.{extension}"
        url = await self.storage.put(data, key, content_type)
        try:
            async with atomic(db):
                record = await TenantAwareDataAccess(db).table(Upload).create(
                    {
                        "company_id": company_id,
                        "uploader_id": user_id,
                        "key": key,
                        "file_name": file_name,
                        "content_type": content_type,
                        "size": len(data),
                    }
                )
        except Exception:
            logger.error("Upload record failed, removing stored object", key=key)
            await self.storage.delete(key)
            raise
        logger.info("File uploaded", key=key, size=len(data))
        return record, url

    async def _get(self, db: AsyncSession, key: str) -> Upload:
        record = await TenantAwareDataAccess(db).table(Upload).find_one({"key": key})
        if record is None:
            raise NotFound("File not found", code="UPLOAD_NOT_FOUND")
        return record

    async def get_url(self, db: AsyncSession, key: str) -> str:
        record = await self._get(db, key)
        return await self.storage.signed_url(record.key)

    async def delete(self, db: AsyncSession, key: str) -> None:
        record = await self._get(db, key)
        await self.storage.delete(record.key)
        async with atomic(db):
            await TenantAwareDataAccess(db).table(Upload).delete_many({"id": record.id})
        logger.info("File deleted", key=key)


upload_service = UploadService()
