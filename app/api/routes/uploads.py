"""
api/routes/uploads.py
---------------------
Image uploads (MANAGER+).

POST   /uploads             — multipart file upload, returns key + signed URL.
GET    /uploads/{key}/url   — Fresh signed URL for an owned object.
DELETE /uploads/{key}       — Remove object and record.
"""

from fastapi import APIRouter, Depends, Form, UploadFile, status

from app.core.responses import success
from app.dependencies import DataAccess, Manager, require_tenant
from app.schemas.upload import UploadRead, UploadUrl
from app.services.upload_service import upload_service

router = APIRouter(prefix="/uploads", tags=["Uploads"], dependencies=[Depends(require_tenant)])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Upload an image")
async def upload_file(
    principal: Manager,
    data: DataAccess,
    file: UploadFile,
    folder: str = Form(default="products"),
) -> dict:
    content = await file.read()
    record, url = await upload_service.upload(
        data.session,
        principal.company_id,
        principal.id,
        file.filename or "upload",
        file.content_type or "",
        content,
        folder=folder,
    )
    return success({"file": UploadRead.model_validate(record), "url": url}, "File uploaded")


@router.get("/{key:path}/url", summary="Get a signed URL")
async def get_upload_url(key: str, principal: Manager, data: DataAccess) -> dict:
    url = await upload_service.get_url(data.session, key)
    return success(UploadUrl(key=key, url=url))


@router.delete("/{key:path}", summary="Delete an upload")
async def delete_upload(key: str, principal: Manager, data: DataAccess) -> dict:
    await upload_service.delete(data.session, key)
    return success(None, "File deleted")
