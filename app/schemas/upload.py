"""
schemas/upload.py
-----------------
Pydantic models for uploaded object metadata.
"""

from datetime import datetime

from pydantic import BaseModel


class UploadRead(BaseModel):
    id: str
    key: str
    file_name: str
    content_type: str
    size: int
    created_at: datetime

    model_config = {"from_attributes": True}


class UploadUrl(BaseModel):
    key: str
    url: str
