"""
schemas/company.py
------------------
Pydantic request/response models for Company.

Naming convention:
  AdminRegister  → inbound body creating a company and its first admin
  CompanyRead    → outbound response body
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from app.schemas.user import UserRead


class AdminRegister(BaseModel):
    company_name: str = Field(..., min_length=2, max_length=255, examples=["Acme Corp"])
    business_number: str = Field(..., min_length=3, max_length=32, examples=["123-45-67890"])
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("company_name", "business_number", "name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class CompanyRead(BaseModel):
    id: str
    name: str
    business_number: str
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyProfileUpdate(BaseModel):
    """Company rename and/or admin password change, applied together."""
    company_name: str | None = Field(default=None, min_length=2, max_length=255)
    current_password: str | None = None
    new_password: str | None = Field(default=None, min_length=8, max_length=128)

    @model_validator(mode="after")
    def check_fields(self) -> "CompanyProfileUpdate":
        if self.company_name is None and self.new_password is None:
            raise ValueError("Nothing to update")
        if self.new_password is not None and not self.current_password:
            raise ValueError("current_password is required to change the password")
        return self


class RegisterResponse(BaseModel):
    company: CompanyRead
    user: UserRead
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
