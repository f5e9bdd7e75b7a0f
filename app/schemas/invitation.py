"""
schemas/invitation.py
---------------------
Pydantic models for company invitations.

  InvitationCreate  → admin invites an email address
  InvitationIssued  → admin response: the invitation plus its link
  InvitationVerify  → public: check a link before showing the signup form
  InvitationPublic  → what the signup form may prefill
  InvitationAccept  → public: sign up through the link
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.user import UserRole


class InvitationCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.USER

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class InvitationRead(BaseModel):
    id: str
    company_id: str
    email: str
    name: str
    role: str
    expires_at: datetime
    is_used: bool
    is_valid: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationIssued(BaseModel):
    invitation: InvitationRead
    invite_url: str
    email_sent: bool


class InvitationVerify(BaseModel):
    invite_url: str = Field(..., min_length=1, max_length=2048)


class InvitationPublic(BaseModel):
    email: str
    name: str
    role: str

    model_config = {"from_attributes": True}


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=8, max_length=128)
