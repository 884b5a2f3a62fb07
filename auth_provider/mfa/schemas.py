"""
Email MFA code storage and request payloads.
"""

import re
from typing import Optional
from pydantic import BaseModel, field_validator
from sqlalchemy import Column, DateTime, Integer, String, func
from auth_provider.database import Base, generate_uuid

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class EmailMfaCode(Base):
    __tablename__ = "email_mfa_codes"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, nullable=False, index=True)
    code_hash = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    consumed_at = Column(DateTime, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())


class SendVerificationArgs(BaseModel):
    email: str
    callbackUrl: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value


class VerifyEmailArgs(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None

    @field_validator("email", "code")
    @classmethod
    def strip_value(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if isinstance(value, str) else value
