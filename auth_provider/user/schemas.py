"""
ORM definitions for users and the session-layer bridging entities.
"""

from typing import Optional
from pydantic import BaseModel, field_validator
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    PrimaryKeyConstraint,
    String,
    func,
)
from auth_provider.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=True, index=True)
    email_verified = Column(DateTime, nullable=True)
    name = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Session(Base):
    __tablename__ = "sessions"

    session_token = Column(String, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expires = Column(DateTime, nullable=False)


class VerificationToken(Base):
    __tablename__ = "verification_tokens"
    __table_args__ = (PrimaryKeyConstraint("identifier", "token"),)

    identifier = Column(String, nullable=False)
    token = Column(String, nullable=False)
    expires = Column(DateTime, nullable=False)


class OnboardingArgs(BaseModel):
    name: str
    fullName: str

    @field_validator("name", "fullName")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def split_full_name(self) -> tuple[str, Optional[str]]:
        """
        Last word is the last name, everything before it the first name.
        """
        parts = self.fullName.split()
        if len(parts) == 1:
            return parts[0], None
        return " ".join(parts[:-1]), parts[-1]
