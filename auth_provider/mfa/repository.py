"""
Email MFA code repository.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from auth_provider.database.repository import Repository
from auth_provider.mfa.schemas import EmailMfaCode


class EmailMfaCodeRepository(Repository):
    async def create(self, code: EmailMfaCode) -> EmailMfaCode:
        return await self._add(code)

    async def find_by_id(self, code_id: str) -> Optional[EmailMfaCode]:
        return (
            await self.session.execute(select(EmailMfaCode).where(EmailMfaCode.id == code_id))
        ).scalar_one_or_none()

    async def find_latest_unconsumed(self, email: str) -> Optional[EmailMfaCode]:
        return (
            (
                await self.session.execute(
                    select(EmailMfaCode)
                    .where(EmailMfaCode.email == email, EmailMfaCode.consumed_at.is_(None))
                    .order_by(EmailMfaCode.created_at.desc(), EmailMfaCode.expires_at.desc())
                    .limit(1)
                )
            )
            .scalars()
            .first()
        )

    async def mark_consumed(self, code_id: str, now: datetime) -> bool:
        result = await self.session.execute(
            update(EmailMfaCode)
            .where(EmailMfaCode.id == code_id, EmailMfaCode.consumed_at.is_(None))
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def increment_attempt_count(self, code_id: str) -> None:
        await self.session.execute(
            update(EmailMfaCode)
            .where(EmailMfaCode.id == code_id)
            .values(attempt_count=EmailMfaCode.attempt_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def delete_unconsumed_by_email(self, email: str) -> int:
        return await self._delete_where(
            delete(EmailMfaCode).where(
                EmailMfaCode.email == email, EmailMfaCode.consumed_at.is_(None)
            )
        )

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(delete(EmailMfaCode).where(EmailMfaCode.expires_at <= now))
