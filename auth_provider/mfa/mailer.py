"""
Outbound verification email via the SendGrid v3 mail API.
"""

import asyncio
from datetime import datetime
from functools import lru_cache

import aiohttp
import backoff
from loguru import logger
from auth_provider.config import settings

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailDeliveryError(Exception):
    pass


class SendGridMailer:
    def __init__(self, api_key: str = None, template_id: str = None, sender: str = None):
        self.api_key = api_key or settings.sendgrid_api_key
        self.template_id = template_id or settings.sendgrid_template_id
        self.sender = sender or settings.email_sender

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.template_id)

    def build_payload(
        self,
        email: str,
        code: str,
        magic_link: str,
        expires_at: datetime,
        expires_in_minutes: int,
    ) -> dict:
        return {
            "personalizations": [
                {
                    "to": [{"email": email}],
                    "dynamic_template_data": {
                        "code": code,
                        "magic_link": magic_link,
                        "expires_at": expires_at.isoformat() + "Z",
                        "expires_in_minutes": expires_in_minutes,
                    },
                }
            ],
            "from": {"email": self.sender},
            "template_id": self.template_id,
        }

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientConnectionError, asyncio.TimeoutError),
        max_tries=3,
    )
    async def _post(self, payload: dict):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=15)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(SENDGRID_URL, json=payload, headers=headers) as response:
                if response.status >= 300:
                    body = await response.text()
                    raise EmailDeliveryError(
                        f"SendGrid rejected message: status={response.status} body={body[:200]}"
                    )

    async def send_verification_email(
        self,
        email: str,
        code: str,
        magic_link: str,
        expires_at: datetime,
        expires_in_minutes: int,
    ):
        if not self.configured:
            if settings.is_production:
                raise EmailDeliveryError("SendGrid is not configured")
            logger.warning(f"SendGrid is not configured, skipping verification email to {email}")
            return
        try:
            await self._post(
                self.build_payload(email, code, magic_link, expires_at, expires_in_minutes)
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise EmailDeliveryError(f"Failed to reach SendGrid: {exc}") from exc
        logger.info(f"Sent verification email to {email}")


@lru_cache()
def get_mailer() -> SendGridMailer:
    return SendGridMailer()
