"""
services/email_service.py
-------------------------
Outbound email through the Resend API.

Every call site treats email as best-effort: send() reports failure through
its return value and logs it; it never raises into business logic.

Without RESEND_API_KEY the service runs in MOCK mode and only logs.
"""

import asyncio
import html

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class EmailService:

    def __init__(self) -> None:
        self._use_mock = not bool(settings.RESEND_API_KEY)
        if not self._use_mock:
            import resend
            resend.api_key = settings.RESEND_API_KEY
            self._client = resend
        else:
            logger.info("EmailService in MOCK mode, set RESEND_API_KEY to deliver mail")

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        if self._use_mock:
            logger.info("Mock email", to=to, subject=subject)
            return True

        params = {
            "from": settings.EMAIL_FROM,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        try:
            # resend is a blocking client; keep the event loop free
            await asyncio.to_thread(self._client.Emails.send, params)
        except Exception as exc:
            logger.warning("Email delivery failed", to=to, subject=subject, error=str(exc))
            return False
        logger.info("Email sent", to=to, subject=subject)
        return True

    async def send_budget_alert(self, to: str, budget: int, message: str) -> bool:
        subject = "[SNACK] Budget alert"
        body = (
            "<h2>Budget alert</h2>"
            f"<p>Configured budget: <strong>{budget:,}</strong></p>"
            f"<p>Details: <strong>{html.escape(message)}</strong></p>"
        )
        return await self.send(to, subject, body)

    async def send_invitation(self, to: str, name: str, company_name: str, invite_url: str) -> bool:
        subject = f"[SNACK] You are invited to {company_name}"
        body = (
            f"<h2>Hello {html.escape(name)},</h2>"
            f"<p>You have been invited to join <strong>{html.escape(company_name)}</strong>.</p>"
            f'<p><a href="{html.escape(invite_url, quote=True)}">Accept the invitation</a></p>'
            f"<p>The link expires in {settings.INVITATION_EXPIRE_HOURS} hours.</p>"
        )
        return await self.send(to, subject, body)


email_service = EmailService()
