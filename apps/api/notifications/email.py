"""Transactional email through the SendGrid v3 HTTP API."""

import logging
import re

import httpx

from apps.api.config import Settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
BATCH_SIZE = 1000

_TAG_RE = re.compile(r"<[^>]*>")


class EmailSender:
    """
    Minimal SendGrid client.

    Each recipient gets its own personalization so addresses are not
    disclosed to each other; recipients are sent in batches of 1000.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self._client = client
        self.timeout = timeout

    def _payload(self, recipients: list[str], subject: str, html: str, text: str) -> dict:
        return {
            "personalizations": [{"to": [{"email": r}]} for r in recipients],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> None:
        response = await client.post(
            SENDGRID_SEND_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def send_bulk(
        self,
        recipients: list[str],
        subject: str,
        html: str,
        text: str | None = None,
    ) -> int:
        """
        Send one message to many recipients.

        Returns:
            Number of recipients in batches SendGrid accepted

        Raises:
            httpx.HTTPError: a batch was rejected or SendGrid was unreachable
        """
        valid = [r for r in recipients if r and "@" in r]
        if not valid:
            return 0
        text = text or _TAG_RE.sub("", html)

        sent = 0
        if self._client is not None:
            for i in range(0, len(valid), BATCH_SIZE):
                batch = valid[i : i + BATCH_SIZE]
                await self._post(self._client, self._payload(batch, subject, html, text))
                sent += len(batch)
        else:
            async with httpx.AsyncClient() as client:
                for i in range(0, len(valid), BATCH_SIZE):
                    batch = valid[i : i + BATCH_SIZE]
                    await self._post(client, self._payload(batch, subject, html, text))
                    sent += len(batch)

        logger.info(f"Sent '{subject}' to {sent} recipients")
        return sent


def get_email_sender(settings: Settings) -> EmailSender | None:
    """Build a sender, or None when SendGrid is not configured."""
    if not settings.email_configured:
        return None
    return EmailSender(settings.sendgrid_api_key, settings.from_email)
