"""Account emails sent through the Resend API.

Plain-text bodies only. The notifier never builds URLs itself: callers
pass a finished link produced by their own ``token -> url`` function.
"""

import logging
from dataclasses import dataclass

import httpx

from authcore.core.config import Settings, settings
from authcore.core.errors import DeliveryError

logger = logging.getLogger(__name__)

_RULE = "=" * 30


@dataclass(frozen=True)
class DeliveryReceipt:
    """Proof that the provider accepted a message.

    Attributes:
        recipient: Address the message was sent to.
        subject: Message subject.
        message_id: Provider-assigned id.
    """

    recipient: str
    subject: str
    message_id: str


def _framed(greeting_email: str, lines: list[str]) -> str:
    body = "\n\n".join(lines)
    return f"\n{_RULE}\n\nHi {greeting_email},\n\n{body}\n\n{_RULE}\n"


class UserNotifier:
    """Delivers account emails.

    Args:
        config: Settings providing sender and Resend credentials.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        config: Settings = settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    async def deliver(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        """Send one plain-text email.

        Args:
            recipient: Destination address.
            subject: Subject line.
            body: Plain-text body.

        Returns:
            DeliveryReceipt with the provider's message id.

        Raises:
            DeliveryError: If the request fails or Resend rejects it.
        """
        sender = f"{self._config.email_from_name} <{self._config.email_from}>"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    self._config.resend_api_url,
                    headers={
                        "Authorization": (
                            f"Bearer {self._config.resend_api_key.get_secret_value()}"
                        ),
                    },
                    json={
                        "from": sender,
                        "to": recipient,
                        "subject": subject,
                        "text": body,
                    },
                    timeout=self._config.email_timeout_seconds,
                )
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to send %r email", subject, exc_info=True)
            raise DeliveryError() from exc

        return DeliveryReceipt(
            recipient=recipient,
            subject=subject,
            message_id=str(payload.get("id", "")),
        )

    async def deliver_update_email_instructions(
        self, recipient: str, url: str
    ) -> DeliveryReceipt:
        """Instructions for confirming a new email address."""
        body = _framed(
            recipient,
            [
                "You can change your email by visiting the URL below:",
                url,
                "If you didn't request this change, please ignore this.",
            ],
        )
        return await self.deliver(recipient, "Update email instructions", body)

    async def deliver_confirmation_instructions(
        self, recipient: str, url: str
    ) -> DeliveryReceipt:
        """Instructions for confirming a new account."""
        body = _framed(
            recipient,
            [
                "You can confirm your account by visiting the URL below:",
                url,
                "If you didn't create an account with us, please ignore this.",
            ],
        )
        return await self.deliver(recipient, "Confirmation instructions", body)

    async def deliver_login_instructions(
        self, recipient: str, url: str
    ) -> DeliveryReceipt:
        """Magic link for signing in without a password."""
        body = _framed(
            recipient,
            [
                "You can log into your account by visiting the URL below:",
                url,
                "If you didn't request this email, please ignore this.",
            ],
        )
        return await self.deliver(recipient, "Log in instructions", body)
