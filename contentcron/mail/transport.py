from __future__ import annotations

import logging
from typing import Any, Sequence
from uuid import uuid4

import httpx

from contentcron.core.config import Settings

logger = logging.getLogger(__name__)


class MailTransportError(RuntimeError):
    pass


class ResendMailer:
    """Batch sender for the Resend HTTP API.

    One call sends a single message with every address in ``to``; the provider
    rejects more than ``max_recipients_per_call`` addresses per message.
    """

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        base_url: str = "https://api.resend.com",
        timeout_seconds: float = 30.0,
        max_recipients_per_call: int = 50,
        transport: httpx.BaseTransport | None = None,
    ):
        self.max_recipients_per_call = max_recipients_per_call
        self._from_address = from_address
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def send_batch(self, addresses: Sequence[str], subject: str, body: str) -> str:
        recipients = list(addresses)
        if not recipients:
            raise ValueError("Cannot send a batch with no recipients")
        if any(not address or not address.strip() for address in recipients):
            raise ValueError("Batch contains a blank recipient address")
        if len(recipients) > self.max_recipients_per_call:
            raise ValueError(
                f"Batch of {len(recipients)} recipients exceeds the per-call cap of {self.max_recipients_per_call}"
            )

        payload: dict[str, Any] = {
            "from": self._from_address,
            "to": recipients,
            "subject": subject,
            "html": body,
        }
        try:
            response = self._client.post("/emails", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise MailTransportError(f"Mail API timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise MailTransportError(
                f"Mail API returned {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MailTransportError(f"Mail API request failed: {exc}") from exc

        try:
            message_id = response.json().get("id")
        except ValueError as exc:
            raise MailTransportError("Mail API returned a non-JSON body") from exc
        return str(message_id) if message_id else ""

    def close(self) -> None:
        self._client.close()


class LogMailer:
    """Stand-in used when no mail API key is configured; only logs the send."""

    def __init__(self, *, max_recipients_per_call: int = 50):
        self.max_recipients_per_call = max_recipients_per_call

    def send_batch(self, addresses: Sequence[str], subject: str, body: str) -> str:
        if len(addresses) > self.max_recipients_per_call:
            raise ValueError(
                f"Batch of {len(addresses)} recipients exceeds the per-call cap of {self.max_recipients_per_call}"
            )
        message_id = f"log-{uuid4()}"
        logger.info("Mail API key not configured; logged send of %r to %d recipients", subject, len(addresses))
        return message_id


def build_mailer(settings: Settings) -> ResendMailer | LogMailer:
    if settings.mail_api_key is None:
        return LogMailer(max_recipients_per_call=settings.mail_max_recipients_per_call)
    return ResendMailer(
        api_key=settings.mail_api_key,
        from_address=settings.mail_from_address,
        base_url=settings.mail_api_base_url,
        timeout_seconds=settings.mail_send_timeout_seconds,
        max_recipients_per_call=settings.mail_max_recipients_per_call,
    )
