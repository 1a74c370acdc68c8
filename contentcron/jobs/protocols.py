"""Collaborator interfaces the job engine depends on.

The engine never touches content tables or mail transports directly; it only
talks to these seams. ``contentcron.content.service.ContentService`` and the
mailers in ``contentcron.mail`` are the shipped implementations.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from contentcron.content.types import Campaign, ContentItem
from contentcron.db.models import JobKind


@runtime_checkable
class ContentSource(Protocol):
    def list_items(self, kind: JobKind) -> list[ContentItem]:
        """Return every content item of ``kind``, whatever its status."""
        ...

    def publish_item(self, item_id: str) -> None:
        """Publish a blog post. Raises ``ContentNotFoundError`` if it is gone."""
        ...

    def get_campaign(self, item_id: str) -> Campaign:
        """Raises ``ContentNotFoundError`` if the campaign is gone."""
        ...

    def mark_campaign_delivered(self, item_id: str, recipient_count: int) -> None:
        ...


@runtime_checkable
class RecipientSource(Protocol):
    def active_recipients(self) -> list[str]:
        ...


@runtime_checkable
class Mailer(Protocol):
    max_recipients_per_call: int

    def send_batch(self, addresses: Sequence[str], subject: str, body: str) -> str:
        """Send one message to ``addresses`` and return the provider message id.

        Raises ``MailTransportError`` on any delivery failure, timeouts included.
        """
        ...
