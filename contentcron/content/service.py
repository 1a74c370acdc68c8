from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from contentcron.content.types import Campaign, ContentItem
from contentcron.db.models import (
    BlogPost,
    BlogStatus,
    CampaignStatus,
    EmailCampaign,
    JobKind,
    Subscriber,
    SubscriberStatus,
)


class ContentNotFoundError(RuntimeError):
    pass


class ContentUnavailableError(RuntimeError):
    pass


class ContentService:
    """SQL-backed content and recipient source for the job engine."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def list_items(self, kind: JobKind) -> list[ContentItem]:
        with self._session_factory() as session:
            if kind == JobKind.BLOG:
                posts = session.scalars(select(BlogPost).order_by(BlogPost.created_at.desc(), BlogPost.id.asc())).all()
                return [
                    ContentItem(
                        id=post.id,
                        kind=JobKind.BLOG,
                        status=post.status.value,
                        scheduled_at=post.scheduled_at,
                        metadata={"title": post.title, "slug": post.slug},
                    )
                    for post in posts
                ]
            if kind == JobKind.EMAIL:
                campaigns = session.scalars(
                    select(EmailCampaign).order_by(EmailCampaign.created_at.desc(), EmailCampaign.id.asc())
                ).all()
                return [
                    ContentItem(
                        id=campaign.id,
                        kind=JobKind.EMAIL,
                        status=campaign.status.value,
                        scheduled_at=campaign.scheduled_at,
                        metadata={"subject": campaign.subject},
                    )
                    for campaign in campaigns
                ]
        raise ValueError(f"Unsupported content kind: {kind}")

    def publish_item(self, item_id: str) -> None:
        with self._session_factory() as session:
            post = session.get(BlogPost, item_id)
            if post is None:
                raise ContentNotFoundError(f"Blog post not found: {item_id}")
            now = self._now()
            post.status = BlogStatus.PUBLISHED
            post.published_at = now
            post.updated_at = now
            session.commit()

    def get_campaign(self, item_id: str) -> Campaign:
        with self._session_factory() as session:
            campaign = session.get(EmailCampaign, item_id)
            if campaign is None:
                raise ContentNotFoundError(f"Email campaign not found: {item_id}")
            return Campaign(id=campaign.id, subject=campaign.subject, body=campaign.content)

    def mark_campaign_delivered(self, item_id: str, recipient_count: int) -> None:
        if recipient_count < 0:
            raise ValueError("recipient_count must be >= 0")
        with self._session_factory() as session:
            campaign = session.get(EmailCampaign, item_id)
            if campaign is None:
                raise ContentNotFoundError(f"Email campaign not found: {item_id}")
            now = self._now()
            campaign.status = CampaignStatus.SENT
            campaign.recipients = recipient_count
            campaign.sent_at = now
            campaign.updated_at = now
            session.commit()

    def active_recipients(self) -> list[str]:
        with self._session_factory() as session:
            emails = session.scalars(
                select(Subscriber.email)
                .where(Subscriber.status == SubscriberStatus.ACTIVE)
                .order_by(Subscriber.id.asc())
            ).all()
        return [email.strip() for email in emails if email and email.strip()]
