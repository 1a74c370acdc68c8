from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from contentcron.db.models import JobKind


@dataclass(slots=True)
class ContentItem:
    """A blog post or campaign as seen by sync.

    ``scheduled_at`` is left as whatever the owning source stores; sync is
    responsible for interpreting it.
    """

    id: str
    kind: JobKind
    status: str
    scheduled_at: datetime | str | None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Campaign:
    id: str
    subject: str | None
    body: str | None
