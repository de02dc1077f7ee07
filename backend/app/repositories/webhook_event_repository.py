"""Repository helpers for webhook event ledger."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.webhook_event import WebhookEvent
from app.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> Optional[WebhookEvent]:
        return self.find_one_by(source=source, event_id=event_id)
