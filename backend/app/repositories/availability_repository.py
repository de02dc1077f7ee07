# backend/app/repositories/availability_repository.py
"""
Availability Repository for ThoughtCloud

Data access for mentor availability slots. The reserve/release pair is the
only code that writes ``is_booked``; reserve is a single conditional UPDATE
so two concurrent bookings of one slot cannot both succeed.
"""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilitySlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilitySlot]):
    """Repository for availability slot data access."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilitySlot)

    def list_for_mentor(
        self,
        mentor_id: str,
        on_date: Optional[date] = None,
        available_only: bool = False,
    ) -> List[AvailabilitySlot]:
        query = self._build_query().filter(AvailabilitySlot.mentor_id == mentor_id)
        if on_date is not None:
            query = query.filter(AvailabilitySlot.date == on_date)
        if available_only:
            query = query.filter(AvailabilitySlot.is_booked.is_(False))
        query = query.order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
        return self._execute_query(query)

    def find_overlapping(
        self, mentor_id: str, on_date: date, start: time, end: time
    ) -> Optional[AvailabilitySlot]:
        """First slot of the mentor on ``on_date`` intersecting ``[start, end)``."""
        try:
            return (
                self._build_query()
                .filter(
                    AvailabilitySlot.mentor_id == mentor_id,
                    AvailabilitySlot.date == on_date,
                    AvailabilitySlot.start_time < end,
                    AvailabilitySlot.end_time > start,
                )
                .order_by(AvailabilitySlot.start_time)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking slot overlap: {str(e)}")
            raise RepositoryException(f"Failed to check slot overlap: {str(e)}")

    def mark_booked_if_free(self, slot_id: str) -> bool:
        """Atomically flip ``is_booked`` false -> true. Returns False when nothing matched."""
        try:
            updated = (
                self.db.query(AvailabilitySlot)
                .filter(AvailabilitySlot.id == slot_id, AvailabilitySlot.is_booked.is_(False))
                .update({AvailabilitySlot.is_booked: True}, synchronize_session="fetch")
            )
            return bool(updated)
        except SQLAlchemyError as e:
            self.logger.error(f"Error reserving slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to reserve slot: {str(e)}")

    def mark_free(self, slot_id: str) -> bool:
        try:
            updated = (
                self.db.query(AvailabilitySlot)
                .filter(AvailabilitySlot.id == slot_id)
                .update({AvailabilitySlot.is_booked: False}, synchronize_session="fetch")
            )
            return bool(updated)
        except SQLAlchemyError as e:
            self.logger.error(f"Error releasing slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to release slot: {str(e)}")
