# backend/app/services/slot_allocator.py
"""
Slot allocation for mentor availability.

Owns the ``is_booked`` flag of every AvailabilitySlot. ``reserve_slot`` is
the only way to set it. ``reserve_slot`` and ``release_slot`` commit
immediately so the reservation is visible to concurrent bookers before any
payment call is made; ``mark_slot_free`` leaves the commit to the caller
so a cancellation frees the slot atomically with the session.
"""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    AvailabilityOverlapException,
    InvalidRangeException,
    NotFoundException,
    PastDateException,
    SlotBookedException,
    SlotUnavailableException,
)
from ..core.timezone_utils import today_utc
from ..models.availability import AvailabilitySlot
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def _range(start: time, end: time) -> str:
    return f"{start:%H:%M}-{end:%H:%M}"


class SlotAllocator(BaseService):
    """Create, list, reserve and release mentor availability slots."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_availability_repository(db)

    @BaseService.measure_operation("create_slot")
    def create_slot(
        self, mentor_id: str, slot_date: date, start_time: time, end_time: time
    ) -> AvailabilitySlot:
        if end_time <= start_time:
            raise InvalidRangeException(start_time.isoformat(), end_time.isoformat())
        if slot_date < today_utc():
            raise PastDateException(slot_date.isoformat())

        conflicting = self.repository.find_overlapping(mentor_id, slot_date, start_time, end_time)
        if conflicting is not None:
            raise AvailabilityOverlapException(
                specific_date=slot_date.isoformat(),
                new_range=_range(start_time, end_time),
                conflicting_range=conflicting.time_range(),
            )

        with self.transaction():
            slot = self.repository.create(
                mentor_id=mentor_id,
                date=slot_date,
                start_time=start_time,
                end_time=end_time,
                is_booked=False,
            )
        self.log_operation("create_slot", mentor_id=mentor_id, slot_id=slot.id)
        return slot

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, slot_id: str, mentor_id: Optional[str] = None) -> None:
        slot = self.get_slot(slot_id)
        if mentor_id is not None and slot.mentor_id != mentor_id:
            # Other mentors' slots are reported as absent
            raise NotFoundException(f"Slot {slot_id} not found", code="SLOT_NOT_FOUND")
        if slot.is_booked:
            raise SlotBookedException(slot_id)
        with self.transaction():
            self.repository.delete(slot_id)
        self.log_operation("delete_slot", slot_id=slot_id)

    def get_slot(self, slot_id: str) -> AvailabilitySlot:
        slot = self.repository.get_by_id(slot_id)
        if slot is None:
            raise NotFoundException(f"Slot {slot_id} not found", code="SLOT_NOT_FOUND")
        return slot

    def list_slots(
        self,
        mentor_id: str,
        slot_date: Optional[date] = None,
        available_only: bool = False,
    ) -> List[AvailabilitySlot]:
        return self.repository.list_for_mentor(mentor_id, slot_date, available_only)

    @BaseService.measure_operation("reserve_slot")
    def reserve_slot(self, slot_id: str) -> AvailabilitySlot:
        """
        Flip the slot to booked, or fail with SlotUnavailable when already taken.

        Exactly one of any number of concurrent callers succeeds.
        """
        with self.transaction():
            reserved = self.repository.mark_booked_if_free(slot_id)
        if not reserved:
            if self.repository.get_by_id(slot_id) is None:
                raise NotFoundException(f"Slot {slot_id} not found", code="SLOT_NOT_FOUND")
            raise SlotUnavailableException(slot_id)
        self.log_operation("reserve_slot", slot_id=slot_id)
        return self.get_slot(slot_id)

    @BaseService.measure_operation("release_slot")
    def release_slot(self, slot_id: str) -> None:
        """Clear the booked flag. Releasing a free (or missing) slot is a no-op."""
        with self.transaction():
            self.mark_slot_free(slot_id)
        self.log_operation("release_slot", slot_id=slot_id)

    def mark_slot_free(self, slot_id: str) -> None:
        """
        Clear the booked flag without committing.

        For callers that free the slot in the same transaction as the
        session status change.
        """
        if not self.repository.mark_free(slot_id):
            self.logger.warning(f"release_slot: slot {slot_id} does not exist")
