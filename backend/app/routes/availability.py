# backend/app/routes/availability.py
"""
Availability routes for mentors publishing bookable slots.

Endpoints:
    POST   /availability                     → Publish a slot for the caller
    DELETE /availability/{slot_id}           → Remove an unbooked slot
    GET    /mentors/{mentor_id}/availability → List a mentor's slots
"""

from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from starlette.concurrency import run_in_threadpool

from ..api.dependencies.auth import get_current_user_id
from ..api.dependencies.services import get_slot_allocator
from ..core.exceptions import DomainException
from ..schemas.availability import (
    AvailabilitySlotCreate,
    AvailabilitySlotList,
    AvailabilitySlotResponse,
)
from ..services.slot_allocator import SlotAllocator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/availability",
    response_model=AvailabilitySlotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_availability_slot(
    payload: AvailabilitySlotCreate,
    current_user_id: str = Depends(get_current_user_id),
    slots: SlotAllocator = Depends(get_slot_allocator),
) -> AvailabilitySlotResponse:
    try:
        slot = await run_in_threadpool(
            slots.create_slot,
            current_user_id,
            payload.date,
            payload.start_time,
            payload.end_time,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return AvailabilitySlotResponse.model_validate(slot)


@router.delete("/availability/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability_slot(
    slot_id: str,
    current_user_id: str = Depends(get_current_user_id),
    slots: SlotAllocator = Depends(get_slot_allocator),
) -> Response:
    try:
        await run_in_threadpool(slots.delete_slot, slot_id, current_user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/mentors/{mentor_id}/availability", response_model=AvailabilitySlotList)
async def list_mentor_availability(
    mentor_id: str,
    slot_date: Optional[date] = Query(None, alias="date"),
    available_only: bool = Query(False),
    slots: SlotAllocator = Depends(get_slot_allocator),
) -> AvailabilitySlotList:
    """Public listing; mentees browse slots before booking."""
    rows = await run_in_threadpool(slots.list_slots, mentor_id, slot_date, available_only)
    return AvailabilitySlotList(
        mentor_id=mentor_id,
        slots=[AvailabilitySlotResponse.model_validate(row) for row in rows],
    )
