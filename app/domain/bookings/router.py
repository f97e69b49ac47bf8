"""Booking router - FastAPI endpoints for workspace booking operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_current_workspace_id
from ...database import get_db
from ...services.identity import IdentityClient, IdentityUser, get_identity
from .schemas import BookingCreate, BookingUpdate, EmergencyBookingCreate, booking_to_dict
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(
    db: Session = Depends(get_db), identity: IdentityClient = Depends(get_identity)
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, identity)


@router.get("")
async def list_bookings(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    event_type_id: Optional[str] = Query(None),
    service_provider_id: Optional[str] = Query(None),
    department_id: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings for the caller's workspace, newest first"""
    result = await service.list_bookings(
        workspace_id,
        page=page,
        limit=limit,
        search=search,
        date=date,
        start_date=start_date,
        end_date=end_date,
        status=status,
        event_type_id=event_type_id,
        service_provider_id=service_provider_id,
        department_id=department_id,
        sort=sort,
    )
    return {
        "data": [booking_to_dict(b, include_relations=True) for b in result["bookings"]],
        "calendar_busy": result["calendar_busy"],
        "pagination": result["pagination"],
    }


@router.post("")
async def create_booking(
    data: BookingCreate,
    current_user: IdentityUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking after validating the slot against availability"""
    booking = await service.create_booking(current_user.workspace_id, data, current_user.id)
    return {"data": booking_to_dict(booking)}


@router.patch("")
async def update_booking(
    data: BookingUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.update_booking(workspace_id, data)
    return {"data": booking_to_dict(booking)}


@router.delete("")
async def delete_booking(
    id: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    service: BookingService = Depends(get_booking_service),
):
    if not id:
        raise HTTPException(status_code=400, detail="Booking ID is required")
    service.delete_booking(workspace_id, id)
    return {"success": True}


@router.post("/emergency")
async def create_emergency_booking(
    data: EmergencyBookingCreate,
    current_user: IdentityUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Walk-in/urgent booking stamped at the current time, no availability check"""
    booking = service.create_emergency_booking(current_user.workspace_id, data, current_user.id)
    return {"data": booking_to_dict(booking)}
