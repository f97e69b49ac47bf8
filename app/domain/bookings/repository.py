"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Department, EventType, Workspace


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def list_bookings(
        db: Session,
        workspace_id: int,
        search: Optional[str] = None,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        status: Optional[str] = None,
        event_type_id: Optional[str] = None,
        service_provider_id: Optional[str] = None,
        department_id: Optional[str] = None,
        order_by_created: bool = False,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[Booking], int]:
        """Filtered bookings (newest first) and the total count before paging"""
        query = (
            db.query(Booking)
            .options(joinedload(Booking.event_type), joinedload(Booking.contact))
            .filter(Booking.workspace_id == workspace_id)
        )

        if search:
            query = query.filter(Booking.invitee_name.ilike(f"%{search}%"))
        if range_start is not None:
            query = query.filter(Booking.start_at >= range_start)
        if range_end is not None:
            query = query.filter(Booking.start_at < range_end)
        if status:
            query = query.filter(Booking.status == status)
        if event_type_id:
            query = query.filter(Booking.event_type_id == event_type_id)
        if service_provider_id:
            query = query.filter(Booking.service_provider_id == service_provider_id)
        if department_id:
            query = query.filter(Booking.department_id == department_id)

        total = query.count()
        order_column = Booking.created_at if order_by_created else Booking.start_at
        query = query.order_by(order_column.desc(), Booking.id.desc())
        if offset is not None and limit is not None:
            query = query.offset(offset).limit(limit)
        return query.all(), total

    @staticmethod
    def list_active_bookings(
        db: Session,
        workspace_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        service_provider_id: Optional[str] = None,
    ) -> list[Booking]:
        """Non-cancelled bookings in start order, for public availability"""
        query = db.query(Booking).filter(
            Booking.workspace_id == workspace_id, Booking.status != "cancelled"
        )
        if range_start is not None:
            query = query.filter(Booking.start_at >= range_start)
        if range_end is not None:
            query = query.filter(Booking.start_at < range_end)
        if service_provider_id:
            query = query.filter(Booking.service_provider_id == service_provider_id)
        return query.order_by(Booking.start_at.asc()).all()

    @staticmethod
    def list_all_bookings(
        db: Session,
        search: Optional[str] = None,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        status: Optional[str] = None,
        event_type_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        sort_column=None,
        ascending: bool = False,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        """Bookings across every workspace; search also matches workspace names"""
        query = db.query(Booking).options(joinedload(Booking.event_type))

        if search:
            pattern = f"%{search}%"
            matching_workspaces = select(Workspace.id).where(Workspace.name.ilike(pattern))
            query = query.filter(
                or_(
                    Booking.invitee_name.ilike(pattern),
                    Booking.invitee_email.ilike(pattern),
                    Booking.workspace_id.in_(matching_workspaces),
                )
            )
        if range_start is not None:
            query = query.filter(Booking.start_at >= range_start)
        if range_end is not None:
            query = query.filter(Booking.start_at < range_end)
        if status:
            query = query.filter(Booking.status == status)
        if event_type_id:
            query = query.filter(Booking.event_type_id == event_type_id)
        if workspace_id:
            query = query.filter(Booking.workspace_id == workspace_id)

        total = query.count()
        column = sort_column if sort_column is not None else Booking.start_at
        query = query.order_by(column.asc() if ascending else column.desc(), Booking.id.asc())
        return query.offset(offset).limit(limit).all(), total

    @staticmethod
    def get_booking(db: Session, booking_id: int, workspace_id: int) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.workspace_id == workspace_id)
            .first()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, updates: dict[str, Any]) -> Booking:
        """Apply every provided field, including explicit nulls"""
        for key, value in updates.items():
            setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def delete_booking(db: Session, booking: Booking) -> None:
        db.delete(booking)
        db.commit()

    @staticmethod
    def get_event_type(db: Session, event_type_id: int) -> Optional[EventType]:
        return db.query(EventType).filter(EventType.id == event_type_id).first()

    @staticmethod
    def get_department(db: Session, department_id: int) -> Optional[Department]:
        return db.query(Department).filter(Department.id == department_id).first()

    @staticmethod
    def get_workspace(db: Session, workspace_id: int) -> Optional[Workspace]:
        return db.query(Workspace).filter(Workspace.id == workspace_id).first()
