from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .utils.date_timezone import utcnow


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    type = Column(String(50), nullable=True)  # Doctor, Salon, Artist
    logo_url = Column(String(1000), nullable=True)
    billing_customer_id = Column(String(255), nullable=True)
    # Legacy brand colors; configurations.settings.general takes precedence
    primary_color = Column(String(7), nullable=True)
    accent_color = Column(String(7), nullable=True)
    owner_id = Column(String(64), index=True, nullable=True)  # identity provider user id
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    configuration = relationship(
        "Configuration", back_populates="workspace", uselist=False, cascade="all, delete-orphan"
    )


class Configuration(Base):
    __tablename__ = "configurations"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(
        Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    workspace = relationship("Workspace", back_populates="configuration")


class EventType(Base):
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    owner_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    buffer_before = Column(Integer, nullable=True)
    buffer_after = Column(Integer, nullable=True)
    location_type = Column(String(50), nullable=True)
    location_value = Column(String(500), nullable=True)
    is_public = Column(Boolean, default=False)
    settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    event_type_id = Column(Integer, ForeignKey("event_types.id", ondelete="SET NULL"), nullable=True)
    service_provider_id = Column(String(64), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    host_user_id = Column(String(64), nullable=True)
    invitee_name = Column(String(255), nullable=False)
    invitee_email = Column(String(255), nullable=True)
    invitee_phone = Column(String(50), nullable=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    start_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    end_at = Column(DateTime, nullable=True)
    status = Column(String(50), default="pending", nullable=False)
    location = Column(String(500), nullable=True)
    payment_id = Column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    meta_data = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    event_type = relationship("EventType")
    contact = relationship("Contact")


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("workspace_id", "provider", name="uq_integrations_workspace_provider"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    provider = Column(String(50), nullable=False)  # google_calendar, zoom
    # OAuth tokens (encrypted)
    credentials = Column(JSON, nullable=False, default=dict)
    config = Column(JSON, nullable=True)
    provider_user_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    meta_data = Column(JSON, nullable=True)  # {"services": [service ids]}
    created_at = Column(DateTime, default=utcnow)


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Invite(Base):
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), index=True)
    email = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)
    departments = Column(JSON, default=list)
    token = Column(String(128), unique=True, index=True, nullable=False)
    invited_by = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class OtpVerification(Base):
    __tablename__ = "otp_verifications"

    id = Column(Integer, primary_key=True, index=True)
    identifier = Column(String(255), index=True, nullable=False)  # normalized email or phone digits
    code = Column(String(10), nullable=False)
    type = Column(String(20), nullable=False)  # email, phone
    attempts = Column(Integer, default=0, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
