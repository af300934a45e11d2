from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_uuid


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    scheduled_at = Column(DateTime, index=True, nullable=False)
    end_time = Column(DateTime, nullable=False)
    total_duration = Column(Integer, default=30, nullable=False)  # minutes
    total_price = Column(Float, default=0, nullable=False)
    discount = Column(Float, default=0, nullable=False)
    final_price = Column(Float, default=0, nullable=False)
    # PENDING, CONFIRMED, WAITING, IN_PROGRESS, COMPLETED, CANCELLED, NO_SHOW
    status = Column(String(20), default="PENDING", index=True, nullable=False)
    source = Column(String(20), default="ADMIN", nullable=False)  # ADMIN, ONLINE, WHATSAPP, PHONE
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)

    # Recurrence
    recurrence_group_id = Column(String(36), index=True, nullable=True)
    recurrence_index = Column(Integer, nullable=True)
    recurrence_rule = Column(Text, nullable=True)  # human readable description

    # Status timestamps
    confirmed_at = Column(DateTime, nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    no_show_at = Column(DateTime, nullable=True)

    # Cancellation
    cancellation_reason = Column(String(50), nullable=True)
    cancellation_description = Column(Text, nullable=True)
    cancelled_by_client = Column(Boolean, default=False, nullable=False)
    hours_before_scheduled = Column(Float, nullable=True)

    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    services = relationship(
        "AppointmentService", back_populates="appointment", cascade="all, delete-orphan"
    )
    customer = relationship("Customer")
    professional = relationship("Professional")


class AppointmentService(Base):
    """Service line on an appointment, with price and duration snapshot"""

    __tablename__ = "appointment_services"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), index=True, nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), index=True, nullable=False)
    service_name = Column(String(255), nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float, default=0, nullable=False)
    duration = Column(Integer, default=30, nullable=False)
    custom_price = Column(Float, nullable=True)

    appointment = relationship("Appointment", back_populates="services")
    service = relationship("Service")

    @property
    def line_total(self) -> float:
        unit = self.custom_price if self.custom_price is not None else self.price
        return round(unit * self.quantity, 2)
