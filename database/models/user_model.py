# File: database/models/user_model.py
from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Boolean, JSON, func
from sqlalchemy.orm import relationship
from database.db import Base
import enum


class UserRole(str, enum.Enum):
    AUTHOR = "Author"
    REVIEWER = "Reviewer"
    ADMIN = "Admin"


class UserProfile(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True, index=True)  # Identity provider UID
    email = Column(String(320), nullable=True, index=True)
    display_name = Column(String(255), nullable=True)
    photo_url = Column(String(1024), nullable=True)

    # Completion fields, null until the profile form is submitted
    username = Column(String(20), unique=True, nullable=True, index=True)
    role = Column(Enum(UserRole, values_callable=lambda x: [e.value for e in x]), nullable=True)
    phone_number = Column(String(32), unique=True, nullable=True, index=True)

    institution = Column(String(255), nullable=True)
    researcher_id = Column(String(64), nullable=True)

    is_admin = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    # Relationships
    papers = relationship("Paper", back_populates="owner")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, index=True)  # UUID
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(64), nullable=False)  # e.g. "SET_STATUS", "TOGGLE_ADMIN"
    target_id = Column(String(128), nullable=True)  # paper id or user id
    payload = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)

    # Relationships
    user = relationship("UserProfile")
