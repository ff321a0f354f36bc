# File: database/models/paper_model.py
from sqlalchemy import Column, String, Text, JSON, Float, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import relationship
from database.db import Base
import enum


class PaperStatus(str, enum.Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    ACTION_REQUIRED = "Action Required"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    PAYMENT_PENDING = "Payment Pending"
    PUBLISHED = "Published"


class PaymentOption(str, enum.Enum):
    PAY_NOW = "payNow"
    PAY_LATER = "payLater"


class Paper(Base):
    __tablename__ = "papers"

    id = Column(String(36), primary_key=True, index=True)  # UUID
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False, index=True)

    # Core metadata
    title = Column(String(512), nullable=False)
    abstract = Column(Text, nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    keywords = Column(JSON, nullable=False, default=list)

    # Stored file
    file_name = Column(String(512), nullable=False)
    file_url = Column(String(1024), nullable=False)
    file_key = Column(String(1024), nullable=False)
    file_mime_type = Column(String(128), nullable=False)
    upload_date = Column(DateTime(timezone=True), nullable=False, index=True)

    status = Column(
        Enum(PaperStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PaperStatus.SUBMITTED,
        index=True
    )

    # AI check results
    plagiarism_score = Column(Float, nullable=True)
    plagiarism_highlights = Column(JSON, nullable=True)
    acceptance_probability = Column(Float, nullable=True)
    acceptance_reasoning = Column(Text, nullable=True)

    admin_feedback = Column(Text, nullable=True)

    # Payment
    payment_option = Column(Enum(PaymentOption, values_callable=lambda x: [e.value for e in x]), nullable=True)
    submission_date = Column(DateTime(timezone=True), nullable=True)
    payment_due_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    # Relationships
    owner = relationship("UserProfile", back_populates="papers")
