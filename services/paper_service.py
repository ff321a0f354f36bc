# File: services/paper_service.py

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clients.storage_client import LocalObjectStorage
from database.models.paper_model import Paper, PaperStatus, PaymentOption
from database.models.user_model import UserProfile
from services import audit_service
from services.exceptions import (
    ConflictError,
    ExternalServiceError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    translate_db_error,
)
from services.paper_status import PAYMENT_WINDOW, as_utc, is_payment_overdue, utcnow
from services.user_service import is_admin_user

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

ALLOWED_MIME_TYPES = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}

# Fields the generic partial update may touch
UPDATABLE_PAPER_FIELDS = {
    "status",
    "admin_feedback",
    "plagiarism_score",
    "plagiarism_highlights",
    "acceptance_probability",
    "acceptance_reasoning",
}


@dataclass
class UploadedFile:
    name: str
    content_type: str
    content: bytes


def _commit(db: Session, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{context} failed: {e}")
        raise translate_db_error(e) from e


def validate_upload(upload: Optional[UploadedFile]) -> UploadedFile:
    if upload is None or not upload.name:
        raise InvalidInputError("A paper file is required.")

    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    extension = os.path.splitext(upload.name)[1].lower()
    if content_type not in ALLOWED_MIME_TYPES:
        # Some browsers send octet-stream; fall back to the extension
        matches = [m for m, ext in ALLOWED_MIME_TYPES.items() if ext == extension]
        if not matches:
            raise InvalidInputError("Only PDF or DOCX files are allowed.")
        content_type = matches[0]

    if len(upload.content) == 0:
        raise InvalidInputError("The uploaded file is empty.")
    if len(upload.content) > MAX_UPLOAD_BYTES:
        raise InvalidInputError(f"File size must be less than {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.")

    return UploadedFile(name=upload.name, content_type=content_type, content=upload.content)


# ------------------------------------------------------------
# CREATE
# ------------------------------------------------------------
def submit_paper(
    db: Session,
    storage: LocalObjectStorage,
    submission,
    upload: Optional[UploadedFile],
    owner_id: str,
    caller_id: str,
    now: Optional[datetime] = None,
) -> Paper:
    """
    Stores the file, then writes the paper row with the initial status implied
    by the payment option:
      payLater -> Payment Pending, due two hours from now
      payNow   -> Submitted, paid and submitted now
    """
    if caller_id != owner_id:
        raise PermissionDeniedError("You can only submit papers for your own account.")

    upload = validate_upload(upload)
    now = as_utc(now) or utcnow()

    stored = storage.upload(upload.content, upload.name, upload.content_type, owner_id)

    pay_now = submission.payment_option == PaymentOption.PAY_NOW
    paper = Paper(
        id=str(uuid.uuid4()),
        user_id=owner_id,
        title=submission.title,
        abstract=submission.abstract,
        authors=list(submission.authors),
        keywords=list(submission.keywords),
        file_name=stored.name,
        file_url=stored.url,
        file_key=stored.key,
        file_mime_type=stored.content_type,
        upload_date=now,
        status=PaperStatus.SUBMITTED if pay_now else PaperStatus.PAYMENT_PENDING,
        payment_option=submission.payment_option,
        payment_due_date=None if pay_now else now + PAYMENT_WINDOW,
        paid_at=now if pay_now else None,
        submission_date=now if pay_now else None,
    )
    db.add(paper)

    try:
        _commit(db, f"Paper creation for {owner_id}")
    except Exception:
        # Do not leave an orphaned file behind
        try:
            storage.delete(stored.key)
        except ExternalServiceError as cleanup_error:
            logger.warning(f"Orphaned upload {stored.key} could not be removed: {cleanup_error.message}")
        raise

    db.refresh(paper)
    logger.info(f"Paper {paper.id} submitted by {owner_id} with status {paper.status.value}")
    return paper


# ------------------------------------------------------------
# READ
# ------------------------------------------------------------
def get_paper(db: Session, paper_id: str) -> Paper:
    paper = db.query(Paper).filter(Paper.id == paper_id).first()
    if paper is None:
        raise NotFoundError("Paper not found")
    return paper


def ensure_can_view(paper: Paper, user: Optional[UserProfile]) -> None:
    if paper.status == PaperStatus.PUBLISHED:
        return
    if user is not None and (paper.user_id == user.id or is_admin_user(user)):
        return
    raise PermissionDeniedError("You do not have permission to view this paper.")


def list_papers_for_owner(db: Session, owner_id: str, status: Optional[PaperStatus] = None) -> List[Paper]:
    query = db.query(Paper).filter(Paper.user_id == owner_id)
    if status is not None:
        query = query.filter(Paper.status == status)
    return query.order_by(Paper.upload_date.desc()).all()


def list_all_papers(
    db: Session,
    status: Optional[PaperStatus] = None,
    author_name: Optional[str] = None,
) -> List[Paper]:
    query = db.query(Paper)
    if status is not None:
        query = query.filter(Paper.status == status)
    papers = query.order_by(Paper.upload_date.desc()).all()

    if author_name:
        # Author lists are JSON columns; matched in Python
        needle = author_name.strip().lower()
        papers = [p for p in papers if any(needle in (a or "").lower() for a in (p.authors or []))]
    return papers


def list_published_papers(db: Session, author_name: Optional[str] = None) -> List[Paper]:
    """Public listing; optionally narrowed by a case-insensitive author substring."""
    return list_all_papers(db, status=PaperStatus.PUBLISHED, author_name=author_name)


# ------------------------------------------------------------
# UPDATE
# ------------------------------------------------------------
def _coerce_status(value) -> PaperStatus:
    try:
        return PaperStatus(value)
    except ValueError:
        raise InvalidInputError(f"Unknown paper status: {value}")


def set_status(
    db: Session,
    paper_id: str,
    new_status: PaperStatus,
    paid_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    actor_id: Optional[str] = None,
) -> Paper:
    """
    Unconditional status write. Any status may follow any other; concurrent
    writers simply overwrite each other.
    """
    new_status = _coerce_status(new_status)
    now = as_utc(now) or utcnow()
    paper = get_paper(db, paper_id)
    previous = paper.status

    paper.status = new_status
    if new_status == PaperStatus.SUBMITTED and paid_at is not None:
        paper.paid_at = as_utc(paid_at)
        paper.submission_date = now
        paper.payment_due_date = None
    elif new_status == PaperStatus.PAYMENT_PENDING and paper.payment_due_date is None:
        paper.payment_due_date = now + PAYMENT_WINDOW

    if actor_id:
        audit_service.log_action(
            db,
            user_id=actor_id,
            action=audit_service.SET_STATUS,
            target_id=paper_id,
            payload={"from": previous.value if previous else None, "to": new_status.value},
        )

    _commit(db, f"Status update for paper {paper_id}")
    db.refresh(paper)
    logger.info(f"Paper {paper_id} status {previous.value if previous else None} -> {new_status.value}")
    return paper


def set_fields(db: Session, paper_id: str, fields: Dict[str, Any]) -> Paper:
    unknown = set(fields) - UPDATABLE_PAPER_FIELDS
    if unknown:
        raise InvalidInputError(f"These paper fields cannot be updated: {', '.join(sorted(unknown))}")
    if not fields:
        raise InvalidInputError("No update data provided")

    paper = get_paper(db, paper_id)
    for attr, value in fields.items():
        if attr == "status":
            value = _coerce_status(value)
        setattr(paper, attr, value)

    _commit(db, f"Field update for paper {paper_id}")
    db.refresh(paper)
    return paper


def submit_feedback(db: Session, paper_id: str, feedback: str, actor_id: Optional[str] = None) -> Paper:
    feedback = (feedback or "").strip()
    if not feedback:
        raise InvalidInputError("Feedback text is required.")

    if actor_id:
        audit_service.log_action(
            db,
            user_id=actor_id,
            action=audit_service.ADMIN_FEEDBACK,
            target_id=paper_id,
            payload={"length": len(feedback)},
        )
    return set_fields(db, paper_id, {"admin_feedback": feedback, "status": PaperStatus.ACTION_REQUIRED})


def complete_payment(db: Session, paper_id: str, caller: UserProfile, now: Optional[datetime] = None) -> Paper:
    now = as_utc(now) or utcnow()
    paper = get_paper(db, paper_id)

    if paper.user_id != caller.id and not is_admin_user(caller):
        raise PermissionDeniedError("You can only pay for your own papers.")
    if paper.status != PaperStatus.PAYMENT_PENDING:
        raise ConflictError("This paper is not awaiting payment.")
    if is_payment_overdue(paper, now):
        raise ConflictError("The payment window for this paper has closed.")

    return set_status(db, paper_id, PaperStatus.SUBMITTED, paid_at=now, now=now)


def reject_overdue(db: Session, paper_id: str, actor_id: str, now: Optional[datetime] = None) -> Paper:
    now = as_utc(now) or utcnow()
    paper = get_paper(db, paper_id)
    if not is_payment_overdue(paper, now):
        raise ConflictError("Only papers with overdue payment can be rejected this way.")

    audit_service.log_action(
        db,
        user_id=actor_id,
        action=audit_service.REJECT_OVERDUE,
        target_id=paper_id,
        payload={"payment_due_date": as_utc(paper.payment_due_date).isoformat()},
    )
    paper = set_status(db, paper_id, PaperStatus.REJECTED, now=now)
    logger.info(
        f"NOTIFY owner={paper.user_id} paper={paper.id}: rejected due to non-payment (email not sent, no mail relay configured)"
    )
    return paper


# ------------------------------------------------------------
# DELETE
# ------------------------------------------------------------
def delete_paper(db: Session, storage: LocalObjectStorage, paper_id: str, actor_id: Optional[str] = None) -> None:
    paper = get_paper(db, paper_id)

    try:
        storage.delete(paper.file_key)
    except Exception as e:
        # Best effort: the row is removed even when the file is not
        logger.error(f"Failed to delete stored file {paper.file_key} for paper {paper_id}: {e}")

    if actor_id:
        audit_service.log_action(
            db,
            user_id=actor_id,
            action=audit_service.DELETE_PAPER,
            target_id=paper_id,
            payload={"title": paper.title},
        )
    db.delete(paper)
    _commit(db, f"Deletion of paper {paper_id}")
    logger.info(f"Paper {paper_id} deleted")
