# api/routers/papers.py
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import List, Optional
from urllib.parse import quote
import asyncio
import logging

from api.dependencies.auth import get_current_admin, get_current_user, get_db, get_optional_user, get_storage
from api.models.paper_models import (
    FeedbackRequest,
    PaperResponse,
    PaperStatsResponse,
    PaperSubmission,
    StatusUpdateRequest,
)
from clients.storage_client import LocalObjectStorage
from database.models.paper_model import PaperStatus
from database.models.user_model import UserProfile
from services import paper_service
from services.exceptions import PortalError, from_validation_error
from services.paper_status import summarize_review_queue, summarize_statuses, utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def _respond(papers) -> List[PaperResponse]:
    now = utcnow()
    return [PaperResponse.from_paper(p, now) for p in papers]


@router.post("/", response_model=PaperResponse, status_code=201)
async def submit_paper(
    title: str = Form(...),
    abstract: str = Form(...),
    authors: str = Form(...),
    keywords: str = Form(...),
    payment_option: str = Form("payLater"),
    file: UploadFile = File(...),
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """
    Multipart paper submission. `authors` and `keywords` are comma-separated.
    """
    try:
        submission = PaperSubmission(
            title=title,
            abstract=abstract,
            authors=authors,
            keywords=keywords,
            payment_option=payment_option,
        )
    except ValidationError as e:
        raise from_validation_error(e) from e

    try:
        # One byte over the limit is enough for validation to reject it
        content = await file.read(paper_service.MAX_UPLOAD_BYTES + 1)
        upload = paper_service.UploadedFile(
            name=file.filename or "",
            content_type=file.content_type or "",
            content=content,
        )
        paper = await asyncio.to_thread(
            paper_service.submit_paper, db, storage, submission, upload, user.id, user.id
        )
        return PaperResponse.from_paper(paper)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Paper submission failed for {user.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error during paper submission")


@router.get("/", response_model=List[PaperResponse])
async def list_my_papers(
    status: Optional[PaperStatus] = None,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _respond(paper_service.list_papers_for_owner(db, user.id, status))


@router.get("/published", response_model=List[PaperResponse])
async def list_published(
    author: Optional[str] = Query(None, description="Substring match on author names"),
    db: Session = Depends(get_db),
):
    return _respond(paper_service.list_published_papers(db, author_name=author))


@router.get("/all", response_model=List[PaperResponse])
async def list_all(
    status: Optional[PaperStatus] = None,
    author: Optional[str] = Query(None, description="Substring match on author names"),
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return _respond(paper_service.list_all_papers(db, status=status, author_name=author))


@router.get("/stats", response_model=PaperStatsResponse)
async def paper_stats(
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    papers = paper_service.list_all_papers(db)
    summary = summarize_statuses(papers)
    total = summary.pop("total")
    return PaperStatsResponse(total=total, by_status=summary, **summarize_review_queue(papers))


@router.get("/{paper_id}", response_model=PaperResponse)
async def read_paper(
    paper_id: str,
    user: Optional[UserProfile] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    paper = paper_service.get_paper(db, paper_id)
    paper_service.ensure_can_view(paper, user)
    return PaperResponse.from_paper(paper)


@router.get("/{paper_id}/file")
async def download_paper_file(
    paper_id: str,
    user: Optional[UserProfile] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    paper = paper_service.get_paper(db, paper_id)
    paper_service.ensure_can_view(paper, user)
    content = await asyncio.to_thread(storage.read, paper.file_key)
    return Response(
        content=content,
        media_type=paper.file_mime_type,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(paper.file_name)}"},
    )


@router.put("/{paper_id}/status", response_model=PaperResponse)
async def update_status(
    paper_id: str,
    body: StatusUpdateRequest,
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    paper = paper_service.set_status(db, paper_id, body.status, paid_at=body.paid_at, actor_id=admin.id)
    return PaperResponse.from_paper(paper)


@router.post("/{paper_id}/feedback", response_model=PaperResponse)
async def submit_feedback(
    paper_id: str,
    body: FeedbackRequest,
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    paper = paper_service.submit_feedback(db, paper_id, body.feedback, actor_id=admin.id)
    return PaperResponse.from_paper(paper)


@router.post("/{paper_id}/reject-overdue", response_model=PaperResponse)
async def reject_overdue(
    paper_id: str,
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    paper = paper_service.reject_overdue(db, paper_id, admin.id)
    return PaperResponse.from_paper(paper)


@router.post("/{paper_id}/payment", response_model=PaperResponse)
async def complete_payment(
    paper_id: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    paper = paper_service.complete_payment(db, paper_id, user)
    logger.info(f"Payment completed for paper {paper_id} by {user.id}")
    return PaperResponse.from_paper(paper)


@router.delete("/{paper_id}", status_code=204)
async def delete_paper(
    paper_id: str,
    admin: UserProfile = Depends(get_current_admin),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    await asyncio.to_thread(paper_service.delete_paper, db, storage, paper_id, admin.id)
    return Response(status_code=204)
