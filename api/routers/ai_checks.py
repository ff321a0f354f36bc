# api/routers/ai_checks.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
import asyncio
import logging

from api.dependencies.auth import get_current_user, get_db, get_storage
from api.models.paper_models import PaperResponse
from clients.storage_client import LocalObjectStorage
from database.models.user_model import UserProfile
from services import ai_check_service, paper_service
from services.ai_check_service import PreSubmissionReport
from services.exceptions import PermissionDeniedError, PortalError
from services.user_service import is_admin_user

logger = logging.getLogger(__name__)
router = APIRouter()


class PreCheckRequest(BaseModel):
    title: str
    abstract: str


async def _run_check(check, paper_id: str, user: UserProfile, db: Session, storage: LocalObjectStorage):
    paper = paper_service.get_paper(db, paper_id)
    if paper.user_id != user.id and not is_admin_user(user):
        raise PermissionDeniedError("Only the author or an administrator can run AI checks on this paper.")
    try:
        paper = await asyncio.to_thread(check, db, paper_id, storage, user.id)
        return PaperResponse.from_paper(paper)
    except PortalError:
        raise
    except Exception as e:
        logger.error(f"AI check failed for paper {paper_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error during AI check")


@router.post("/papers/{paper_id}/plagiarism", response_model=PaperResponse)
async def plagiarism_check(
    paper_id: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    return await _run_check(ai_check_service.run_plagiarism_check, paper_id, user, db, storage)


@router.post("/papers/{paper_id}/acceptance", response_model=PaperResponse)
async def acceptance_check(
    paper_id: str,
    user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    return await _run_check(ai_check_service.run_acceptance_check, paper_id, user, db, storage)


@router.post("/pre-check", response_model=PreSubmissionReport, response_model_by_alias=True)
async def pre_check(
    body: PreCheckRequest,
    user: UserProfile = Depends(get_current_user),
):
    """Runs both checks on an unsaved title and abstract."""
    return await asyncio.to_thread(ai_check_service.pre_submission_check, body.title, body.abstract)
