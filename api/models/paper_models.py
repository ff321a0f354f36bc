# File: api/models/paper_models.py
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models.paper_model import PaperStatus, PaymentOption
from services.paper_status import compute_display_status
from utils.sanitization import clean_text, split_list_field


class PaperSubmission(BaseModel):
    title: str
    abstract: str
    authors: List[str]
    keywords: List[str]
    payment_option: PaymentOption = PaymentOption.PAY_LATER

    @field_validator("title")
    @classmethod
    def _title_length(cls, v: str) -> str:
        v = clean_text(v)
        if len(v) < 5:
            raise ValueError("Title must be at least 5 characters.")
        return v

    @field_validator("abstract")
    @classmethod
    def _abstract_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 50:
            raise ValueError("Abstract must be at least 50 characters.")
        if len(v) > 2000:
            raise ValueError("Abstract must be less than 2000 characters.")
        return v

    @field_validator("authors", mode="before")
    @classmethod
    def _split_authors(cls, v: Union[str, List[str], None]) -> List[str]:
        authors = split_list_field(v)
        if not authors:
            raise ValueError("At least one author is required.")
        return authors

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, v: Union[str, List[str], None]) -> List[str]:
        keywords = split_list_field(v)
        if not keywords:
            raise ValueError("At least one keyword is required.")
        return keywords


class StatusUpdateRequest(BaseModel):
    status: PaperStatus
    paid_at: Optional[datetime] = None


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1)


class PaperResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    abstract: str
    authors: List[str]
    keywords: List[str]
    file_name: str
    file_url: str
    file_mime_type: str
    upload_date: datetime
    status: PaperStatus
    display_status: str = ""
    download_url: str = ""
    plagiarism_score: Optional[float] = None
    plagiarism_highlights: Optional[List[str]] = None
    acceptance_probability: Optional[float] = None
    acceptance_reasoning: Optional[str] = None
    admin_feedback: Optional[str] = None
    payment_option: Optional[PaymentOption] = None
    submission_date: Optional[datetime] = None
    payment_due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_paper(cls, paper, now: Optional[datetime] = None) -> "PaperResponse":
        response = cls.model_validate(paper)
        response.display_status = compute_display_status(paper, now)
        response.download_url = f"/papers/{paper.id}/file"
        return response


class PaperStatsResponse(BaseModel):
    total: int
    pending_review: int = 0
    issues_found: int = 0
    by_status: Dict[str, int]
