# File: services/ai_check_service.py
"""
AI-assisted review signals for submitted papers.

Two independent JSON-mode model calls: a plagiarism estimate (score plus the
passages that look reused) and an acceptance estimate (probability plus
reasoning). Results are advisory; they are stored on the paper for the
author and the admins to read and never change its status.
"""
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from clients.storage_client import LocalObjectStorage
from database.models.paper_model import Paper
from services import audit_service, paper_service
from services.exceptions import AICheckError, InvalidInputError, PortalError
from services.llm_service import LLMGenerationError, LLMJSONParseError, generate_json_response
from services.text_extraction import extract_pdf_text
from utils.sanitization import clean_text

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

PLAGIARISM_SYSTEM_PROMPT = (
    "You are an AI plagiarism checker for an academic publishing portal. "
    "You only answer with JSON."
)

PLAGIARISM_PROMPT = """Review the research paper text below for plagiarism.

Return a plagiarism score between 0 and 1, where 1 indicates definite plagiarism.
Quote the specific sections that appear to be copied or reused from other work.
If nothing looks reused, return an empty list.

Paper text:
{document_text}

Respond with a JSON object of the form:
{{"plagiarismScore": <number 0-1>, "highlightedSections": ["<quoted section>", ...]}}"""

ACCEPTANCE_SYSTEM_PROMPT = (
    "You are an AI assistant that evaluates the acceptance probability of a research paper "
    "for publication in a conference or journal. You only answer with JSON."
)

ACCEPTANCE_PROMPT = """Assess the paper based on content quality, originality, clarity, structure, and novelty.
Provide a probability score between 0 and 1, where 0 indicates a very low chance of acceptance
and 1 indicates a very high chance. Also provide the reasoning for the assigned score.

Paper text:
{paper_text}

Respond with a JSON object of the form:
{{"probabilityScore": <number 0-1>, "reasoning": "<short explanation>"}}"""


class PlagiarismResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plagiarism_score: float = Field(..., ge=0.0, le=1.0, alias="plagiarismScore")
    highlighted_sections: List[str] = Field(default_factory=list, alias="highlightedSections")


class AcceptanceResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    probability_score: float = Field(..., ge=0.0, le=1.0, alias="probabilityScore")
    reasoning: str = Field(..., min_length=1)


class PreSubmissionReport(BaseModel):
    plagiarism: PlagiarismResult
    acceptance: AcceptanceResult


def _call_model(prompt: str, system_prompt: str, check_name: str) -> dict:
    try:
        return generate_json_response(prompt, system_prompt=system_prompt)
    except (LLMGenerationError, LLMJSONParseError) as e:
        logger.error(f"{check_name} check failed: {e}")
        raise AICheckError(f"The AI {check_name} check could not be completed. Please try again later.") from e


# ------------------------------------------------------------
# MODEL CALLS
# ------------------------------------------------------------
def check_plagiarism(document_text: str) -> PlagiarismResult:
    document_text = clean_text(document_text)
    if not document_text:
        raise InvalidInputError("There is no text to check for plagiarism.")

    data = _call_model(
        PLAGIARISM_PROMPT.format(document_text=document_text),
        PLAGIARISM_SYSTEM_PROMPT,
        "plagiarism",
    )
    try:
        return PlagiarismResult.model_validate(data)
    except ValidationError as e:
        logger.error(f"Malformed plagiarism response: {e}")
        raise AICheckError("The AI plagiarism check returned an invalid result.") from e


def estimate_acceptance(paper_text: str) -> AcceptanceResult:
    paper_text = clean_text(paper_text)
    if not paper_text:
        raise InvalidInputError("There is no text to evaluate.")

    data = _call_model(
        ACCEPTANCE_PROMPT.format(paper_text=paper_text),
        ACCEPTANCE_SYSTEM_PROMPT,
        "acceptance",
    )
    try:
        return AcceptanceResult.model_validate(data)
    except ValidationError as e:
        logger.error(f"Malformed acceptance response: {e}")
        raise AICheckError("The AI acceptance check returned an invalid result.") from e


# ------------------------------------------------------------
# PAPER TEXT
# ------------------------------------------------------------
def _summary_text(paper: Paper) -> str:
    return f"Title: {paper.title}\n\nAbstract: {paper.abstract}"


def build_paper_text(paper: Paper, storage: Optional[LocalObjectStorage]) -> str:
    """
    Full text of the stored PDF when it can be read, otherwise the
    title and abstract.
    """
    if storage is None or paper.file_mime_type != PDF_MIME_TYPE or not paper.file_key:
        return _summary_text(paper)

    try:
        content = storage.read(paper.file_key)
    except PortalError as e:
        logger.warning(f"Stored file for paper {paper.id} unavailable ({e.message}); using title and abstract")
        return _summary_text(paper)

    text = extract_pdf_text(content)
    if not text:
        logger.warning(f"No text extracted from paper {paper.id}; using title and abstract")
        return _summary_text(paper)
    return f"Title: {paper.title}\n\n{text}"


# ------------------------------------------------------------
# PERSISTED CHECKS
# ------------------------------------------------------------
def run_plagiarism_check(
    db: Session,
    paper_id: str,
    storage: Optional[LocalObjectStorage] = None,
    actor_id: Optional[str] = None,
) -> Paper:
    paper = paper_service.get_paper(db, paper_id)
    result = check_plagiarism(build_paper_text(paper, storage))

    if actor_id:
        audit_service.log_action(
            db,
            user_id=actor_id,
            action=audit_service.AI_CHECK,
            target_id=paper_id,
            payload={"check": "plagiarism", "score": result.plagiarism_score},
        )
    paper = paper_service.set_fields(db, paper_id, {
        "plagiarism_score": result.plagiarism_score,
        "plagiarism_highlights": result.highlighted_sections,
    })
    logger.info(f"Plagiarism check stored for paper {paper_id}: {result.plagiarism_score:.2f}")
    return paper


def run_acceptance_check(
    db: Session,
    paper_id: str,
    storage: Optional[LocalObjectStorage] = None,
    actor_id: Optional[str] = None,
) -> Paper:
    paper = paper_service.get_paper(db, paper_id)
    result = estimate_acceptance(build_paper_text(paper, storage))

    if actor_id:
        audit_service.log_action(
            db,
            user_id=actor_id,
            action=audit_service.AI_CHECK,
            target_id=paper_id,
            payload={"check": "acceptance", "score": result.probability_score},
        )
    paper = paper_service.set_fields(db, paper_id, {
        "acceptance_probability": result.probability_score,
        "acceptance_reasoning": result.reasoning,
    })
    logger.info(f"Acceptance check stored for paper {paper_id}: {result.probability_score:.2f}")
    return paper


def pre_submission_check(title: str, abstract: str) -> PreSubmissionReport:
    """Runs both checks on text that has not been submitted yet. Nothing is stored."""
    title = clean_text(title)
    abstract = clean_text(abstract)
    if not title or not abstract:
        raise InvalidInputError("Title and abstract are required for the pre-submission check.")

    text = f"Title: {title}\n\nAbstract: {abstract}"
    return PreSubmissionReport(
        plagiarism=check_plagiarism(text),
        acceptance=estimate_acceptance(text),
    )
