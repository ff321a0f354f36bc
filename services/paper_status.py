# File: services/paper_status.py
"""
Status vocabulary helpers shared by every paper view.

"Payment Overdue" is never stored; it is derived here from the persisted
status and the payment due date.
"""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from database.models.paper_model import PaperStatus

PAYMENT_OVERDUE = "Payment Overdue"
PAYMENT_WINDOW = timedelta(hours=2)

DISPLAY_STATUSES = [s.value for s in PaperStatus] + [PAYMENT_OVERDUE]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, PaperStatus) else str(status)


def is_payment_overdue(paper: Any, now: Optional[datetime] = None) -> bool:
    if _status_value(paper.status) != PaperStatus.PAYMENT_PENDING.value:
        return False
    due = as_utc(getattr(paper, "payment_due_date", None))
    if due is None:
        return False
    now = as_utc(now) or utcnow()
    return due < now


def compute_display_status(paper: Any, now: Optional[datetime] = None) -> str:
    """
    Returns "Payment Overdue" iff the paper is Payment Pending and its due
    date lies strictly before `now`; otherwise the stored status.
    """
    if is_payment_overdue(paper, now):
        return PAYMENT_OVERDUE
    return _status_value(paper.status)


def summarize_statuses(papers: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, int]:
    now = as_utc(now) or utcnow()
    counts = Counter(compute_display_status(p, now) for p in papers)
    summary = {status: counts.get(status, 0) for status in DISPLAY_STATUSES}
    summary["total"] = sum(counts.values())
    return summary


PLAGIARISM_ALERT_THRESHOLD = 0.15
REVIEW_QUEUE_STATUSES = {PaperStatus.SUBMITTED.value, PaperStatus.UNDER_REVIEW.value}


def has_issues(paper: Any) -> bool:
    """Action Required, or a stored plagiarism score above the alert threshold."""
    if _status_value(paper.status) == PaperStatus.ACTION_REQUIRED.value:
        return True
    score = getattr(paper, "plagiarism_score", None)
    return score is not None and score > PLAGIARISM_ALERT_THRESHOLD


def summarize_review_queue(papers: Iterable[Any]) -> Dict[str, int]:
    papers = list(papers)
    return {
        "pending_review": sum(1 for p in papers if _status_value(p.status) in REVIEW_QUEUE_STATUSES),
        "issues_found": sum(1 for p in papers if has_issues(p)),
    }
