from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from database.models.paper_model import PaperStatus
from services.paper_status import (
    DISPLAY_STATUSES,
    PAYMENT_OVERDUE,
    compute_display_status,
    has_issues,
    is_payment_overdue,
    summarize_review_queue,
    summarize_statuses,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _paper(status, due=None, plagiarism=None):
    return SimpleNamespace(status=status, payment_due_date=due, plagiarism_score=plagiarism)


def test_pending_past_due_is_overdue():
    paper = _paper(PaperStatus.PAYMENT_PENDING, NOW - timedelta(minutes=1))
    assert is_payment_overdue(paper, NOW)
    assert compute_display_status(paper, NOW) == PAYMENT_OVERDUE


def test_due_exactly_now_is_not_overdue():
    paper = _paper(PaperStatus.PAYMENT_PENDING, NOW)
    assert compute_display_status(paper, NOW) == "Payment Pending"


def test_pending_without_due_date_is_not_overdue():
    paper = _paper(PaperStatus.PAYMENT_PENDING, None)
    assert not is_payment_overdue(paper, NOW)
    assert compute_display_status(paper, NOW) == "Payment Pending"


def test_other_statuses_ignore_due_date():
    paper = _paper(PaperStatus.SUBMITTED, NOW - timedelta(days=3))
    assert compute_display_status(paper, NOW) == "Submitted"


def test_naive_due_date_is_treated_as_utc():
    paper = _paper(PaperStatus.PAYMENT_PENDING, datetime(2024, 5, 1, 11, 59))
    assert compute_display_status(paper, NOW) == PAYMENT_OVERDUE


def test_summary_counts_every_display_status():
    papers = [
        _paper(PaperStatus.PAYMENT_PENDING, NOW - timedelta(hours=1)),
        _paper(PaperStatus.PAYMENT_PENDING, NOW + timedelta(hours=1)),
        _paper(PaperStatus.PUBLISHED),
        _paper(PaperStatus.PUBLISHED),
    ]
    summary = summarize_statuses(papers, NOW)

    assert summary["total"] == 4
    assert summary[PAYMENT_OVERDUE] == 1
    assert summary["Payment Pending"] == 1
    assert summary["Published"] == 2
    assert summary["Draft"] == 0
    assert set(DISPLAY_STATUSES) <= set(summary)


def test_issues_cover_feedback_and_high_plagiarism():
    assert has_issues(_paper(PaperStatus.ACTION_REQUIRED))
    assert has_issues(_paper(PaperStatus.SUBMITTED, plagiarism=0.4))
    assert not has_issues(_paper(PaperStatus.SUBMITTED, plagiarism=0.15))
    assert not has_issues(_paper(PaperStatus.PUBLISHED))


def test_review_queue_summary():
    papers = [
        _paper(PaperStatus.SUBMITTED),
        _paper(PaperStatus.UNDER_REVIEW, plagiarism=0.3),
        _paper(PaperStatus.ACTION_REQUIRED),
        _paper(PaperStatus.PAYMENT_PENDING, NOW + timedelta(hours=1)),
    ]
    assert summarize_review_queue(papers) == {"pending_review": 2, "issues_found": 2}
    assert summarize_review_queue([]) == {"pending_review": 0, "issues_found": 0}
