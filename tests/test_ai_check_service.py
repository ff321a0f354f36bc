import unittest
from unittest.mock import MagicMock, patch

import pytest

from api.models.paper_models import PaperSubmission
from conftest import add_profile
from database.models.paper_model import PaymentOption
from services import ai_check_service, audit_service, paper_service
from services.exceptions import AICheckError, InvalidInputError, NotFoundError
from services.llm_service import LLMGenerationError, LLMJSONParseError

ABSTRACT = (
    "A study of reproducibility in empirical machine learning papers across five venues, "
    "with recommendations for artifact review."
)


def _make_paper(db, storage, owner_id="uid-author", file_name="paper.pdf", content_type="application/pdf"):
    add_profile(db, owner_id, f"{owner_id}@example.org")
    submission = PaperSubmission(
        title="Reproducibility in ML",
        abstract=ABSTRACT,
        authors=["Grace Hopper"],
        keywords=["reproducibility"],
        payment_option=PaymentOption.PAY_NOW,
    )
    upload = paper_service.UploadedFile(name=file_name, content_type=content_type, content=b"%PDF-1.4 body")
    return paper_service.submit_paper(db, storage, submission, upload, owner_id, owner_id)


class TestModelResponses(unittest.TestCase):

    @patch("services.ai_check_service.generate_json_response")
    def test_plagiarism_result_parsed(self, mock_generate):
        mock_generate.return_value = {"plagiarismScore": 0.15, "highlightedSections": ["Section 2.1"]}

        result = ai_check_service.check_plagiarism("Some paper text")

        self.assertEqual(result.plagiarism_score, 0.15)
        self.assertEqual(result.highlighted_sections, ["Section 2.1"])
        prompt = mock_generate.call_args[0][0]
        self.assertIn("Some paper text", prompt)

    @patch("services.ai_check_service.generate_json_response")
    def test_acceptance_result_parsed(self, mock_generate):
        mock_generate.return_value = {"probabilityScore": 0.7, "reasoning": "Clear contribution."}

        result = ai_check_service.estimate_acceptance("Some paper text")

        self.assertEqual(result.probability_score, 0.7)
        self.assertEqual(result.reasoning, "Clear contribution.")

    @patch("services.ai_check_service.generate_json_response")
    def test_out_of_range_score_is_rejected(self, mock_generate):
        mock_generate.return_value = {"plagiarismScore": 1.4, "highlightedSections": []}
        with self.assertRaises(AICheckError):
            ai_check_service.check_plagiarism("Some paper text")

    @patch("services.ai_check_service.generate_json_response")
    def test_missing_reasoning_is_rejected(self, mock_generate):
        mock_generate.return_value = {"probabilityScore": 0.4}
        with self.assertRaises(AICheckError):
            ai_check_service.estimate_acceptance("Some paper text")

    @patch("services.ai_check_service.generate_json_response")
    def test_model_failure_becomes_check_error(self, mock_generate):
        mock_generate.side_effect = LLMGenerationError("timeout")
        with self.assertRaises(AICheckError):
            ai_check_service.estimate_acceptance("Some paper text")

        mock_generate.side_effect = LLMJSONParseError("not json")
        with self.assertRaises(AICheckError):
            ai_check_service.check_plagiarism("Some paper text")

    def test_empty_text_is_rejected_before_calling_model(self):
        with patch("services.ai_check_service.generate_json_response") as mock_generate:
            with self.assertRaises(InvalidInputError):
                ai_check_service.check_plagiarism("   ")
            mock_generate.assert_not_called()


# ------------------------------------------------------------
# PERSISTED CHECKS
# ------------------------------------------------------------
def test_plagiarism_check_is_stored_and_audited(db, storage):
    paper = _make_paper(db, storage)

    with patch("services.ai_check_service.extract_pdf_text", return_value="Full text of the paper"), \
            patch("services.ai_check_service.generate_json_response") as mock_generate:
        mock_generate.return_value = {"plagiarismScore": 0.2, "highlightedSections": ["Intro"]}
        updated = ai_check_service.run_plagiarism_check(db, paper.id, storage, actor_id="uid-author")

    assert updated.plagiarism_score == 0.2
    assert updated.plagiarism_highlights == ["Intro"]
    assert "Full text of the paper" in mock_generate.call_args[0][0]
    actions = [e.action for e in audit_service.list_actions_for_target(db, paper.id)]
    assert actions == [audit_service.AI_CHECK]


def test_acceptance_check_falls_back_to_abstract(db, storage):
    paper = _make_paper(db, storage)

    with patch("services.ai_check_service.extract_pdf_text", return_value=None), \
            patch("services.ai_check_service.generate_json_response") as mock_generate:
        mock_generate.return_value = {"probabilityScore": 0.55, "reasoning": "Solid but narrow."}
        updated = ai_check_service.run_acceptance_check(db, paper.id, storage)

    assert updated.acceptance_probability == 0.55
    assert updated.acceptance_reasoning == "Solid but narrow."
    assert ABSTRACT in mock_generate.call_args[0][0]


def test_docx_uses_title_and_abstract(db, storage):
    paper = _make_paper(
        db,
        storage,
        file_name="paper.docx",
        content_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    )
    extractor = MagicMock()
    with patch("services.ai_check_service.extract_pdf_text", extractor):
        text = ai_check_service.build_paper_text(paper, storage)

    extractor.assert_not_called()
    assert text.startswith("Title: Reproducibility in ML")
    assert ABSTRACT in text


def test_failed_check_keeps_previous_scores(db, storage):
    paper = _make_paper(db, storage)
    paper_service.set_fields(db, paper.id, {"acceptance_probability": 0.3, "acceptance_reasoning": "Earlier run"})

    with patch("services.ai_check_service.generate_json_response", side_effect=LLMGenerationError("down")):
        with pytest.raises(AICheckError):
            ai_check_service.run_acceptance_check(db, paper.id)

    stored = paper_service.get_paper(db, paper.id)
    assert stored.acceptance_probability == 0.3
    assert stored.acceptance_reasoning == "Earlier run"


def test_check_on_unknown_paper(db):
    with pytest.raises(NotFoundError):
        ai_check_service.run_plagiarism_check(db, "missing")


def test_pre_submission_check_persists_nothing(db):
    responses = [
        {"plagiarismScore": 0.05, "highlightedSections": []},
        {"probabilityScore": 0.8, "reasoning": "Novel and well scoped."},
    ]
    with patch("services.ai_check_service.generate_json_response", side_effect=responses):
        report = ai_check_service.pre_submission_check("Reproducibility in ML", ABSTRACT)

    assert report.plagiarism.plagiarism_score == 0.05
    assert report.acceptance.probability_score == 0.8
    assert paper_service.list_all_papers(db) == []


def test_pre_submission_check_requires_text():
    with pytest.raises(InvalidInputError):
        ai_check_service.pre_submission_check("", ABSTRACT)
