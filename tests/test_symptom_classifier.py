"""Tests for symptom classification."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from triage.decision_engine.symptom_classifier import (
    CATEGORY_START_NODES,
    DEFAULT_CATEGORY,
    SymptomCategory,
    SymptomClassifier,
    match_category,
)
from triage.llm.chat_client import LLMConnectionError
from triage.llm.prompt_templates import TriagePromptTemplates


@pytest.fixture
def mock_llm_service():
    service = MagicMock()
    service.chat_completion = AsyncMock(return_value="abdominal pain")
    return service


class TestMatchCategory:
    """Test keyword matching on model replies."""

    @pytest.mark.parametrize("reply,expected", [
        ("abdominal pain", SymptomCategory.ABDOMINAL_PAIN),
        ("Joint Pain", SymptomCategory.JOINT_PAIN),
        ("'neck mass'", SymptomCategory.NECK_MASS),
        ("numbness feeling or tingling feeling over legs", SymptomCategory.LEG_NUMBNESS),
        ("lower back pain", SymptomCategory.LOWER_BACK_PAIN),
        ("easy thirsty.", SymptomCategory.EASY_THIRST),
    ])
    def test_categories(self, reply, expected):
        keyword, category = match_category(reply)

        assert category == expected

    def test_first_keyword_wins(self):
        keyword, category = match_category("abdominal pain radiating to the joint")

        assert keyword == "abdominal"
        assert category == SymptomCategory.ABDOMINAL_PAIN

    def test_no_match(self):
        assert match_category("other") is None


class TestSymptomClassifier:
    """Test the model-backed classifier."""

    @pytest.mark.asyncio
    async def test_classify(self, mock_llm_service):
        mock_llm_service.chat_completion.return_value = "joint pain"
        classifier = SymptomClassifier(service=mock_llm_service)

        result = await classifier.classify_detailed("我膝蓋很痛")

        assert result.category == SymptomCategory.JOINT_PAIN
        assert result.matched_keyword == "joint"
        assert result.raw_reply == "joint pain"
        assert not result.used_fallback

        args, kwargs = mock_llm_service.chat_completion.await_args
        assert args[0] == TriagePromptTemplates.symptom_classification_messages("我膝蓋很痛")
        assert kwargs["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_unmatched_reply_uses_default(self, mock_llm_service):
        mock_llm_service.chat_completion.return_value = "other"
        classifier = SymptomClassifier(service=mock_llm_service)

        result = await classifier.classify_detailed("頭暈")

        assert result.category == DEFAULT_CATEGORY
        assert result.used_fallback

    @pytest.mark.asyncio
    async def test_call_failure_uses_default(self, mock_llm_service):
        mock_llm_service.chat_completion.side_effect = LLMConnectionError("timeout")
        classifier = SymptomClassifier(service=mock_llm_service)

        result = await classifier.classify_detailed("頭暈")

        assert result.category == SymptomCategory.ABDOMINAL_PAIN
        assert result.raw_reply is None
        assert result.used_fallback

    @pytest.mark.asyncio
    async def test_classify_to_node(self, mock_llm_service):
        mock_llm_service.chat_completion.return_value = "easy thirsty"
        classifier = SymptomClassifier(service=mock_llm_service)

        assert await classifier.classify_to_node("一直口渴") == "4_easyThirsty_start"

    def test_every_category_has_start_node(self):
        assert set(CATEGORY_START_NODES) == set(SymptomCategory)
