"""
Symptom classification for the triage flow.
Maps a free-text symptom description to one of a closed set of categories
using a single deterministic model call, with a fixed fallback category.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from app.core.config import settings
from triage.llm.llm_service import LLMService, llm_service
from triage.llm.prompt_templates import TriagePromptTemplates

logger = logging.getLogger(__name__)


class SymptomCategory(Enum):
    """Symptom categories the classifier can return."""
    ABDOMINAL_PAIN = "abdominal pain"
    JOINT_PAIN = "joint pain"
    NECK_MASS = "neck mass"
    LEG_NUMBNESS = "numbness feeling or tingling feeling over legs"
    LOWER_BACK_PAIN = "lower back pain"
    EASY_THIRST = "easy thirsty"


DEFAULT_CATEGORY = SymptomCategory.ABDOMINAL_PAIN

# Checked in order; the first keyword found in the model reply wins.
CATEGORY_KEYWORDS: List[Tuple[str, SymptomCategory]] = [
    ("abdominal", SymptomCategory.ABDOMINAL_PAIN),
    ("joint", SymptomCategory.JOINT_PAIN),
    ("neck mass", SymptomCategory.NECK_MASS),
    ("numbness feeling or tingling feeling over legs", SymptomCategory.LEG_NUMBNESS),
    ("lower back pain", SymptomCategory.LOWER_BACK_PAIN),
    ("easy thirsty", SymptomCategory.EASY_THIRST),
]

CATEGORY_START_NODES: Dict[SymptomCategory, str] = {
    SymptomCategory.ABDOMINAL_PAIN: "abdomen_start",
    SymptomCategory.JOINT_PAIN: "joint_start",
    SymptomCategory.NECK_MASS: "neck_mass_start",
    SymptomCategory.LEG_NUMBNESS: "RLS_start",
    SymptomCategory.LOWER_BACK_PAIN: "lowerBackPain_start",
    SymptomCategory.EASY_THIRST: "4_easyThirsty_start",
}


@dataclass
class SymptomClassificationResult:
    """Complete classification result."""
    category: SymptomCategory
    matched_keyword: Optional[str]
    raw_reply: Optional[str]
    used_fallback: bool
    processing_time_ms: float


def match_category(reply: str) -> Optional[Tuple[str, SymptomCategory]]:
    """Find the first category keyword contained in a model reply."""
    normalized = reply.strip().lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in normalized:
            return keyword, category
    return None


class SymptomClassifier:
    """Model-backed symptom classifier with a deterministic fallback."""

    def __init__(self, service: Optional[LLMService] = None):
        self.llm_service = service or llm_service

    async def classify_detailed(self, text: str) -> SymptomClassificationResult:
        """Classify a symptom description, never raising."""
        start_time = time.time()
        messages = TriagePromptTemplates.symptom_classification_messages(text)

        try:
            reply = await self.llm_service.chat_completion(
                messages,
                temperature=settings.CLASSIFIER_TEMPERATURE
            )
        except Exception as e:
            logger.error(f"Symptom classification call failed: {e}")
            return SymptomClassificationResult(
                category=DEFAULT_CATEGORY,
                matched_keyword=None,
                raw_reply=None,
                used_fallback=True,
                processing_time_ms=(time.time() - start_time) * 1000
            )

        logger.info(f"Model reply classification: {reply!r}")
        match = match_category(reply)
        if match is None:
            logger.warning(f"No category matched reply {reply!r}, using {DEFAULT_CATEGORY.value}")

        return SymptomClassificationResult(
            category=match[1] if match else DEFAULT_CATEGORY,
            matched_keyword=match[0] if match else None,
            raw_reply=reply,
            used_fallback=match is None,
            processing_time_ms=(time.time() - start_time) * 1000
        )

    async def classify(self, text: str) -> SymptomCategory:
        result = await self.classify_detailed(text)
        return result.category

    async def classify_to_node(self, text: str) -> str:
        """Classify and resolve the category to its flow start node."""
        category = await self.classify(text)
        return CATEGORY_START_NODES[category]


# Global classifier instance
symptom_classifier = SymptomClassifier()
