"""
Decision engine module for the triage chatbot.
Contains symptom classification.
"""

from .symptom_classifier import (
    symptom_classifier,
    SymptomClassifier,
    SymptomCategory,
    SymptomClassificationResult,
    CATEGORY_START_NODES,
    DEFAULT_CATEGORY
)

__all__ = [
    'symptom_classifier',
    'SymptomClassifier',
    'SymptomCategory',
    'SymptomClassificationResult',
    'CATEGORY_START_NODES',
    'DEFAULT_CATEGORY'
]
