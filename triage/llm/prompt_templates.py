"""
Prompt templates for the triage assistant.
Contains the symptom classification and conversation summary prompts.
"""

from typing import Dict, List


class TriagePromptTemplates:
    """Collection of prompt templates for the triage assistant."""

    # System prompts
    SYMPTOM_CLASSIFICATION_SYSTEM = (
        "You are a helpful medical triage assistant. Your job is to read a user's symptom description "
        "and classify it into one of the following categories:\n\n"
        "1) 'abdominal pain'\n"
        "2) 'joint pain'\n"
        "3) 'numbness feeling or tingling feeling over legs'\n"
        "4) 'neck mass'\n"
        "5) 'lower back pain'\n"
        "6) 'easy thirsty'\n"
        "7) 'other'\n"
        "Return ONLY the most relevant category name, exactly as it appears in the list above. "
        "No extra text. No disclaimers."
    )

    CONVERSATION_SUMMARY_SYSTEM = (
        "You are a helpful assistant that reads a Q&A conversation in Chinese. "
        "Summarize it in TWO parts: \n"
        "1) A concise Chinese summary.\n"
        "2) An admission-note-like summary (e.g., in the form like This is a xx-year-old male/female "
        "patient with past history of... and medication history of... He/She complaint of "
        "(chief complaint) for more than (duration) with ...(accompanied symptoms)), "
        "resembling a professional medical note.\n\n"
        "Return your answer as valid JSON with the following keys exactly:\n"
        "  {\n"
        "    \"chinese_summary\": \"...\",\n"
        "    \"admission_note\": \"...\"\n"
        "  }\n\n"
        "Do not include any extra text or disclaimers outside the JSON structure."
    )

    # User message templates
    SYMPTOM_DESCRIPTION_TEMPLATE = "Symptom description: {symptom}"

    CONVERSATION_SUMMARY_TEMPLATE = """
這是使用者與機器人之間的對話（問題與回答）：
{conversation}

請根據上述內容，依照指示格式產生兩種摘要。"""

    @classmethod
    def symptom_classification_messages(cls, symptom: str) -> List[Dict[str, str]]:
        """Build the chat messages for a single classification request."""
        return [
            {"role": "system", "content": cls.SYMPTOM_CLASSIFICATION_SYSTEM},
            {"role": "user", "content": cls.SYMPTOM_DESCRIPTION_TEMPLATE.format(symptom=symptom)},
        ]

    @classmethod
    def conversation_summary_messages(cls, conversation: str) -> List[Dict[str, str]]:
        """Build the chat messages for a single summary request."""
        return [
            {"role": "system", "content": cls.CONVERSATION_SUMMARY_SYSTEM},
            {"role": "user", "content": cls.CONVERSATION_SUMMARY_TEMPLATE.format(conversation=conversation)},
        ]
