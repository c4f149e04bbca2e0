"""Placeholder substitution for node questions."""

from typing import Mapping, Optional

SYMPTOM_PLACEHOLDER = "{{SYMPTOM}}"


def render(text: Optional[str], context: Optional[Mapping[str, str]] = None) -> str:
    """Replace the first ``{{SYMPTOM}}`` token with ``context['symptom']``.

    The value is inserted verbatim. Text without the token is returned unchanged.
    """
    if not text:
        return ""

    if SYMPTOM_PLACEHOLDER not in text:
        return text

    symptom = (context or {}).get("symptom") or ""
    return text.replace(SYMPTOM_PLACEHOLDER, symptom, 1)
