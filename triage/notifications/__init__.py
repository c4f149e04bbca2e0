"""
Notification module for the triage chatbot.
Delivers conversation summaries by email.
"""

from .email_sender import email_sender, EmailSender, format_summary_body

__all__ = [
    'email_sender',
    'EmailSender',
    'format_summary_body'
]
