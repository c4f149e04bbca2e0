from . import chatbot, health

__all__ = ["chatbot", "health"]
