"""
Feedback Module
Stores and summarizes user feedback on search results.
"""

from .feedback_handler import SearchFeedbackEvent, SearchFeedbackHandler

__all__ = [
    "SearchFeedbackEvent",
    "SearchFeedbackHandler",
]
