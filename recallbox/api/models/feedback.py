"""
Feedback Models
Pydantic models for search feedback endpoints.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


class FeedbackRequest(BaseModel):
    """
    Feedback on a previous search or one of its results.

    Needs at least one of rating, helpful or comment.
    """

    query: str = Field(..., min_length=1, max_length=500, description="Query the feedback is about")
    item_id: Optional[str] = Field(None, description="Result the feedback refers to")
    rating: Optional[int] = Field(None, ge=1, le=5, description="Rating (1-5)")
    helpful: Optional[bool] = Field(None, description="Whether the results were helpful")
    comment: Optional[str] = Field(None, max_length=1000, description="Free-text comment")

    conversation_id: Optional[str] = Field(None, max_length=100, description="Conversation ID")
    match_type: Optional[str] = Field(None, description="Match type of the rated result")
    relevance_score: Optional[float] = Field(None, ge=0, le=1, description="Score of the rated result")
    enhancement_applied: Optional[bool] = Field(None, description="Whether the query was enhanced")

    @model_validator(mode="after")
    def require_signal(self) -> "FeedbackRequest":
        if self.rating is None and self.helpful is None and not self.comment:
            raise ValueError("Provide at least one of rating, helpful or comment")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "query": "electricity bill",
                "item_id": "item-1",
                "rating": 5,
                "helpful": True,
                "match_type": "fuzzy",
                "relevance_score": 0.96,
            }
        }


class FeedbackResponse(BaseModel):
    success: bool = Field(..., description="Whether feedback was recorded")
    message: str = Field(..., description="Status message")
    feedback_id: int = Field(..., description="Stored feedback ID")
    recorded_at: datetime = Field(..., description="Timestamp")
    processing_time_ms: float = Field(..., description="Processing time in milliseconds")


class FeedbackStatsResponse(BaseModel):
    total_feedback: int
    average_rating: Optional[float] = None
    helpful_rate: Optional[float] = None
    by_match_type: Dict[str, int] = Field(default_factory=dict)
