"""
Feedback Endpoints
POST /feedback - Record feedback on a search or one of its results
GET /feedback/stats - Aggregate feedback statistics
"""

import logging
import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status

from ...ml.feedback import SearchFeedbackEvent, SearchFeedbackHandler
from ...ml.search import session_key
from ..config import APISettings, get_settings
from ..dependencies import (
    get_conversation_id,
    get_feedback_handler,
    get_owner_id,
    get_request_id,
)
from ..errors import FeatureDisabledError
from ..models.feedback import FeedbackRequest, FeedbackResponse, FeedbackStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["feedback"])


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_200_OK)
def record_feedback(
    request: FeedbackRequest,
    owner_id: str = Depends(get_owner_id),
    header_conversation_id: Optional[str] = Depends(get_conversation_id),
    handler: SearchFeedbackHandler = Depends(get_feedback_handler),
    settings: APISettings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
) -> FeedbackResponse:
    """
    Record feedback on a prior query and, optionally, one of its results.

    Feedback is stored for review only; ranking is not affected.

    Returns:
        Feedback response with the stored feedback ID
    """
    if not settings.enable_feedback:
        raise FeatureDisabledError("Feedback")

    start_time = time.time()

    logger.info(
        f"Feedback: owner={owner_id}, query='{request.query}', item={request.item_id}",
        extra={"request_id": request_id},
    )

    event = SearchFeedbackEvent(
        owner_id=owner_id,
        query=request.query,
        item_id=request.item_id,
        rating=request.rating,
        helpful=request.helpful,
        comment=request.comment,
        session_key=session_key(
            owner_id, header_conversation_id or request.conversation_id or "default"
        ),
        match_type=request.match_type,
        relevance_score=request.relevance_score,
        enhancement_applied=request.enhancement_applied,
    )
    feedback_id = handler.record(event)

    return FeedbackResponse(
        success=True,
        message="Feedback recorded",
        feedback_id=feedback_id,
        recorded_at=datetime.utcnow(),
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@router.get("/feedback/stats", response_model=FeedbackStatsResponse)
def feedback_stats(
    owner_id: str = Depends(get_owner_id),
    handler: SearchFeedbackHandler = Depends(get_feedback_handler),
) -> FeedbackStatsResponse:
    """Aggregate feedback recorded by the calling owner."""
    return FeedbackStatsResponse(**handler.get_stats(owner_id=owner_id))
