"""
Search Endpoints
POST /search - Hybrid search with session-backed pagination
GET /search/quick - Lexical-only quick search
POST /search/more - Next page of the current search session
GET /search/suggestions - Query suggestions
GET /search/format - Current session page rendered for chat bots
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...ml.retrieval import SearchQuery
from ...ml.search import SearchResultFormatter, SearchService, session_key
from ..config import APISettings, get_settings
from ..dependencies import (
    get_conversation_id,
    get_formatter,
    get_owner_id,
    get_request_id,
    get_search_service,
)
from ..models.search import (
    FormattedResultsResponse,
    MoreRequest,
    MoreResponse,
    QuickSearchResponse,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
    SuggestionsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse, status_code=status.HTTP_200_OK)
def search(
    request: SearchRequest,
    owner_id: str = Depends(get_owner_id),
    header_conversation_id: Optional[str] = Depends(get_conversation_id),
    search_service: SearchService = Depends(get_search_service),
    settings: APISettings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
) -> SearchResponse:
    """
    Search the owner's items.

    Workflow:
    1. Enhance the query (if enabled)
    2. Run semantic, fuzzy and exact matching concurrently
    3. Fuse and filter results
    4. Return the requested page and keep the rest in the search session

    Returns:
        Search response; empty or low-confidence outcomes are flagged with suggestions
    """
    logger.info(
        f"Search request: query='{request.query}', owner={owner_id}",
        extra={"request_id": request_id},
    )

    query = SearchQuery(
        text=request.query,
        owner_id=owner_id,
        filters=request.filters.to_filters() if request.filters else None,
        limit=request.limit,
        offset=request.offset,
        conversation_id=header_conversation_id or request.conversation_id or "default",
    )

    result = search_service.search(
        query, enhance=request.enhance and settings.enable_query_enhancement
    )

    return SearchResponse(
        results=[
            SearchResultModel.from_result(r, rank=request.offset + i)
            for i, r in enumerate(result.results)
        ],
        total=result.total,
        offset=result.offset,
        limit=result.limit,
        has_more=result.has_more,
        query=result.query,
        enhanced_query=result.enhanced_query,
        enhancement_applied=result.enhancement_applied,
        strategies=result.strategies,
        strategy_status=result.strategy_status,
        degraded=result.degraded,
        confidence=result.confidence,
        no_results=result.no_results,
        low_confidence=result.low_confidence,
        suggestions=result.suggestions,
        truncated=result.truncated,
        session_key=result.session_key,
        processing_time_ms=result.processing_time_ms,
    )


@router.get("/search/quick", response_model=QuickSearchResponse)
def quick_search(
    q: str = Query(..., max_length=500, description="Query text"),
    limit: int = Query(5, ge=1, le=20, description="Maximum results"),
    owner_id: str = Depends(get_owner_id),
    search_service: SearchService = Depends(get_search_service),
) -> QuickSearchResponse:
    """Lexical-only search for autocomplete-style lookups. No session is created."""
    results = search_service.quick_search(q, owner_id, limit=limit)
    return QuickSearchResponse(
        query=q,
        results=[SearchResultModel.from_result(r, rank=i) for i, r in enumerate(results)],
        total=len(results),
    )


@router.post("/search/more", response_model=MoreResponse)
def more_results(
    request: MoreRequest,
    owner_id: str = Depends(get_owner_id),
    header_conversation_id: Optional[str] = Depends(get_conversation_id),
    search_service: SearchService = Depends(get_search_service),
    request_id: str = Depends(get_request_id),
) -> MoreResponse:
    """
    Serve the next page of the conversation's last search.

    Returns 410 when the session has expired.
    """
    key = session_key(owner_id, header_conversation_id or request.conversation_id or "default")
    page = search_service.advance_session(key, owner_id=owner_id, page_size=request.page_size)

    logger.info(
        f"Served results {page.start}-{page.end} of {page.total} for session {key}",
        extra={"request_id": request_id},
    )

    return MoreResponse(
        results=[
            SearchResultModel.from_result(r, rank=page.start + i) for i, r in enumerate(page.results)
        ],
        start=page.start,
        end=page.end,
        total=page.total,
        has_more=page.has_more,
        session_key=key,
    )


@router.get("/search/suggestions", response_model=SuggestionsResponse)
def suggestions(
    q: str = Query("", max_length=100, description="Partial query"),
    limit: int = Query(5, ge=1, le=20, description="Maximum suggestions"),
    owner_id: str = Depends(get_owner_id),
    search_service: SearchService = Depends(get_search_service),
) -> SuggestionsResponse:
    """Suggest queries from common searches and the owner's own items."""
    return SuggestionsResponse(
        query=q, suggestions=search_service.suggestions(q, owner_id, limit=limit)
    )


@router.get("/search/format", response_model=FormattedResultsResponse)
def format_results(
    channel: str = Query("telegram", pattern="^(telegram|whatsapp)$", description="Chat channel"),
    conversation_id: Optional[str] = Query(None, max_length=100),
    owner_id: str = Depends(get_owner_id),
    header_conversation_id: Optional[str] = Depends(get_conversation_id),
    search_service: SearchService = Depends(get_search_service),
    formatter: SearchResultFormatter = Depends(get_formatter),
) -> FormattedResultsResponse:
    """Render the page most recently served from the session as a chat message."""
    start_time = time.time()

    key = session_key(owner_id, header_conversation_id or conversation_id or "default")
    session = search_service.session_store.get(key)
    page = search_service.current_page(key, owner_id=owner_id)

    text = formatter.format(
        page.results,
        session.query if session else "",
        channel,
        total=page.total,
        start=page.start,
    )

    logger.debug(f"Formatted session {key} for {channel} in {(time.time() - start_time) * 1000:.1f}ms")

    return FormattedResultsResponse(
        channel=channel,
        text=text,
        start=page.start,
        end=page.end,
        total=page.total,
        has_more=page.has_more,
    )
