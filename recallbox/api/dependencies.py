"""
Dependency Injection
FastAPI dependencies for database, services, request context and API keys.
"""

import logging
import uuid
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..db.session import SessionLocal
from ..ml.feedback import SearchFeedbackHandler
from ..ml.search import SearchService, SearchResultFormatter, get_search_service as _get_service
from .config import APISettings, get_settings

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Use as FastAPI dependency:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_search_service() -> SearchService:
    """
    Get search service instance.

    Use as FastAPI dependency:
        @app.post("/search")
        def search(service: SearchService = Depends(get_search_service)):
            ...
    """
    return _get_service()


def get_feedback_handler() -> SearchFeedbackHandler:
    """Get search feedback handler bound to the default session factory."""
    return SearchFeedbackHandler(db_session_factory=SessionLocal)


def get_formatter() -> SearchResultFormatter:
    return SearchResultFormatter()


def verify_api_key(
    settings: APISettings = Depends(get_settings), x_api_key: Optional[str] = Header(None)
) -> bool:
    """
    Verify API key if required.

    Use as FastAPI dependency:
        @app.get("/endpoint")
        def endpoint(authorized: bool = Depends(verify_api_key)):
            ...
    """
    if not settings.require_api_key:
        return True

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if x_api_key not in settings.api_keys:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return True


def get_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Get the owner every query is scoped to, from the X-User-ID header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    return x_user_id.strip()


def get_conversation_id(x_conversation_id: Optional[str] = Header(None)) -> Optional[str]:
    """Conversation ID from the X-Conversation-ID header, if sent."""
    if x_conversation_id is None or not x_conversation_id.strip():
        return None
    return x_conversation_id.strip()


def get_request_id(x_request_id: Optional[str] = Header(None)) -> str:
    """
    Get or generate request ID for tracing.

    Use as FastAPI dependency:
        @app.get("/endpoint")
        def endpoint(request_id: str = Depends(get_request_id)):
            ...
    """
    if x_request_id:
        return x_request_id
    return str(uuid.uuid4())
