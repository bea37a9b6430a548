"""
Admin Endpoints
POST /admin/reindex - Embed and index items (inline or as a Celery task)
GET /admin/index/stats - Vector index statistics
GET /admin/search-metrics - Recent search metrics
GET /admin/task-status/{task_id} - Check Celery task status
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...ml.search import SearchService, get_search_metrics_tracker
from ..dependencies import get_search_service, verify_api_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(verify_api_key)]
)


# Request/Response Models
class ReindexRequest(BaseModel):
    batch_size: int = Field(default=100, ge=1, le=1000, description="Items per batch")
    force: bool = Field(default=False, description="Re-embed items whose text is unchanged")
    owner_id: Optional[str] = Field(None, description="Restrict to one owner")
    background: bool = Field(default=False, description="Dispatch as a Celery task")


class ReindexResponse(BaseModel):
    status: str = Field(..., description="success, partial or queued")
    processed: int = Field(default=0, description="Items embedded and indexed")
    skipped: int = Field(default=0, description="Items already up to date or without text")
    failed: int = Field(default=0, description="Items that could not be embedded")
    errors: List[dict] = Field(default_factory=list, description="First errors, by item")
    task_id: Optional[str] = Field(None, description="Celery task ID when run in background")
    message: str = Field(..., description="Result message")


class TaskStatusResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID")
    status: str = Field(..., description="Task status (PENDING, STARTED, SUCCESS, FAILURE)")
    result: Optional[dict] = Field(None, description="Task result if completed")
    error: Optional[str] = Field(None, description="Error message if failed")


# Endpoints
@router.post("/reindex", response_model=ReindexResponse, status_code=status.HTTP_200_OK)
def reindex(
    request: ReindexRequest,
    search_service: SearchService = Depends(get_search_service),
) -> ReindexResponse:
    """
    Embed items that are new or changed and add them to the vector index.

    Items that fail to embed are reported, not fatal: the run finishes
    with status "partial". Running it twice in a row processes nothing
    the second time unless force is set.
    """
    scope = f"owner {request.owner_id}" if request.owner_id else "all owners"

    if request.background:
        try:
            from ...tasks.embeddings import reindex_items

            result = reindex_items.delay(
                batch_size=request.batch_size, force=request.force, owner_id=request.owner_id
            )
        except Exception as e:
            logger.error(f"Failed to dispatch reindex task: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to dispatch reindex task: {str(e)}",
            )

        logger.info(f"Reindex queued: task_id={result.id}, scope={scope}")
        return ReindexResponse(
            status="queued", task_id=result.id, message=f"Reindex queued for {scope}"
        )

    summary = search_service.reindex(
        batch_size=request.batch_size, owner_id=request.owner_id, force=request.force
    )

    logger.info(
        f"Reindex finished for {scope}: processed={summary['processed']}, "
        f"skipped={summary['skipped']}, failed={summary['failed']}"
    )

    return ReindexResponse(
        status="partial" if summary["failed"] else "success",
        processed=summary["processed"],
        skipped=summary["skipped"],
        failed=summary["failed"],
        errors=summary["errors"][:10],
        message=f"Reindexed {summary['processed']} items for {scope}",
    )


@router.get("/index/stats", status_code=status.HTTP_200_OK)
def index_stats(search_service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    """Vector index statistics and last migration summary."""
    return search_service.index_manager.get_stats()


@router.get("/search-metrics", status_code=status.HTTP_200_OK)
def search_metrics(
    recent: int = Query(20, ge=0, le=200, description="Number of recent searches to include"),
) -> Dict[str, Any]:
    """Aggregated metrics for recent searches."""
    tracker = get_search_metrics_tracker()
    return {
        "summary": tracker.get_summary(),
        "recent": [m.to_dict() for m in tracker.recent(recent)] if recent else [],
    }


@router.get(
    "/task-status/{task_id}", response_model=TaskStatusResponse, status_code=status.HTTP_200_OK
)
def get_task_status(task_id: str) -> TaskStatusResponse:
    """
    Check the status of a Celery task.

    Returns task state and result (if completed).
    """
    try:
        from celery.result import AsyncResult

        from ...tasks.celery_app import app as celery_app

        task_result = AsyncResult(task_id, app=celery_app)
        status_str = task_result.status  # PENDING, STARTED, SUCCESS, FAILURE, RETRY

        response = TaskStatusResponse(task_id=task_id, status=status_str, result=None, error=None)

        if status_str == "SUCCESS":
            response.result = task_result.result
        elif status_str == "FAILURE":
            response.error = str(task_result.info)

        return response

    except Exception as e:
        logger.error(f"Failed to get task status: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get task status: {str(e)}",
        )
