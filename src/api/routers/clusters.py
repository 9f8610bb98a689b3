"""Cluster view endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.cluster import ClusterListResponse, ClusterResponse
from services import bookmark_service, clustering_service
from services.clustering_service import ClusterStrategy

router = APIRouter(prefix="/clusters", tags=["clusters"])


@router.get("/", response_model=ClusterListResponse)
async def list_clusters(
    strategy: ClusterStrategy = Query(default="auto", description="'date', 'category' or 'auto'"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> ClusterListResponse:
    """
    Group the current user's bookmarks into clusters.

    Clusters are computed from the live bookmark set on every request.

    - **date**: Today / Yesterday / This Week / This Month / Past 3 Months / Older
    - **category**: one cluster per category shared by at least two bookmarks
    - **auto**: both, largest first
    """
    bookmarks = await bookmark_service.get_bookmarks(db, current_user.id)
    clusters = clustering_service.build_clusters(bookmarks, strategy)
    return ClusterListResponse(
        strategy=strategy,
        clusters=[ClusterResponse.model_validate(c) for c in clusters],
    )
