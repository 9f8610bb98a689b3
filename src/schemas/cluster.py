"""Pydantic schemas for cluster endpoints."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class ClusterResponse(BaseModel):
    """A derived group of bookmarks. member_ids are ordered newest first."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    kind: Literal["date", "category"]
    member_ids: list[int]
    color: str
    icon: str
    metadata: dict[str, Any]


class ClusterListResponse(BaseModel):
    """Clusters of the current user under one strategy."""

    strategy: Literal["auto", "date", "category"]
    clusters: list[ClusterResponse]
