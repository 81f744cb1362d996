"""Pydantic schemas that power the favorites API surface."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

ADDED_MESSAGE = "Added to Favorites"
REMOVED_MESSAGE = "Removed from Favorites"


class FavoriteRecord(BaseModel):
    """Single persisted favorite as stored for a user."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    product_id: str
    created_at: datetime


class FavoriteIdsResponse(BaseModel):
    """Full favorites membership for the authenticated user."""

    product_ids: list[str] = Field(
        default_factory=list,
        description="Favorited product ids, most recently added first.",
    )
    total: int = Field(0, ge=0)


class FavoriteMutationResponse(BaseModel):
    """Outcome of an add, remove or toggle request."""

    product_id: str
    is_favorite: bool = Field(
        ..., description="Membership after the mutation was applied."
    )
    created: bool = Field(
        False,
        description="True only when the request inserted a new favorite row.",
    )
    message: str


class FavoriteProductSummary(BaseModel):
    """Product card shown on the "my favorites" page."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    favorited_at: datetime | None = None


class FavoriteProductPage(BaseModel):
    """Paginated favorite products."""

    items: list[FavoriteProductSummary] = Field(default_factory=list)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(0, ge=0)
    total_pages: int = Field(1, ge=1)


__all__ = [
    "ADDED_MESSAGE",
    "FavoriteIdsResponse",
    "FavoriteMutationResponse",
    "FavoriteProductPage",
    "FavoriteProductSummary",
    "FavoriteRecord",
    "REMOVED_MESSAGE",
]
