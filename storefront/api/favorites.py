"""FastAPI router exposing the per-user favorites membership."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from storefront.api.identity import get_current_user_id
from storefront.schemas.favorites import (
    FavoriteIdsResponse,
    FavoriteMutationResponse,
    FavoriteProductPage,
)
from storefront.services.favorites_service import FavoritesService, get_favorites_service
from storefront.settings import MAX_FAVORITES_PAGE_SIZE

router = APIRouter()


@router.get("", response_model=FavoriteIdsResponse)
async def list_favorites(
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteIdsResponse:
    """Return every product id the caller has favorited."""

    return await service.list_ids(user_id=user_id)


@router.get("/products", response_model=FavoriteProductPage)
async def list_favorite_products(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=MAX_FAVORITES_PAGE_SIZE),
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteProductPage:
    """Return one page of favorited products for the "my favorites" view."""

    return await service.list_products(user_id=user_id, page=page, limit=limit)


@router.post(
    "/{product_id}",
    response_model=FavoriteMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_favorite(
    product_id: str,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteMutationResponse:
    """Add a product; replays of the same add answer 200 instead of 201."""

    try:
        result = await service.create(user_id=user_id, product_id=product_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(
    product_id: str,
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> Response:
    try:
        await service.delete(user_id=user_id, product_id=product_id)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{product_id}/toggle", response_model=FavoriteMutationResponse)
async def toggle_favorite(
    product_id: str,
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteMutationResponse:
    try:
        return await service.toggle(user_id=user_id, product_id=product_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
