"""Menu management API router."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from hospitality.db.dependencies import require_admin, require_restaurant
from hospitality.errors import NotFoundError, ValidationError
from hospitality.storage.repositories import MenuRepository


class MenuItemResponse(BaseModel):
    """Menu item response model."""
    id: str
    name: str
    price: float
    category: Optional[str] = None
    description: Optional[str] = None
    is_available: bool

    class Config:
        from_attributes = True


class CreateMenuItemRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: float = Field(ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    is_available: bool = True


class UpdateMenuItemRequest(BaseModel):
    """Request body for updating a menu item."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    is_available: Optional[bool] = None


router = APIRouter(prefix="/api/menu", tags=["menu"])


@router.get("", response_model=List[MenuItemResponse])
async def list_menu_items(
    req: Request,
    available_only: bool = Query(False),
    profile: dict = Depends(require_restaurant),
) -> List[Dict[str, Any]]:
    """
    List the restaurant's menu items, alphabetically.

    - **available_only**: hide items marked unavailable
    """
    return MenuRepository(req.app.state.storage).list(profile["restaurant_id"], available_only=available_only)


@router.post("", response_model=MenuItemResponse, status_code=201)
async def create_menu_item(
    request: CreateMenuItemRequest,
    req: Request,
    admin: dict = Depends(require_admin),
) -> Dict[str, Any]:
    """
    Add a menu item. Prices are stored in rupees with 2 decimals.

    **Admin only**
    """
    return MenuRepository(req.app.state.storage).create(
        admin["restaurant_id"],
        request.name.strip(),
        round(request.price, 2),
        category=request.category,
        description=request.description,
        is_available=request.is_available,
    )


@router.put("/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    item_id: str,
    request: UpdateMenuItemRequest,
    req: Request,
    admin: dict = Depends(require_admin),
) -> Dict[str, Any]:
    """
    Update a menu item. Existing orders keep the price they were placed at.

    **Admin only**
    """
    # name, price and is_available cannot be cleared
    patch = {
        key: value for key, value in request.model_dump(exclude_unset=True).items()
        if value is not None or key in ("category", "description")
    }
    if not patch:
        raise ValidationError("No fields to update")
    if "price" in patch:
        patch["price"] = round(patch["price"], 2)
    item = MenuRepository(req.app.state.storage).update(admin["restaurant_id"], item_id, patch)
    if item is None:
        raise NotFoundError(f"Menu item {item_id} not found")
    return item
