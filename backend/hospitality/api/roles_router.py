"""Role management endpoint (admin/owner only)."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from hospitality.db.dependencies import get_role_service, require_admin, require_restaurant
from hospitality.errors import HospitalityError, ValidationError
from hospitality.services.role_service import RoleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["roles"])


@router.get("/roles", summary="List roles with their component grants")
async def list_roles(
    profile: dict = Depends(require_restaurant),
    service: RoleService = Depends(get_role_service),
):
    return service.list_roles(profile["restaurant_id"])


@router.post("/role-management", summary="Create, update or delete a role")
async def manage_roles(
    req: Request,
    admin: dict = Depends(require_admin),
    service: RoleService = Depends(get_role_service),
):
    """
    Body: {"action": "create" | "update" | "delete", ...}.

    Unexpected failures are reported as 500 {"error": "Internal server error"}.
    """
    try:
        payload = await req.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")

    try:
        return service.handle(admin["restaurant_id"], payload)
    except HospitalityError:
        raise
    except Exception:
        logger.exception("Role management error")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
