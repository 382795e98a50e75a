"""
Role management for a restaurant: create/update/delete custom roles and
their component grants, plus seeding of the built-in roles.

Built-in owner/admin roles are not deletable and cannot be modified.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from hospitality.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError, validation_details
from hospitality.storage.base import Storage
from hospitality.storage.repositories import ProfileRepository, RoleRepository

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "owner")

DEFAULT_COMPONENTS = ("orders", "kitchen", "pos", "menu", "staff", "inventory", "crm", "financial")

# name -> (description, deletable, granted components)
BUILTIN_ROLES = {
    "owner": ("Restaurant owner", False, DEFAULT_COMPONENTS),
    "admin": ("Administrator", False, DEFAULT_COMPONENTS),
    "manager": ("Floor manager", True, DEFAULT_COMPONENTS),
    "kitchen": ("Kitchen staff", True, ("kitchen",)),
    "cashier": ("Front-of-house cashier", True, ("orders", "pos")),
}


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    component_ids: List[UUID] = Field(alias="componentIds")

    class Config:
        populate_by_name = True


class UpdateRoleRequest(BaseModel):
    id: UUID
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    component_ids: Optional[List[UUID]] = Field(default=None, alias="componentIds")

    class Config:
        populate_by_name = True


class DeleteRoleRequest(BaseModel):
    id: UUID


class RoleService:
    def __init__(self, storage: Storage):
        self.roles = RoleRepository(storage)
        self.profiles = ProfileRepository(storage)

    def is_admin(self, profile: dict) -> bool:
        if not profile.get("role_id") or not profile.get("restaurant_id"):
            return False
        role = self.roles.get(profile["restaurant_id"], profile["role_id"])
        return role is not None and role["name"] in ADMIN_ROLES

    def seed_builtin_roles(self, restaurant_id: str) -> Dict[str, dict]:
        """Create the built-in roles for a new restaurant. Returns name -> role."""
        components = self.roles.ensure_components(DEFAULT_COMPONENTS)
        created = {}
        for name, (description, deletable, grants) in BUILTIN_ROLES.items():
            created[name] = self.roles.create(
                restaurant_id, name, description,
                is_deletable=deletable,
                component_ids=[components[c] for c in grants],
            )
        logger.info("Seeded %d built-in roles for restaurant %s", len(created), restaurant_id)
        return created

    def list_roles(self, restaurant_id: str) -> List[dict]:
        roles = self.roles.list(restaurant_id)
        for role in roles:
            role["component_ids"] = self.roles.component_ids(role["id"])
        return roles

    def handle(self, restaurant_id: str, payload: Any) -> dict:
        """Dispatch a {action, ...} role-management request."""
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        data = dict(payload)
        action = data.pop("action", None)
        handler = {
            "create": self.create_role,
            "update": self.update_role,
            "delete": self.delete_role,
        }.get(action)
        if handler is None:
            raise ValidationError("Invalid action", {"action": action})
        return handler(restaurant_id, data)

    @staticmethod
    def _parse(model, data: dict):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Validation error", validation_details(e.errors()))

    def _check_components(self, component_ids) -> List[str]:
        ids = [str(cid) for cid in component_ids]
        missing = self.roles.missing_components(ids)
        if missing:
            raise ValidationError("Unknown component id(s)", {"componentIds": missing})
        return ids

    def _check_name_free(self, restaurant_id: str, name: str, role_id: Optional[str] = None) -> None:
        existing = self.roles.get_by_name(restaurant_id, name)
        if existing is not None and existing["id"] != role_id:
            raise ConflictError(f"A role named '{name}' already exists")

    def create_role(self, restaurant_id: str, data: dict) -> dict:
        request = self._parse(CreateRoleRequest, data)
        component_ids = self._check_components(request.component_ids)
        self._check_name_free(restaurant_id, request.name)

        role = self.roles.create(
            restaurant_id, request.name, request.description,
            is_deletable=True, component_ids=component_ids,
        )
        logger.info("Role %s created for restaurant %s", role["name"], restaurant_id)
        return {"success": True, "role": role}

    def update_role(self, restaurant_id: str, data: dict) -> dict:
        request = self._parse(UpdateRoleRequest, data)
        role_id = str(request.id)
        role = self.roles.get(restaurant_id, role_id)
        if role is None or not role["is_deletable"]:
            raise AuthorizationError("Cannot modify this role")

        patch = {}
        if request.name:
            self._check_name_free(restaurant_id, request.name, role_id)
            patch["name"] = request.name
        if "description" in request.model_fields_set:
            patch["description"] = request.description
        component_ids = None
        if request.component_ids is not None:
            component_ids = self._check_components(request.component_ids)

        role = self.roles.update(restaurant_id, role_id, patch, component_ids) or role
        return {"success": True, "role": role}

    def delete_role(self, restaurant_id: str, data: dict) -> dict:
        request = self._parse(DeleteRoleRequest, data)
        role_id = str(request.id)
        role = self.roles.get(restaurant_id, role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if not role["is_deletable"]:
            raise AuthorizationError("Cannot delete this role")
        if self.profiles.list_for_role(restaurant_id, role_id):
            raise ConflictError("Cannot delete role that is assigned to users")

        self.roles.delete(restaurant_id, role_id)
        logger.info("Role %s deleted from restaurant %s", role["name"], restaurant_id)
        return {"success": True}
