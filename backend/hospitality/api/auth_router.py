"""Auth endpoints for signup, login and the current profile."""

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from hospitality import config
from hospitality.db.dependencies import (
    actor_for_profile,
    create_access_token,
    get_current_profile,
    hash_password,
    verify_password,
)
from hospitality.errors import AuthError, AuthorizationError, ConflictError, NotFoundError
from hospitality.services.role_service import RoleService
from hospitality.storage.repositories import ProfileRepository, RestaurantRepository, RoleRepository


router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    full_name: Optional[str] = None
    # Either found a new restaurant...
    restaurant_name: Optional[str] = None
    # ...or join an existing one with a role (dev only)
    restaurant_id: Optional[str] = None
    role: Optional[str] = None


class SignupResponse(BaseModel):
    id: str
    username: str
    restaurant_id: Optional[str]
    role: Optional[str]


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str


class ProfileResponse(BaseModel):
    id: str
    username: str
    full_name: Optional[str]
    restaurant_id: Optional[str]
    role: Optional[str]
    actor_kind: str
    components: List[str]


@router.post("/signup", response_model=SignupResponse, summary="Create a staff profile")
async def signup_user(request: SignupRequest, req: Request):
    """
    Create a profile.

    With restaurant_name, a new restaurant is created with its built-in roles
    and the caller becomes its owner. Joining an existing restaurant by id is
    only allowed when ENVIRONMENT=dev, and never as owner or admin.
    """
    storage = req.app.state.storage
    profiles = ProfileRepository(storage)
    if profiles.get_by_username(request.username):
        raise ConflictError("username already exists")

    restaurant_id = None
    role = None
    if request.restaurant_id:
        if not config.is_dev():
            raise AuthorizationError("Signup disabled")
        if RestaurantRepository(storage).get(request.restaurant_id) is None:
            raise NotFoundError("Restaurant not found")
        restaurant_id = request.restaurant_id
        role = RoleRepository(storage).get_by_name(restaurant_id, request.role or "cashier")
        if role is None:
            raise NotFoundError(f"Role '{request.role}' not found")
        if not role["is_deletable"]:
            # owner/admin are granted by the restaurant, never self-assigned
            raise AuthorizationError(f"Cannot join with the '{role['name']}' role")
    elif request.restaurant_name:
        restaurant = RestaurantRepository(storage).create(request.restaurant_name)
        restaurant_id = restaurant["id"]
        role = RoleService(storage).seed_builtin_roles(restaurant_id)["owner"]

    profile = profiles.create(
        request.username,
        hash_password(request.password),
        restaurant_id=restaurant_id,
        role_id=role["id"] if role else None,
        full_name=request.full_name,
    )
    return SignupResponse(
        id=profile["id"],
        username=profile["username"],
        restaurant_id=restaurant_id,
        role=role["name"] if role else None,
    )


@router.post("/login", response_model=TokenResponse, summary="Login and get JWT token")
async def login_user(request: LoginRequest, req: Request):
    """Authenticate a profile and return a JWT access token."""
    profile = ProfileRepository(req.app.state.storage).get_by_username(request.username)
    if not profile or not verify_password(request.password, profile["password_hash"]):
        raise AuthError("Invalid credentials")

    access_token = create_access_token(
        data={"sub": profile["id"], "restaurant_id": profile.get("restaurant_id")},
        expires_delta=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return TokenResponse(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=ProfileResponse, summary="Current profile")
async def read_me(req: Request, profile: dict = Depends(get_current_profile)):
    storage = req.app.state.storage
    roles = RoleRepository(storage)
    role = None
    components = []
    if profile.get("role_id") and profile.get("restaurant_id"):
        role = roles.get(profile["restaurant_id"], profile["role_id"])
    if role is not None:
        names = {row["id"]: row["name"] for row in roles.list_components()}
        components = sorted(names[cid] for cid in roles.component_ids(role["id"]) if cid in names)
    return ProfileResponse(
        id=profile["id"],
        username=profile["username"],
        full_name=profile.get("full_name"),
        restaurant_id=profile.get("restaurant_id"),
        role=role["name"] if role else None,
        actor_kind=actor_for_profile(storage, profile).kind.value,
        components=components,
    )
