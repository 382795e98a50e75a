"""FastAPI dependencies for storage/service injection and auth."""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from hospitality import config
from hospitality.errors import AuthError, AuthorizationError
from hospitality.services.order_service import OrderService
from hospitality.services.payment_service import PaymentService
from hospitality.services.role_service import RoleService
from hospitality.state_machine import Actor, actor_for_role
from hospitality.storage import Storage
from hospitality.storage.repositories import ProfileRepository, RestaurantRepository, RoleRepository
from hospitality.utils.time_utils import now_utc


def get_order_service(request: Request) -> OrderService:
    return OrderService(request.app.state.storage, request.app.state.feed)


def get_role_service(request: Request) -> RoleService:
    return RoleService(request.app.state.storage)


# ---------- Auth helpers ----------

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# auto_error=False: missing tokens are reported as AuthError with our JSON shape
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    """Hash a plain text password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = now_utc() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def profile_from_token(storage: Storage, token: Optional[str]) -> dict:
    """Resolve a bearer token to its profile row, or raise AuthError."""
    if not token:
        raise AuthError()
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AuthError("Authentication failed")
    profile_id = payload.get("sub")
    if profile_id is None:
        raise AuthError("Authentication failed")

    profile = ProfileRepository(storage).get(str(profile_id))
    if profile is None:
        raise AuthError("No user found")
    return profile


def get_current_profile(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    """Get the current profile from the JWT bearer token."""
    return profile_from_token(request.app.state.storage, token)


def require_restaurant(profile: dict = Depends(get_current_profile)) -> dict:
    """The profile must belong to a restaurant."""
    if not profile.get("restaurant_id"):
        raise AuthorizationError("No restaurant associated with user")
    return profile


def actor_for_profile(storage: Storage, profile: dict) -> Actor:
    role = None
    if profile.get("role_id") and profile.get("restaurant_id"):
        role = RoleRepository(storage).get(profile["restaurant_id"], profile["role_id"])
    return Actor(profile["id"], actor_for_role(role["name"] if role else None))


def get_actor(request: Request, profile: dict = Depends(require_restaurant)) -> Actor:
    return actor_for_profile(request.app.state.storage, profile)


def require_admin(request: Request, profile: dict = Depends(require_restaurant)) -> dict:
    """Require an admin or owner role."""
    if not RoleService(request.app.state.storage).is_admin(profile):
        raise AuthorizationError("Insufficient permissions - admin or owner role required")
    return profile


def get_payment_service(request: Request, profile: dict = Depends(require_restaurant)) -> PaymentService:
    restaurant = RestaurantRepository(request.app.state.storage).get(profile["restaurant_id"])
    return PaymentService(
        OrderService(request.app.state.storage, request.app.state.feed),
        restaurant_name=restaurant["name"] if restaurant else None,
    )
