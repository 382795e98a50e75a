"""Environment-driven settings for the hospitality backend."""

import os


def _float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()

# Storage: "memory" (default) or "sqlalchemy"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///hospitality.db")
USE_ALEMBIC = os.getenv("USE_ALEMBIC", "false").lower() == "true"

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

# Billing
TAX_RATE = _float("TAX_RATE", "0.10")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")
RESTAURANT_TIMEZONE = os.getenv("RESTAURANT_TIMEZONE", "Asia/Kolkata")

# Realtime resync
SYNC_MAX_ATTEMPTS = int(os.getenv("SYNC_MAX_ATTEMPTS", "3"))
SYNC_RETRY_DELAY = _float("SYNC_RETRY_DELAY", "0.5")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]


def is_dev() -> bool:
    return ENVIRONMENT == "dev"
