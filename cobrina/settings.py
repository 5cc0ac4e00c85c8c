import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    APP_VERSION: str = "2.4.0"

    # --- CONFIG ---
    ENV = os.getenv("COBRINA_ENV", "production")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cobrina.db")
    SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"

    # --- AUTH ---
    JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret_change_me")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "10"))

    # --- LIMITS ---
    STICKY_MAX_PER_USER = 10
    MAX_PAGE_AUDITS = 200
    MAX_PAGE_GESTIONES = 1000
    MAX_PAGE_PROYECCIONES = 200
    MAX_PAGE_COLCHON = 200

    # --- ANALYTICS ---
    ANALYTICS_CACHE_TTL_SECONDS = float(os.getenv("ANALYTICS_CACHE_TTL_SECONDS", "45"))


@lru_cache
def get_settings():
    return Settings()
