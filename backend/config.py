import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Clinic Ledger API")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"))

    # ---------- MongoDB ----------
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "clinic")
    MONGO_TIMEOUT_MS: int = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

    # ---------- Billing / inventory ----------
    DEFAULT_CONSULTATION_FEE: float = float(os.getenv("DEFAULT_CONSULTATION_FEE", "500"))
    EXPIRY_WARNING_DAYS: int = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))
    DEFAULT_MIN_STOCK_LEVEL: int = int(os.getenv("DEFAULT_MIN_STOCK_LEVEL", "10"))

    # ---------- Sequential identifiers ----------
    ID_WIDTH: int = int(os.getenv("ID_WIDTH", "3"))
    ID_MAX_RETRIES: int = int(os.getenv("ID_MAX_RETRIES", "3"))

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))
    AUTH_REQUIRED: bool = _flag("AUTH_REQUIRED", "true")

    # ---------- Seed admin ----------
    ADMIN_NAME: str = os.getenv("ADMIN_NAME", "Clinic Admin")
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@clinic.local")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "")


settings = Settings()
