import os
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    database_url: str
    sql_echo: bool = False
    reset_db_on_startup: bool = False
    booking_code_style: Literal["alphanumeric", "numeric"] = "alphanumeric"
    booking_code_max_attempts: int = Field(default=5, ge=1)
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # 1. Load environment variables from .env file
        load_dotenv()

        # 2. Get the URL. If it's not found, raise an error to fail fast.
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise ValueError("DATABASE_URL is not set. Please check your .env file.")

        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            database_url=database_url,
            sql_echo=os.environ.get("SQL_ECHO", "false").lower() in TRUTHY,
            reset_db_on_startup=os.environ.get("RESET_DB_ON_STARTUP", "false").lower() in TRUTHY,
            booking_code_style=os.environ.get("BOOKING_CODE_STYLE", "alphanumeric").lower(),
            booking_code_max_attempts=int(os.environ.get("BOOKING_CODE_MAX_ATTEMPTS", "5")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
