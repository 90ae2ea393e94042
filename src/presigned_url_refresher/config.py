import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# DynamoDB scan page size. Kept small so one page fits comfortably in a
# single fan-out of presign + UpdateItem calls.
BATCH_SIZE = 25

DEFAULT_EXPIRATION_DAYS = 7

# SigV4 presigned URLs are capped at seven days.
MAX_EXPIRATION_DAYS = 7

REQUIRED_ENV_VARS = ("TABLE_NAME", "S3_BUCKET_NAME")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Required Variables ---
    table_name: str
    bucket_name: str

    # --- Optional Variables with Defaults ---
    expiration_days: int
    log_level: str
    max_workers: int
    max_scan_throttle_retries: int

    # --- Notification Settings (summary e-mail is skipped when unset) ---
    ses_from_email: str | None
    ses_to_emails: tuple[str, ...]

    # --- Derived Properties ---
    @property
    def expiration_seconds(self) -> int:
        return self.expiration_days * 86_400

    @property
    def batch_size(self) -> int:
        return BATCH_SIZE

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
        if missing:
            raise ConfigurationError(
                f"Required environment variables {' and '.join(missing)} must be set",
                context={"missing": missing},
            )

        try:
            table_name = os.environ["TABLE_NAME"]
            bucket_name = os.environ["S3_BUCKET_NAME"]

            expiration_days = int(
                os.getenv("PRESIGNED_URL_EXPIRATION_DAYS", str(DEFAULT_EXPIRATION_DAYS))
            )
            if not 1 <= expiration_days <= MAX_EXPIRATION_DAYS:
                raise ValueError(
                    f"PRESIGNED_URL_EXPIRATION_DAYS must be between 1 and {MAX_EXPIRATION_DAYS}."
                )

            max_workers = int(os.getenv("MAX_WORKERS", "10"))
            if max_workers <= 0:
                raise ValueError("MAX_WORKERS must be a positive integer.")

            max_scan_throttle_retries = int(os.getenv("MAX_SCAN_THROTTLE_RETRIES", "10"))
            if max_scan_throttle_retries < 0:
                raise ValueError(
                    "MAX_SCAN_THROTTLE_RETRIES must be a non-negative integer."
                )

            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            ses_from_email = os.getenv("SES_FROM_EMAIL") or None
            ses_to_emails = parse_recipients(os.getenv("SES_TO_EMAILS", ""))

        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            table_name=table_name,
            bucket_name=bucket_name,
            expiration_days=expiration_days,
            log_level=log_level,
            max_workers=max_workers,
            max_scan_throttle_retries=max_scan_throttle_retries,
            ses_from_email=ses_from_email,
            ses_to_emails=ses_to_emails,
        )


def parse_recipients(raw: str) -> tuple[str, ...]:
    """Splits a comma-separated address list, trimming whitespace and dropping blanks."""
    return tuple(address.strip() for address in raw.split(",") if address.strip())


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first successful call. A failed load is not cached.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
