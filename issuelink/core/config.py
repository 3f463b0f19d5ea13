"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Internal endpoints (cron / support tooling)
    INTERNAL_SECRET: str = ""  # Secret for /internal/reconciliation/* endpoints

    # Identifier extraction
    # "custom_fields" scans every custom field, "custom_fields.<id>" a single one.
    IDENTIFIER_FIELDS: list[str] = ["custom_fields", "summary", "description"]
    CLIENT_NAME_FIELD: str = "customfield_12184"

    # Domain classification
    DOMAIN_PROJECT_PREFIXES: dict[str, list[str]] = {
        "marine": ["MREQ", "TOPS", "BZD", "EASY", "NBK", "MDEV", "ESST"],
        "storage": ["EDGE", "SL", "SLT", "PAY", "CRM", "DATA", "BUGS"],
    }
    SHARED_PROJECT_PREFIXES: list[str] = ["CPBUG", "POL", "SFT", "WA"]
    DOMAIN_ACCOUNT_KEYWORDS: dict[str, list[str]] = {
        "marine": ["dockwa", "marina", "molo"],
        "storage": ["edge", "sitelink", "storable"],
    }
    # Product lines checked for theme_association candidates only
    PRODUCT_LINE_PREFIXES: dict[str, list[str]] = {
        "edge": ["EDGE"],
        "sitelink": ["SL", "SLT"],
    }

    # Link writes
    LINK_WRITE_BATCH_SIZE: int = 100
    LINK_WRITE_MAX_ATTEMPTS: int = 3
    LINK_WRITE_RETRY_BASE_DELAY: float = 0.5
    LINK_WRITE_RETRY_MAX_DELAY: float = 4.0

    # Runs
    RECONCILE_MAX_WORKERS: int = 4
    RECONCILE_LOCK_TIMEOUT_SECONDS: float = 600.0

    # Rollups
    ROLLUP_WINDOW_DAYS: int = 30


settings = Settings()
