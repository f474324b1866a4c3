"""Settings for the SCIM mirror service."""

from typing import Optional

from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the SCIM mirror service.

    [pydantic.BaseSettings](https://docs.pydantic.dev/latest/concepts/pydantic_settings/) reads
    configuration values from environment variables and, for local development, a .env file.

    Environment variable names are treated case-insensitively, but the canonical
    names used in this project are lowercase (ias_client_id, ias_scim_base_url, ...).
    """

    # Identity directory (SCIM) and its OAuth token endpoint
    ias_token_url: str
    """OAuth2 token endpoint of the identity directory (client credentials grant)."""

    ias_client_id: str
    """Client ID used to obtain directory access tokens (required)."""

    ias_client_secret: str
    """Client secret used to obtain directory access tokens (required)."""

    ias_scim_base_url: str
    """Base URL of the SCIM API, e.g. https://tenant.accounts.ondemand.com/scim."""

    token_refresh_margin_seconds: int = 30
    """Cached tokens are refreshed this many seconds before they expire."""

    # Directory fetch behaviour
    directory_page_size: int = 100
    """Number of resources requested per SCIM page."""

    http_connect_timeout_seconds: float = 5.0
    """Connect timeout for every directory HTTP call."""

    http_read_timeout_seconds: float = 30.0
    """Read timeout for every directory HTTP call."""

    directory_fetch_timeout_seconds: float = 300.0
    """Upper bound for fetching every page of one entity type."""

    # Local mirror database
    database_connection_string: Optional[str] = None
    """PostgreSQL connection string for the local identity mirror."""

    # Reconciliation schedule
    enable_scheduler: bool = True
    """Run reconciliation passes in the background on a fixed interval."""

    sync_interval_seconds: float = 60.0
    """Interval between two scheduled reconciliation passes."""

    # Logging
    log_level: str = "INFO"
    """Minimum level for the stdout log sink."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",  # Load from .env file if it exists (local development)
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )
