"""
CRD Catalog Configuration

Centralized configuration management using Pydantic Settings.
Supports environment variables and .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogSettings(BaseSettings):
    """Rule catalog and artifact layout settings."""
    
    model_config = SettingsConfigDict(
        env_prefix="CRD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
    
    # Artifact tree
    rule_root: Path = Path("CDS-Library")
    shared_folder: str = "Shared"
    hidden_prefix: str = "."
    manifest_filename: str = "TopicMetadata.json"
    files_folder: str = "files"
    resources_folder: str = "resources"
    rule_extension: str = "cql"
    
    # Public base URL of this service, used for canonical URL lookups
    base_url: str = "http://localhost:8090/"
    
    # Logging
    log_level: str = "INFO"
    json_logs: bool = True


class TerminologySettings(BaseSettings):
    """External value set (VSAC-style) loader settings."""
    
    model_config = SettingsConfigDict(
        env_prefix="VSAC_",
        env_file=".env",
        extra="ignore",
    )
    
    base_url: str = "https://cts.nlm.nih.gov/fhir/"
    username: str | None = None
    password: SecretStr | None = None
    # Defaults to <rule_root>/<shared_folder> so cached value sets are indexed as shared resources
    cache_dir: Path | None = None
    timeout: float = 30.0
    prefetch_urls: list[str] = Field(default_factory=list)
    
    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


class Settings:
    """
    Aggregated settings container.
    
    Usage:
        from crd_catalog.config import get_settings
        settings = get_settings()
        print(settings.catalog.rule_root)
    """
    
    def __init__(
        self,
        catalog: CatalogSettings | None = None,
        terminology: TerminologySettings | None = None,
    ):
        self.catalog = catalog or CatalogSettings()
        self.terminology = terminology or TerminologySettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Returns:
        Settings: The application settings
    """
    return Settings()
