"""townlens configuration."""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    estat_app_id: str = ""
    reinfolib_api_key: str = ""

    estat_base_url: str = "https://api.e-stat.go.jp/rest/3.0/app/json/"
    reinfo_base_url: str = "https://www.reinfolib.mlit.go.jp/ex-api/external/"
    gsi_geocode_url: str = "https://msearch.gsi.go.jp/address-search/AddressSearch"

    # Upstream call policy
    http_timeout_seconds: float = 30.0
    upstream_deadline_seconds: float = 30.0
    upstream_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    max_concurrent_fetches: int = 4

    # Cache TTLs per dataset class
    cache_ttl_census_seconds: float = 30 * 24 * 3600
    cache_ttl_annual_seconds: float = 7 * 24 * 3600
    cache_ttl_market_seconds: float = 24 * 3600
    geocode_cache_ttl_seconds: float = 3600

    log_json: bool = False
    log_level: str = "INFO"

    mlflow_enabled: bool = False
    mlflow_tracking_uri: str = "sqlite:///mlruns/mlflow.db"
    mlflow_experiment_name: str = "townlens-reports"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _strip_credentials(self):
        """Strip whitespace/newlines from credentials (common copy-paste artifact)."""
        self.estat_app_id = self.estat_app_id.strip()
        self.reinfolib_api_key = self.reinfolib_api_key.strip()
        return self


settings = Settings()
