from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STACVIEW_", env_file=".env", extra="ignore")

    # Catalog
    stac_api_url: str = "https://spectra.brin.go.id/stac"
    default_limit: int = 100
    request_timeout: float = 30.0

    # Hosting page, used for https upgrade and cross-origin decisions
    page_scheme: str = "https"
    page_origin: Optional[str] = None

    # Tile layers
    tile_extension: str = "png"
    default_min_zoom: int = 0
    default_max_zoom: int = 18
    outline_with_imagery: bool = False
    fit_padding: int = 50

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
