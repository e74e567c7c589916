import logging

from pydantic_settings import BaseSettings
from typing import List

_logger = logging.getLogger(__name__)

_FALLBACK_NOMINATIM_UA = "PlaceLink/0.1 (personal place organizer)"


class Settings(BaseSettings):
    # App
    APP_NAME: str = "PlaceLink"
    APP_VERSION: str = "0.1.0"

    def model_post_init(self, __context) -> None:
        if not self.NOMINATIM_USER_AGENT:
            _logger.warning(
                "NOMINATIM_USER_AGENT not set — using fallback UA. "
                "Set NOMINATIM_USER_AGENT in your .env to identify this app "
                "per the Nominatim usage policy.",
            )
            object.__setattr__(self, "NOMINATIM_USER_AGENT", _FALLBACK_NOMINATIM_UA)

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Browser
    BROWSER_HEADLESS: bool = True
    BROWSER_EXECUTABLE_PATH: str = ""  # empty = Playwright's bundled Chromium
    BROWSER_CONSTRAINED_ENV: bool = False  # container/serverless launch flags
    BROWSER_IDLE_TIMEOUT: float = 60.0  # seconds without acquisition before close
    BROWSER_IDLE_CHECK_INTERVAL: float = 10.0  # seconds

    # Scraping (ms unless noted)
    SCRAPE_NAVIGATION_TIMEOUT: int = 30000
    SCRAPE_CONSENT_NAVIGATION_TIMEOUT: int = 15000
    SCRAPE_HEADING_TIMEOUT: int = 10000
    SCRAPE_ADDRESS_TIMEOUT: int = 3000
    SCRAPE_SETTLE_DELAY: float = 2.5  # seconds
    SCRAPE_PLACE_DETAILS: bool = True

    # Redirect expansion
    REDIRECT_TIMEOUT: float = 10.0  # seconds

    # Nominatim
    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"
    NOMINATIM_USER_AGENT: str = ""
    NOMINATIM_REFERER: str = ""
    NOMINATIM_MIN_INTERVAL: float = 1.0  # seconds between requests
    NOMINATIM_TIMEOUT: float = 10.0  # seconds

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2
    SENTRY_ENVIRONMENT: str = "development"

    # Logging
    LOG_FORMAT: str = "json"  # "json" for production, "text" for development
    LOG_LEVEL: str = "INFO"

    # Metrics
    METRICS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
