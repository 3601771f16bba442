from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Remote source
    LICENSE_SOURCE_BASE_URL: str = "https://active.clewm.net/"
    LICENSE_SOURCE_CODE: str = ""
    LICENSE_SOURCE_PASSWORD: Optional[str] = None  # Enables the batch API strategy

    # Batch API
    LICENSE_BATCH_API_URL: str = "https://nc.cli.im/api/batch"
    LICENSE_BATCH_ROUTE_PATH: str = "/qrcoderoute/qrcodeRouteNew"

    # Transport
    LICENSE_API_TIMEOUT: int = 30
    FETCH_MAX_ATTEMPTS: int = 2
    FETCH_RETRY_DELAY_SECONDS: float = 3.0
    HTTP_PROXY: Optional[str] = None

    # Service
    SERVICE_NAME: str = "license-client"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
