from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Parse Server REST API
    PARSE_SERVER_URL: str = "http://localhost:1337/parse"
    PARSE_APP_ID: str = ""
    PARSE_REST_API_KEY: Optional[str] = None
    PARSE_MASTER_KEY: Optional[str] = None
    REQUEST_TIMEOUT: float = 30.0

    # MongoDB (direct execution)
    MONGO_URI: Optional[str] = None
    MONGO_DB: Optional[str] = None
    MONGO_DIRECT_ENABLED: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

settings = Settings()
