"""Global configuration using pydantic settings management.

Values are loaded from environment variables (or an .env file) and
exposed via the singleton `settings` instance. Services receive the
instance explicitly at construction; only the wiring layer reads the
singleton.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Google clients read GOOGLE_APPLICATION_CREDENTIALS from os.environ
load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application configuration loaded from env or defaults."""

    # Firestore namespace + Firebase web config
    app_id: str = Field(default="default-app-id", alias="APP_ID")
    firebase_config: str = Field(default="{}", alias="FIREBASE_CONFIG")
    initial_auth_token: Optional[str] = Field(default=None, alias="INITIAL_AUTH_TOKEN")
    project_id: str = Field(default="", alias="GOOGLE_CLOUD_PROJECT")
    auth_timeout_seconds: float = Field(default=10.0, alias="AUTH_TIMEOUT_SECONDS")

    # Gemini
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    model_name: str = Field(default="gemini-2.0-flash", alias="GEMINI_MODEL")
    use_vertex: bool = Field(default=False, alias="GEMINI_USE_VERTEX")
    model_location: str = Field(default="global", alias="GCP_MODEL_LOCATION")
    inference_timeout_seconds: float = Field(default=30.0, alias="INFERENCE_TIMEOUT_SECONDS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS - accept comma-separated string
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def firebase_options(self) -> Dict[str, Any]:
        """Parsed FIREBASE_CONFIG; an unparsable value counts as empty."""
        try:
            options = json.loads(self.firebase_config or "{}")
        except ValueError:
            logger.error("FIREBASE_CONFIG is not valid JSON; ignoring it")
            return {}
        return options if isinstance(options, dict) else {}

    @property
    def firebase_api_key(self) -> str:
        return self.firebase_options.get("apiKey", "")

    @property
    def firestore_project(self) -> Optional[str]:
        return self.firebase_options.get("projectId") or self.project_id or None

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


settings = Settings()
