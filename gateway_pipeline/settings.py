"""Environment-driven settings for the pipeline commands."""

from __future__ import annotations

import shlex
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway_pipeline.errors import ConfigurationError


class PipelineSettings(BaseSettings):
    """Settings shared by every pipeline command."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    POSTMAN_API_KEY: str | None = Field(default=None, description="Postman API key (X-API-Key).")
    POSTMAN_API_BASE: str = Field(default="https://api.getpostman.com")
    POSTMAN_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    PROJECT_NAME: str = Field(
        default="Project X",
        description="Prefix for published collection names and team workspace lookup.",
    )

    SERVICES_DIR: Path = Field(default=Path("services"))
    GATEWAY_DIR: Path = Field(default=Path("gateway"))
    GENERATE_DIR: Path = Field(default=Path(".generate"))
    COLLECTIONS_DIR: Path = Field(default=Path("postman-collections"))

    SWAGGER2OPENAPI_COMMAND: str = Field(default="npx swagger2openapi")
    API_SPEC_CONVERTER_COMMAND: str = Field(default="npx api-spec-converter")
    SWAGGER_CLI_COMMAND: str = Field(default="npx swagger-cli")

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="console", description="'console' or 'json'.")

    @property
    def gateway_config_path(self) -> Path:
        return self.GATEWAY_DIR / "config.json"

    def command(self, name: str) -> list[str]:
        """Split one of the *_COMMAND settings into an argv prefix."""
        return shlex.split(getattr(self, name))

    def require_api_key(self) -> str:
        if not self.POSTMAN_API_KEY:
            raise ConfigurationError("POSTMAN_API_KEY environment variable is required")
        return self.POSTMAN_API_KEY
