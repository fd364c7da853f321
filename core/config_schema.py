"""Pydantic configuration schema for lambda-http-bridge."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.interfaces import ServiceConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingConfig(BaseModel):
    """Logging section of the configuration."""

    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Root log level")
    pretty: bool = Field(default=False, description="Indented JSON (local development)")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of {', '.join(LOG_LEVELS)}")
        return level


class BridgeConfig(BaseModel):
    """Configuration schema for the Lambda bridge.

    This schema validates config.yaml (or the LAMBDA_BRIDGE_CONFIG
    environment variable).
    """

    model_config = ConfigDict(extra="forbid")

    app: Optional[str] = Field(
        None,
        description="Import string 'module:attribute' of the service factory callable",
    )
    binary_media_types: List[str] = Field(
        default_factory=list,
        description="Content types transmitted as base64-encoded binary payloads",
    )
    server: ServiceConfig = Field(default_factory=ServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("app")
    @classmethod
    def validate_app(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the import string names a module and an attribute."""
        if v is None:
            return v
        module_name, sep, attribute = v.partition(":")
        if not sep or not module_name.strip() or not attribute.strip():
            raise ValueError("app must look like 'package.module:attribute'")
        return v.strip()

    @field_validator("binary_media_types")
    @classmethod
    def validate_media_types(cls, v: List[str]) -> List[str]:
        for media_type in v:
            if not media_type or "/" not in media_type:
                raise ValueError(f"Invalid media type: {media_type!r}")
        return v
