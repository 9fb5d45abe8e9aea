"""Configuration management for DLVR services.

This module provides centralized configuration using Pydantic Settings,
supporting environment-based configuration (dev, staging, production).

All configuration is loaded from environment variables with the DLVR_ prefix.
Nested settings use double underscore as delimiter (e.g., DLVR_BEACON__TIMEOUT).

Example:
    export DLVR_ENVIRONMENT=dev
    export DLVR_SIGNING__KEY_JWK='{"kty":"EC","crv":"P-256","x":"...","y":"...","d":"..."}'
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# drand "quicknet" chain: 3-second rounds, unchained BLS signatures
DRAND_QUICKNET_CHAIN_HASH = "52db9ba70e0cc0f6eaf7803dd07447a1f5477735fd3f661792ba94600c84e971"
DRAND_DEFAULT_BASE_URL = "https://api.drand.sh"


class Environment(str, Enum):
    """Deployment environment.

    Affects default behaviors and validation strictness.
    Production environment has additional constraints.
    """

    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class SigningSettings(BaseSettings):
    """Receipt signing key settings.

    The private key is an EC P-256 JWK held in a secret. Without it the service
    generates an ephemeral key per process, and receipts cannot be re-verified
    against the service key after a restart (embedded-key verification still works).
    """

    model_config = SettingsConfigDict(
        env_prefix="DLVR_SIGNING__",
        extra="ignore",
    )

    key_jwk: SecretStr | None = Field(
        default=None,
        description="EC P-256 private key as a JWK JSON document",
    )
    require_persistent_key: bool = Field(
        default=False,
        description="Refuse to start with an ephemeral key",
    )


class BeaconSettings(BaseSettings):
    """drand randomness beacon settings for temporal anchoring."""

    model_config = SettingsConfigDict(
        env_prefix="DLVR_BEACON__",
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Anchor receipts to the latest beacon round",
    )
    base_url: str = Field(
        default=DRAND_DEFAULT_BASE_URL,
        description="drand HTTP relay base URL",
    )
    chain_hash: str = Field(
        default=DRAND_QUICKNET_CHAIN_HASH,
        description="Chain identifier of the beacon network",
    )
    timeout: Annotated[float, Field(ge=0.5, le=10.0)] = Field(
        default=3.0,
        description="Seconds before the beacon fetch is abandoned",
    )

    @field_validator("chain_hash")
    @classmethod
    def validate_chain_hash(cls, v: str) -> str:
        """Chain hashes are 32-byte hex strings."""
        v = v.lower()
        if len(v) != 64 or any(c not in "0123456789abcdef" for c in v):
            msg = "Beacon chain_hash must be 64 hex characters"
            raise ValueError(msg)
        return v


class Settings(BaseSettings):
    """Main DLVR configuration container.

    Example environment variables:
        DLVR_ENVIRONMENT=production
        DLVR_SENDER_ID=org-123
        DLVR_BEACON__ENABLED=false
    """

    model_config = SettingsConfigDict(
        env_prefix="DLVR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    # Core settings
    environment: Environment = Field(
        default=Environment.DEV,
        description="Deployment environment (dev, staging, production)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode (never in production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Identity and public links
    sender_id: str = Field(
        default="anonymous",
        description="Identity recorded as the sender of deliveries",
    )
    witness_name: str = Field(
        default="DLVR",
        description="Witness recorded on receipts and service attempts",
    )
    public_base_url: str = Field(
        default="https://dlvr.example",
        description="Base URL for tracking, receipt and verification links",
    )

    signing: SigningSettings = Field(default_factory=SigningSettings)
    beacon: BeaconSettings = Field(default_factory=BeaconSettings)

    # API settings
    api_host: str = Field(
        default="127.0.0.1",
        description="API server bind address",
    )
    api_port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=8000,
        description="API server port",
    )

    # Application metadata
    app_name: str = Field(
        default="DLVR",
        description="Application name for logging and service metadata",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            msg = f"log_level must be one of: {', '.join(sorted(allowed))}"
            raise ValueError(msg)
        return v.upper()

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_production_constraints(self) -> Self:
        """Enforce production environment constraints.

        Receipts issued in production must stay verifiable against the service
        key across restarts, so an ephemeral key is refused there.
        """
        if self.environment == Environment.PRODUCTION:
            if self.debug:
                msg = "Debug mode is not allowed in production environment"
                raise ValueError(msg)
            if self.signing.key_jwk is None:
                msg = (
                    "Production environment requires a persistent signing key. "
                    "Set DLVR_SIGNING__KEY_JWK."
                )
                raise ValueError(msg)
            if not self.public_base_url.startswith("https://"):
                logger.warning(
                    "public_base_url is not HTTPS in production: %s",
                    self.public_base_url,
                )
        return self

    @cached_property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def get_policy_snapshot(self) -> dict[str, Any]:
        """Non-sensitive configuration values, suitable for logging."""
        return {
            "environment": self.environment.value,
            "sender_id": self.sender_id,
            "signing": {
                "persistent_key": self.signing.key_jwk is not None,
                "require_persistent_key": self.signing.require_persistent_key,
            },
            "beacon": {
                "enabled": self.beacon.enabled,
                "base_url": self.beacon.base_url,
                "chain_hash": self.beacon.chain_hash,
                "timeout": self.beacon.timeout,
            },
            "app_version": self.app_version,
        }

    def get_policy_hash(self) -> str:
        """SHA-256 hex digest of the policy snapshot."""
        snapshot = self.get_policy_snapshot()
        snapshot_json = json.dumps(snapshot, sort_keys=True)
        return hashlib.sha256(snapshot_json.encode()).hexdigest()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails.

    This exception should cause fast failure at startup to prevent
    running with invalid configuration.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)


def validate_settings(settings: Settings) -> None:
    """Perform runtime validation that cannot be expressed declaratively.

    Raises:
        ConfigValidationError: If validation fails.
    """
    if settings.signing.require_persistent_key and settings.signing.key_jwk is None:
        raise ConfigValidationError(
            "A persistent signing key is required. Set DLVR_SIGNING__KEY_JWK.",
            field="signing.key_jwk",
        )

    if settings.signing.key_jwk is not None:
        try:
            json.loads(settings.signing.key_jwk.get_secret_value())
        except json.JSONDecodeError as e:
            raise ConfigValidationError(
                "DLVR_SIGNING__KEY_JWK is not valid JSON.",
                field="signing.key_jwk",
            ) from e

    if not settings.beacon.base_url.startswith(("http://", "https://")):
        raise ConfigValidationError(
            "Beacon base_url must be an http(s) URL.",
            field="beacon.base_url",
        )

    logger.info(
        "Configuration validated. Policy hash: %s",
        settings.get_policy_hash(),
    )
