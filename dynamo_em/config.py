"""
Configuration management for the entity manager.

All configuration can be loaded from environment variables. This module
provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages
    - transaction max_items never exceeds what the store accepts

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Document new environment variables in the class docstring
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# Per-call ceiling of DynamoDB TransactWriteItems
DYNAMODB_MAX_TRANSACTION_ITEMS = 100
DEFAULT_TRANSACTION_MAX_ITEMS = 25


class FlushStrategy(Enum):
    """How tracked changes are written on flush."""

    PARALLEL = "parallel"
    TRANSACTIONAL = "transactional"


class LimitPolicy(Enum):
    """What a transactional flush does when it needs more than max_items writes
    and no fallback flusher is configured."""

    FAIL = "fail"
    CHUNK = "chunk"


class FallbackStrategy(Enum):
    """Flusher to delegate to when a transactional batch is too large."""

    NONE = "none"
    PARALLEL = "parallel"


def _parse_enum(enum_cls: type[Enum], env_name: str, default: str) -> Enum:
    raw = os.getenv(env_name, default).lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {env_name} '{raw}'. Must be one of: {allowed}")


@dataclass(frozen=True)
class DynamoDbConfig:
    """DynamoDB store configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (DynamoDB Local, LocalStack)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
        timeout_seconds: Per-call timeout applied by the store adapter
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> DynamoDbConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv(
                "DYNAMODB_REGION",
                os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            ),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            timeout_seconds=float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class FlushConfig:
    """Flush strategy configuration.

    Attributes:
        strategy: Parallel or transactional flushing
        transaction_max_items: Largest batch written in one transaction
        limit_policy: Fail or chunk when a batch exceeds the limit
        fallback: Flusher used instead when a batch exceeds the limit
    """

    strategy: FlushStrategy = FlushStrategy.TRANSACTIONAL
    transaction_max_items: int = DEFAULT_TRANSACTION_MAX_ITEMS
    limit_policy: LimitPolicy = LimitPolicy.FAIL
    fallback: FallbackStrategy = FallbackStrategy.NONE

    @classmethod
    def from_env(cls) -> FlushConfig:
        """Load configuration from environment variables."""
        return cls(
            strategy=_parse_enum(FlushStrategy, "FLUSH_STRATEGY", "transactional"),
            transaction_max_items=int(
                os.getenv("TRANSACTION_MAX_ITEMS", str(DEFAULT_TRANSACTION_MAX_ITEMS))
            ),
            limit_policy=_parse_enum(LimitPolicy, "TRANSACTION_LIMIT_POLICY", "fail"),
            fallback=_parse_enum(FallbackStrategy, "TRANSACTION_FALLBACK", "none"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class EntityManagerConfig:
    """Complete configuration.

    Attributes:
        dynamodb: DynamoDB store configuration
        flush: Flush strategy configuration
        observability: Logging configuration
    """

    dynamodb: DynamoDbConfig = field(default_factory=DynamoDbConfig)
    flush: FlushConfig = field(default_factory=FlushConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EntityManagerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            dynamodb=DynamoDbConfig.from_env(),
            flush=FlushConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        max_items = self.flush.transaction_max_items
        if max_items < 1:
            raise ValueError("TRANSACTION_MAX_ITEMS must be at least 1")
        if max_items > DYNAMODB_MAX_TRANSACTION_ITEMS:
            raise ValueError(
                f"TRANSACTION_MAX_ITEMS cannot exceed {DYNAMODB_MAX_TRANSACTION_ITEMS}"
            )
        if self.dynamodb.timeout_seconds <= 0:
            raise ValueError("DYNAMODB_TIMEOUT_SECONDS must be positive")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if self.flush.strategy == FlushStrategy.PARALLEL and self.flush.fallback != FallbackStrategy.NONE:
            logger.warning("TRANSACTION_FALLBACK is ignored when FLUSH_STRATEGY=parallel")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Entity manager configuration loaded",
            extra={
                "dynamodb_region": self.dynamodb.region,
                "dynamodb_endpoint": self.dynamodb.endpoint_url or "AWS",
                "flush_strategy": self.flush.strategy.value,
                "transaction_max_items": self.flush.transaction_max_items,
                "limit_policy": self.flush.limit_policy.value,
                "fallback": self.flush.fallback.value,
                "log_level": self.observability.log_level,
            },
        )
