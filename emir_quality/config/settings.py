"""
Engine configuration.

Settings come from environment variables, optionally seeded from a ``.env``
file. Each deployment environment has a profile supplying defaults for log
level and report retention.
"""

import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from emir_quality.validation.format import DuplicatePolicy

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class EnvironmentProfile(BaseModel):
    """
    Per-environment defaults.

    Attributes:
        log_level: Default log level
        report_retention_days: Days results are kept (TTL of stored rows)
    """

    log_level: str
    report_retention_days: int = Field(..., gt=0)

    class Config:
        frozen = True


PROFILES: dict[Environment, EnvironmentProfile] = {
    Environment.DEV: EnvironmentProfile(log_level="DEBUG", report_retention_days=90),
    Environment.STAGING: EnvironmentProfile(log_level="INFO", report_retention_days=365),
    # Two-year regulatory retention
    Environment.PROD: EnvironmentProfile(log_level="INFO", report_retention_days=730),
}


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = Field(5432, gt=0)
    name: str = "emir_quality"
    user: str = "emir"
    password: str | None = None


class PipelineSettings(BaseModel):
    """
    Complete engine configuration.

    Attributes:
        environment: dev, staging or prod
        schema_version: Schema version to validate against
        schema_dir: Directory of schema YAML files
        rules_path: Rule catalog YAML file
        reference_dir: Directory of reference code tables
        shard_count: Shards (worker threads) per phase
        batch_size: Records per micro-batch
        queue_size: Micro-batches buffered per shard
        max_retries: Phase retries after the first attempt
        retry_base_delay: Backoff base delay in seconds
        retry_max_delay: Backoff cap in seconds
        duplicate_uti_policy: per_group or per_occurrence
        log_level: Log level (profile default when unset)
        log_format: json or text
        metrics_port: Port of the Prometheus endpoint (disabled when unset)
        report_retention_days: Result retention (profile default when unset)
        database: Result store connection settings
    """

    environment: Environment = Environment.DEV
    schema_version: str = "v1"
    schema_dir: Path = DEFAULT_CONFIG_DIR / "schema"
    rules_path: Path = DEFAULT_CONFIG_DIR / "rules" / "emir_rules.yaml"
    reference_dir: Path = DEFAULT_CONFIG_DIR / "reference"
    shard_count: int = Field(4, ge=1)
    batch_size: int = Field(1000, ge=1)
    queue_size: int = Field(4, ge=1)
    max_retries: int = Field(3, ge=0)
    retry_base_delay: float = Field(1.0, ge=0.0)
    retry_max_delay: float = Field(60.0, ge=0.0)
    duplicate_uti_policy: DuplicatePolicy = DuplicatePolicy.PER_GROUP
    log_level: str | None = None
    log_format: str = Field("json", pattern="^(json|text)$")
    metrics_port: int | None = None
    report_retention_days: int | None = Field(None, gt=0)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @property
    def profile(self) -> EnvironmentProfile:
        return PROFILES[self.environment]

    @property
    def effective_log_level(self) -> str:
        return (self.log_level or self.profile.log_level).upper()

    @property
    def effective_retention_days(self) -> int:
        return self.report_retention_days or self.profile.report_retention_days


# settings field -> environment variable
ENV_VARS = {
    "environment": "EMIR_ENVIRONMENT",
    "schema_version": "EMIR_SCHEMA_VERSION",
    "schema_dir": "EMIR_SCHEMA_DIR",
    "rules_path": "EMIR_RULES_PATH",
    "reference_dir": "EMIR_REFERENCE_DIR",
    "shard_count": "EMIR_SHARD_COUNT",
    "batch_size": "EMIR_BATCH_SIZE",
    "queue_size": "EMIR_QUEUE_SIZE",
    "max_retries": "EMIR_MAX_RETRIES",
    "retry_base_delay": "EMIR_RETRY_BASE_DELAY",
    "retry_max_delay": "EMIR_RETRY_MAX_DELAY",
    "duplicate_uti_policy": "EMIR_DUPLICATE_UTI_POLICY",
    "report_retention_days": "EMIR_REPORT_RETENTION_DAYS",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
    "metrics_port": "METRICS_PORT",
}

DATABASE_ENV_VARS = {
    "host": "DB_HOST",
    "port": "DB_PORT",
    "name": "DB_NAME",
    "user": "DB_USER",
    "password": "DB_PASSWORD",
}


def load_settings(env_file: str | Path | None = None, environ: Mapping[str, str] | None = None) -> PipelineSettings:
    """
    Build settings from the environment.

    Args:
        env_file: ``.env`` file to load first (variables already set win);
            ignored when ``environ`` is given
        environ: Explicit variable mapping (defaults to ``os.environ``)

    Returns:
        Validated PipelineSettings

    Raises:
        ValueError: If a variable has an invalid value
    """
    if environ is None:
        if env_file is not None:
            load_dotenv(dotenv_path=env_file, override=False)
        else:
            load_dotenv(override=False)
        environ = os.environ

    values = {key: environ[var] for key, var in ENV_VARS.items() if environ.get(var)}
    database = {key: environ[var] for key, var in DATABASE_ENV_VARS.items() if environ.get(var)}
    if database:
        values["database"] = database

    try:
        return PipelineSettings(**values)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
