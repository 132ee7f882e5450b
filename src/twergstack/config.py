"""
Configuration management for Twergstack

Handles configuration loading from environment variables, files,
and command-line arguments using Pydantic settings.
"""

import os
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ImageRef(BaseModel):
    """Image name and tag, qualified with the registry host at launch time."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., validation_alias=AliasChoices("name", "image"))
    tag: str = Field("latest", description="Image tag")


class NetworkAddressing(BaseModel):
    """Static addressing of a service on its environment network."""

    model_config = ConfigDict(populate_by_name=True)

    address_base: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("address_base", "addressBase", "addr_base"),
        description="First two octets (e.g. 172.18); defaults to the allocated network base",
    )
    address_suffix: int = Field(
        ...,
        validation_alias=AliasChoices("address_suffix", "addressSuffix", "addr_suffix"),
        description="Last octet of the service address",
    )

    @field_validator("address_suffix")
    @classmethod
    def validate_address_suffix(cls, v: int) -> int:
        """Keep clear of the network and gateway addresses."""
        if not 2 <= v <= 254:
            raise ValueError("address suffix must be between 2 and 254")
        return v

    @field_validator("address_base")
    @classmethod
    def validate_address_base(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not re.fullmatch(r"\d{1,3}\.\d{1,3}", v):
            raise ValueError("address base must look like '172.18'")
        return v


class ServiceDefinition(BaseModel):
    """One container of an environment stack."""

    model_config = ConfigDict(populate_by_name=True)

    service_name: str = Field(..., validation_alias=AliasChoices("service_name", "serviceName", "service"))
    image: ImageRef = Field(..., validation_alias=AliasChoices("image", "docker"))
    network: NetworkAddressing
    env: Optional[List[str]] = Field(None, validation_alias=AliasChoices("env", "envs"))
    # Internal port -> optional external port
    ports: Optional[Dict[str, Optional[str]]] = None

    @field_validator("service_name")
    @classmethod
    def validate_service_name(cls, v: str) -> str:
        """Service names become container names and network aliases."""
        if not re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9_.-]*", v):
            raise ValueError(f"Invalid service name: {v!r}")
        return v

    @field_validator("ports", mode="before")
    @classmethod
    def normalize_ports(cls, v):
        """Accept integers for ports and normalize to strings."""
        if v is None:
            return v
        return {
            str(internal): (None if external is None else str(external))
            for internal, external in v.items()
        }


class TwergstackConfig(BaseSettings):
    """
    Main configuration class for Twergstack.

    Configuration is loaded from:
    1. Environment variables (highest priority)
    2. .env file
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="TWERGSTACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database configuration
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL",
    )
    database_pool_min: int = Field(default=1, description="Minimum pooled connections")
    database_pool_max: int = Field(default=5, description="Maximum pooled connections")
    store: str = Field(
        default="postgres",
        description="Data provider backing the pipeline (postgres or memory)",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for log files",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose console output",
    )
    enable_file_logging: bool = Field(
        default=True,
        description="Write logs to rotating files under log_dir",
    )

    # Container engine configuration
    docker_base_url: Optional[str] = Field(
        default=None,
        description="Engine API URL (e.g. unix:///var/run/docker.sock); engine defaults if unset",
    )
    registry_host: str = Field(
        default="localhost:5000",
        validation_alias=AliasChoices("TWERGSTACK_REGISTRY_HOST", "REGISTRY_HTTP_ADDR"),
        description="Registry host used to qualify image references",
    )
    services_config_file: str = Field(
        default="twerg.json",
        description="Path to the service descriptor file (JSON or YAML)",
    )
    ingress_service: str = Field(
        default="nginx",
        description="Service whose container port is bound to the allocated host port",
    )
    ingress_container_port: int = Field(
        default=80,
        description="Container port of the ingress service",
    )
    label_prefix: str = Field(
        default="twergstack",
        description="Prefix of the labels put on created networks",
    )

    # Port allocation
    port_base: int = Field(
        default=8080,
        description="Base port of the host port scan",
    )
    port_window: int = Field(
        default=99,
        description="Number of ports scanned from the base",
    )

    # Migration configuration
    migration_command: str = Field(
        default="movine",
        description="Schema migration tool invoked as a child process",
    )
    migrations_path: str = Field(
        default="./migrations",
        description="Working directory of the migration tool",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("store")
    @classmethod
    def validate_store(cls, v: str) -> str:
        valid_stores = ["postgres", "memory"]
        if v.lower() not in valid_stores:
            raise ValueError(f"store must be one of: {', '.join(valid_stores)}")
        return v.lower()

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate database URL format if provided."""
        if v is None:
            return v

        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with 'postgresql://' or 'postgres://'"
            )

        return v

    @field_validator("port_base")
    @classmethod
    def validate_port_base(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port_base must be between 1 and 65535")
        return v

    @field_validator("port_window")
    @classmethod
    def validate_port_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("port_window must be at least 1")
        return v

    @property
    def is_database_configured(self) -> bool:
        """Check if database is configured (explicitly or auto-detected)."""
        return self.effective_database_url() is not None

    def get_auto_detected_database_url(self) -> Optional[str]:
        """Auto-detect database URL from environment variables."""
        if "DATABASE_URL" in os.environ:
            logger.info("Auto-detected DATABASE_URL from environment")
            return os.environ["DATABASE_URL"]

        # Check for standard PostgreSQL environment variables
        if all(var in os.environ for var in ["POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD"]):
            host = os.environ.get("POSTGRES_HOST", "localhost")
            port = os.environ.get("POSTGRES_PORT", "5432")
            db = os.environ["POSTGRES_DB"]
            user = os.environ["POSTGRES_USER"]
            password = os.environ["POSTGRES_PASSWORD"]

            url = f"postgresql://{user}:{password}@{host}:{port}/{db}"
            logger.info(f"Auto-detected PostgreSQL from environment variables: {host}:{port}/{db}")
            return url

        logger.debug("No database URL found in environment variables")
        return None

    def effective_database_url(self) -> Optional[str]:
        """Get the effective database URL (explicit or auto-detected)."""
        if self.database_url:
            return self.database_url

        return self.get_auto_detected_database_url()

    def get_log_dir_path(self) -> Path:
        """Get log directory as Path object."""
        return Path(self.log_dir)

    def create_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        log_path = self.get_log_dir_path()
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "database").mkdir(exist_ok=True)

    def mask_sensitive_values(self) -> Dict[str, object]:
        """Get configuration dict with sensitive values masked."""
        config_dict = self.model_dump()

        if config_dict.get("database_url"):
            config_dict["database_url"] = re.sub(
                r"(postgres(?:ql)?://[^:]+:)[^@]+(@.*)",
                r"\1***\2",
                config_dict["database_url"],
            )

        return config_dict


def load_config(
    config_file: Optional[str] = None,
    cli_overrides: Optional[dict] = None,
) -> TwergstackConfig:
    """
    Load configuration with optional env file and CLI overrides.

    Args:
        config_file: Optional .env-style configuration file path
        cli_overrides: CLI argument overrides

    Returns:
        Loaded configuration
    """
    if config_file and Path(config_file).exists():
        config = TwergstackConfig(_env_file=config_file)
    else:
        config = TwergstackConfig()

    if cli_overrides:
        config_data = config.model_dump()
        config_data.update(cli_overrides)
        config = TwergstackConfig(**config_data)

    config.create_directories()

    return config


def get_default_config() -> TwergstackConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration instance
    """
    return TwergstackConfig(
        log_level="DEBUG",
        verbose=True,
        store="memory",
        enable_file_logging=False,
    )
