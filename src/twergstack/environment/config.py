"""
Service descriptor file parsing and validation.
"""

import asyncio
import logging
from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError

from ..config import ServiceDefinition, TwergstackConfig
from ..errors import ConfigError, IOFailureError

logger = logging.getLogger(__name__)


def parse_service_definitions(content: str, source: str = "<string>") -> List[ServiceDefinition]:
    """
    Parse an ordered list of service definitions.

    JSON documents are valid YAML, so both formats go through the YAML loader.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not deserialize {source}: {e}") from e

    if isinstance(data, dict) and "services" in data:
        data = data["services"]

    if not isinstance(data, list) or not data:
        raise ConfigError(f"{source} must contain a non-empty list of services")

    try:
        services = [ServiceDefinition.model_validate(item) for item in data]
    except ValidationError as e:
        raise ConfigError(f"Invalid service definition in {source}: {e}") from e

    names = [service.service_name for service in services]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate service names in {source}: {', '.join(duplicates)}")

    return services


class ServiceConfigParser:
    """Loads the service descriptors named by the process configuration."""

    def __init__(self, config: TwergstackConfig):
        self.config = config

    @property
    def path(self) -> Path:
        return Path(self.config.services_config_file)

    def load(self) -> List[ServiceDefinition]:
        path = self.path
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigError(f"Could not open service configuration at {path}") from e
        except OSError as e:
            raise IOFailureError(f"Could not read service configuration at {path}: {e}") from e

        services = parse_service_definitions(content, str(path))
        logger.debug(f"Loaded {len(services)} service(s) from {path}")
        return services

    async def load_async(self) -> List[ServiceDefinition]:
        return await asyncio.to_thread(self.load)
