"""
Network provisioning for environments.
"""

import logging
from typing import Dict

from .. import __version__
from ..errors import NetworkIdMissing
from .engine import ContainerEngine

logger = logging.getLogger(__name__)


def format_network(env_name: str) -> str:
    """Name of the bridge network of an environment."""
    return f"{env_name}_default"


class NetworkProvisioner:
    """Creates the isolated bridge network of one environment."""

    def __init__(self, engine: ContainerEngine, label_prefix: str = "twergstack"):
        self.engine = engine
        self.label_prefix = label_prefix

    def labels(self, env_name: str) -> Dict[str, str]:
        return {
            f"{self.label_prefix}.network": "default",
            f"{self.label_prefix}.version": __version__,
            f"{self.label_prefix}.environment": env_name,
        }

    async def create(self, env_name: str, network_base: str) -> str:
        """
        Create ``<env>_default`` on ``<base>.0.0/16`` with gateway ``<base>.0.1``.

        Args:
            env_name: Environment owning the network
            network_base: Two-octet base from the network allocator (e.g. 172.18)

        Returns:
            The engine-assigned network id

        Raises:
            EngineError: If the engine rejects the creation
            NetworkIdMissing: If the engine reports no id
        """
        name = format_network(env_name)
        subnet = f"{network_base}.0.0/16"
        gateway = f"{network_base}.0.1"

        logger.info(f"Creating network {name} ({subnet}, gateway {gateway})")
        network_id = await self.engine.create_network(name, subnet, gateway, self.labels(env_name))

        if not network_id:
            logger.error(f"Could not get network id for {name}")
            raise NetworkIdMissing(name)

        logger.debug(f"Network created: {network_id}")
        return network_id
