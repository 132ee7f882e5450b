"""
Container engine access.

Thin async façade over the Docker engine API. Calls are blocking in the
docker SDK, so each one runs in a worker thread; engine library exceptions
are translated to EngineError here and nowhere else.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import docker
from docker.errors import DockerException
from docker.types import IPAMConfig, IPAMPool

from ..errors import EngineError

logger = logging.getLogger(__name__)


@dataclass
class ContainerSpec:
    """Everything needed to create one service container."""

    name: str
    image: str
    network_id: str
    ipv4_address: str
    aliases: List[str] = field(default_factory=list)
    environment: List[str] = field(default_factory=list)
    # "80/tcp" style keys
    exposed_ports: List[str] = field(default_factory=list)
    port_bindings: Dict[str, Tuple[str, int]] = field(default_factory=dict)


class ContainerEngine:
    """Async access to list-networks, create-network, pull, create and start."""

    def __init__(self, base_url: Optional[str] = None, api: Optional[docker.APIClient] = None):
        """
        Initialize the engine façade.

        Args:
            base_url: Engine API URL; the DOCKER_HOST environment defaults are
                used when not given
            api: Pre-built low-level client (mostly for tests)
        """
        self.base_url = base_url
        self._api = api

    def _get_api(self) -> docker.APIClient:
        if self._api is None:
            if self.base_url:
                self._api = docker.APIClient(base_url=self.base_url)
            else:
                self._api = docker.from_env().api
            logger.debug("Connected to docker")
        return self._api

    async def _call(self, description: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except DockerException as e:
            logger.error(f"{description}: {e}")
            raise EngineError(f"{description}: {e}") from e

    async def list_subnets(self) -> List[str]:
        """Subnets configured in the IPAM of every existing network."""

        def _list() -> List[str]:
            subnets = []
            for network in self._get_api().networks():
                ipam = network.get("IPAM") or {}
                for ipam_config in ipam.get("Config") or []:
                    subnet = ipam_config.get("Subnet")
                    if subnet:
                        subnets.append(subnet)
            return subnets

        return await self._call("Could not list networks", _list)

    async def create_network(
        self, name: str, subnet: str, gateway: str, labels: Dict[str, str]
    ) -> Optional[str]:
        """Create a bridge network and return the id reported by the engine."""

        def _create() -> Optional[str]:
            ipam = IPAMConfig(
                driver="default",
                pool_configs=[IPAMPool(subnet=subnet, gateway=gateway)],
            )
            result = self._get_api().create_network(
                name, driver="bridge", ipam=ipam, labels=labels
            )
            return (result or {}).get("Id")

        return await self._call(f"Could not create network {name}", _create)

    async def pull_image(self, repository: str, tag: str) -> None:
        """Pull an image; a no-op transfer when the image is already present."""

        def _pull() -> None:
            for event in self._get_api().pull(repository, tag=tag, stream=True, decode=True):
                if "error" in event:
                    detail = event.get("errorDetail", {}).get("message") or event["error"]
                    raise EngineError(f"Could not pull image {repository}:{tag}: {detail}")
                if "status" in event:
                    logger.debug(f"{repository}:{tag}: {event['status']}")

        await self._call(f"Could not pull image {repository}:{tag}", _pull)

    async def create_container(self, spec: ContainerSpec) -> str:
        """Create a container attached to its environment network."""

        def _create() -> str:
            api = self._get_api()
            ports = []
            for exposed in spec.exposed_ports:
                port, _, proto = exposed.partition("/")
                ports.append((int(port), proto or "tcp"))

            host_config = api.create_host_config(
                port_bindings=spec.port_bindings or None,
                network_mode=spec.network_id,
            )
            networking_config = api.create_networking_config(
                {
                    spec.network_id: api.create_endpoint_config(
                        aliases=spec.aliases,
                        ipv4_address=spec.ipv4_address,
                    )
                }
            )
            result = api.create_container(
                image=spec.image,
                name=spec.name,
                environment=spec.environment or None,
                ports=ports or None,
                host_config=host_config,
                networking_config=networking_config,
            )
            container_id = (result or {}).get("Id")
            if not container_id:
                raise EngineError(f"Engine returned no id for container {spec.name}")
            return container_id

        return await self._call(f"Could not create container {spec.name}", _create)

    async def start_container(self, container: str) -> None:
        await self._call(
            f"Could not start container {container}",
            lambda: self._get_api().start(container),
        )
