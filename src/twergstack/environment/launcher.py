"""
Service launching for environments.

Pulls the image of each configured service, then creates and starts its
container on the environment network. Services are launched one after the
other and the first failure stops the sequence; whatever was created before
it stays in place and is reported through the ``created`` accumulator.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..config import ServiceDefinition
from ..models import CreatedResource
from .engine import ContainerEngine, ContainerSpec

logger = logging.getLogger(__name__)


def format_image(registry_host: str, name: str, tag: str) -> str:
    """Fully qualified image reference, e.g. ``localhost:5000/api:1.2``."""
    return f"{registry_host}/{name}:{tag}"


def format_container(env_name: str, service_name: str) -> str:
    """Name of a service container, e.g. ``dev1_nginx``."""
    return f"{env_name}_{service_name}"


class ServiceLauncher:
    """Launches the containers of one environment on its network."""

    def __init__(
        self,
        engine: ContainerEngine,
        registry_host: str = "localhost:5000",
        ingress_service: str = "nginx",
        ingress_container_port: int = 80,
    ):
        self.engine = engine
        self.registry_host = registry_host
        self.ingress_service = ingress_service
        self.ingress_container_port = ingress_container_port

    def _ports_for(self, service: ServiceDefinition, host_port: int) -> Dict[str, Optional[str]]:
        # The ingress service gets exactly one binding: its container port to the allocated host port
        if service.service_name == self.ingress_service:
            return {str(self.ingress_container_port): str(host_port)}
        return service.ports or {}

    def build_spec(
        self,
        env_name: str,
        network_id: str,
        network_base: str,
        service: ServiceDefinition,
        host_port: int,
    ) -> ContainerSpec:
        """Translate a service definition into a container specification."""
        address_base = service.network.address_base or network_base

        exposed_ports: List[str] = []
        port_bindings: Dict[str, Tuple[str, int]] = {}
        for internal, external in self._ports_for(service, host_port).items():
            key = internal if "/" in internal else f"{internal}/tcp"
            exposed_ports.append(key)
            if external is not None:
                port_bindings[key] = ("0.0.0.0", int(external))

        return ContainerSpec(
            name=format_container(env_name, service.service_name),
            image=format_image(self.registry_host, service.image.name, service.image.tag),
            network_id=network_id,
            ipv4_address=f"{address_base}.0.{service.network.address_suffix}",
            aliases=[service.service_name],
            environment=list(service.env or []),
            exposed_ports=exposed_ports,
            port_bindings=port_bindings,
        )

    async def launch_service(
        self,
        env_name: str,
        network_id: str,
        network_base: str,
        service: ServiceDefinition,
        host_port: int,
        created: List[CreatedResource],
    ) -> str:
        """Pull, create and start one service; returns the container id."""
        repository = f"{self.registry_host}/{service.image.name}"
        spec = self.build_spec(env_name, network_id, network_base, service, host_port)

        logger.debug(f"Pulling image {spec.image}")
        await self.engine.pull_image(repository, service.image.tag)
        created.append(CreatedResource(kind="image", name=spec.image))

        logger.debug(f"Creating container {spec.name} at {spec.ipv4_address}")
        container_id = await self.engine.create_container(spec)
        created.append(CreatedResource(kind="container", name=spec.name, id=container_id))

        await self.engine.start_container(container_id)
        logger.info(f"Started {spec.name} ({spec.image})")
        return container_id

    async def launch(
        self,
        env_name: str,
        network_id: str,
        network_base: str,
        services: List[ServiceDefinition],
        host_port: int,
        created: Optional[List[CreatedResource]] = None,
    ) -> List[CreatedResource]:
        """
        Launch every service in order, stopping at the first failure.

        Args:
            env_name: Environment name, used as container name prefix
            network_id: Id of the environment network
            network_base: Allocated two-octet network base
            services: Ordered service definitions
            host_port: Allocated ingress port
            created: Accumulator receiving each created resource as soon as it
                exists, so that callers still see it when a later step fails

        Returns:
            The accumulator
        """
        if created is None:
            created = []

        for service in services:
            await self.launch_service(env_name, network_id, network_base, service, host_port, created)

        return created
