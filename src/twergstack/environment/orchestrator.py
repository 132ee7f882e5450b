"""
Environment provisioning pipeline.

Stands up the infrastructure of an environment and records it:

    Start -> PortAllocated -> NetworkBaseChosen -> NetworkCreated
          -> ServicesLaunched -> Persisted -> Done

Any failing step ends the run in Failed. Nothing created on the engine side
is removed on failure, not even when only the final commit fails; the raised
error lists those resources in ``created_resources`` for manual cleanup.

Allocation reads the host state without locking, so two environments created
concurrently may pick the same port or subnet. Serialize calls to
create_environment if that matters for the deployment.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..config import ServiceDefinition, TwergstackConfig
from ..errors import ConfigError, ModelViolation, TwergstackError, UniqueViolation
from ..models import (
    CreatedResource,
    EntityId,
    InputEnvironment,
    InputIndex,
    MultiEnvironmentsResponse,
    SingleEnvironmentResponse,
    SingleIndexResponse,
)
from ..persistence import DataProvider, InMemoryProvider, PostgresProvider
from .config import ServiceConfigParser
from .engine import ContainerEngine
from .launcher import ServiceLauncher
from .network import NetworkProvisioner, format_network
from .network_allocator import next_network_base
from .port_allocator import PortAllocator

logger = logging.getLogger(__name__)

ENVIRONMENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class ProvisioningState(Enum):
    """Steps of a provisioning run."""

    START = "start"
    PORT_ALLOCATED = "port_allocated"
    NETWORK_BASE_CHOSEN = "network_base_chosen"
    NETWORK_CREATED = "network_created"
    SERVICES_LAUNCHED = "services_launched"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProvisioningRun:
    """Progress of one create_environment call."""

    environment_name: str
    state: ProvisioningState = ProvisioningState.START
    port: Optional[int] = None
    network_base: Optional[str] = None
    network_id: Optional[str] = None
    created: List[CreatedResource] = field(default_factory=list)
    error: Optional[TwergstackError] = None

    def advance(self, state: ProvisioningState) -> None:
        logger.info(f"[{self.environment_name}] {self.state.value} -> {state.value}")
        self.state = state


class ProvisioningPipeline:
    """Creates, lists and deletes environments, and attaches indexes to them."""

    def __init__(
        self,
        config: TwergstackConfig,
        provider: DataProvider,
        engine: ContainerEngine,
        services: Optional[List[ServiceDefinition]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Process configuration
            provider: Store the environments are recorded in
            engine: Container engine the infrastructure is created on
            services: Service definitions; read from config.services_config_file
                on every creation when not given
        """
        self.config = config
        self.provider = provider
        self.engine = engine
        self.services = services
        self.port_allocator = PortAllocator(config.port_base, config.port_window)
        self.network_provisioner = NetworkProvisioner(engine, config.label_prefix)
        self.launcher = ServiceLauncher(
            engine,
            registry_host=config.registry_host,
            ingress_service=config.ingress_service,
            ingress_container_port=config.ingress_container_port,
        )
        self.last_run: Optional[ProvisioningRun] = None

    @classmethod
    def from_config(cls, config: TwergstackConfig) -> "ProvisioningPipeline":
        """Build a pipeline with the provider and engine named by the configuration."""
        if config.store == "memory":
            provider: DataProvider = InMemoryProvider()
        else:
            database_url = config.effective_database_url()
            if not database_url:
                raise ConfigError(
                    "Database not configured. Set TWERGSTACK_DATABASE_URL or DATABASE_URL"
                )
            provider = PostgresProvider(
                database_url,
                min_connections=config.database_pool_min,
                max_connections=config.database_pool_max,
            )
        return cls(config, provider, ContainerEngine(config.docker_base_url))

    async def _load_services(self) -> List[ServiceDefinition]:
        if self.services is not None:
            return self.services
        return await ServiceConfigParser(self.config).load_async()

    async def _ensure_name_available(self, name: str) -> None:
        for environment in await self.provider.list_environments():
            if environment.name == name:
                raise UniqueViolation(f"Key (name)=({name}) already exists.")

    async def list_environments(self) -> MultiEnvironmentsResponse:
        """All environments with their indexes.

        Indexes are fetched with one transaction per environment.
        """
        logger.info("Request for environments")
        environments = await self.provider.list_environments()
        for environment in environments:
            environment.indexes = await self.provider.list_environment_indexes(environment.id)
        return MultiEnvironmentsResponse(environments)

    async def create_environment(self, name: str) -> SingleEnvironmentResponse:
        """
        Provision and record a new environment.

        Raises:
            UniqueViolation: If the name is already recorded
            ConfigError: If the service descriptors cannot be loaded
            PortRangeExhausted, NoBaselineNetwork: If allocation fails
            EngineError: If a network, image or container step fails
            ProvideError: If the environment cannot be recorded
        """
        logger.info(f"Request for environment '{name}' creation")
        run = ProvisioningRun(environment_name=name)
        self.last_run = run

        try:
            if not ENVIRONMENT_NAME_PATTERN.match(name):
                raise ModelViolation(f"Invalid environment name: {name!r}")

            await self._ensure_name_available(name)
            services = await self._load_services()

            run.port = await self.port_allocator.allocate()
            run.advance(ProvisioningState.PORT_ALLOCATED)

            subnets = await self.engine.list_subnets()
            run.network_base = next_network_base(subnets)
            run.advance(ProvisioningState.NETWORK_BASE_CHOSEN)

            run.network_id = await self.network_provisioner.create(name, run.network_base)
            run.created.append(
                CreatedResource(kind="network", name=format_network(name), id=run.network_id)
            )
            run.advance(ProvisioningState.NETWORK_CREATED)

            await self.launcher.launch(
                name, run.network_id, run.network_base, services, run.port, created=run.created
            )
            run.advance(ProvisioningState.SERVICES_LAUNCHED)

            environment = await self.provider.create_environment(
                InputEnvironment(name=name, port=run.port)
            )
            run.advance(ProvisioningState.PERSISTED)
        except TwergstackError as e:
            self._fail(run, e)
            raise

        logger.debug(f"Created Twerg at port {run.port}")
        run.advance(ProvisioningState.DONE)
        return SingleEnvironmentResponse(environment)

    def _fail(self, run: ProvisioningRun, error: TwergstackError) -> None:
        error.created_resources = list(run.created)
        run.error = error
        logger.error(f"[{run.environment_name}] failed at {run.state.value}: {error}")
        run.state = ProvisioningState.FAILED
        if run.created:
            leftovers = ", ".join(str(resource) for resource in run.created)
            logger.warning(f"[{run.environment_name}] left in place: {leftovers}")

    async def get_environment(self, environment: EntityId) -> SingleEnvironmentResponse:
        """One environment with its indexes."""
        logger.info(f"Request for environment {environment}")
        found = await self.provider.get_environment(environment)
        found.indexes = await self.provider.list_environment_indexes(found.id)
        return SingleEnvironmentResponse(found)

    async def delete_environment(self, environment: EntityId) -> SingleEnvironmentResponse:
        """Delete the record of an environment; its engine resources are left alone."""
        deleted = await self.provider.delete_environment(environment)
        logger.info(f"Deleted environment {deleted.name} ({deleted.id})")
        return SingleEnvironmentResponse(deleted)

    async def create_index(
        self,
        environment: EntityId,
        index_type: str,
        data_source: str,
        regions: List[str],
    ) -> SingleIndexResponse:
        """Record an index in status NotAvailable for an existing environment."""
        logger.info("Request for index creation")
        index = await self.provider.create_index(
            InputIndex(
                environment=environment,
                index_type=index_type,
                data_source=data_source,
                regions=list(regions),
            )
        )
        return SingleIndexResponse(index)

    async def close(self) -> None:
        await self.provider.close()
