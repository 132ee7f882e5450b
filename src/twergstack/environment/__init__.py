"""
Environment provisioning for Twergstack.

Allocates a host port and a private subnet, creates the environment network,
launches the configured service containers on it and records the result.
"""

from .config import ServiceConfigParser
from .engine import ContainerEngine, ContainerSpec
from .launcher import ServiceLauncher
from .network import NetworkProvisioner
from .network_allocator import next_network_base
from .orchestrator import ProvisioningPipeline, ProvisioningRun, ProvisioningState
from .port_allocator import PortAllocator

__all__ = [
    "ContainerEngine",
    "ContainerSpec",
    "NetworkProvisioner",
    "PortAllocator",
    "ProvisioningPipeline",
    "ProvisioningRun",
    "ProvisioningState",
    "ServiceConfigParser",
    "ServiceLauncher",
    "next_network_base",
]
