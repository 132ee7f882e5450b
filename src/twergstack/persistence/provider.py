"""
Data provider interface.

A provider exposes environment and index CRUD. Each operation runs in its own
transaction on the backing store and raises a ProvideError subclass on failure.
"""

from abc import ABC, abstractmethod
from typing import List

from ..models import EntityId, Environment, Index, InputEnvironment, InputIndex


class DataProvider(ABC):
    """Capability interface over the relational store."""

    @abstractmethod
    async def list_environments(self) -> List[Environment]:
        """All environments, without their indexes."""

    @abstractmethod
    async def list_environment_indexes(self, environment: EntityId) -> List[Index]:
        """Indexes of one environment, in creation order."""

    @abstractmethod
    async def create_environment(self, environment: InputEnvironment) -> Environment:
        """Record an environment; raises UniqueViolation on a duplicate name."""

    @abstractmethod
    async def get_environment(self, environment: EntityId) -> Environment:
        """One environment, without its indexes; raises NotFound if absent."""

    @abstractmethod
    async def delete_environment(self, environment: EntityId) -> Environment:
        """Delete an environment and return it; raises NotFound if absent."""

    @abstractmethod
    async def create_index(self, index: InputIndex) -> Index:
        """Record an index; the referenced environment must exist."""

    async def close(self) -> None:
        """Release pooled resources."""
