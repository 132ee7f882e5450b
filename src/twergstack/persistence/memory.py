"""
In-memory data provider.

Mirrors the constraints of the PostgreSQL schema (unique environment names,
index foreign key, non-empty regions) so the pipeline behaves the same way
against it. Used by the test suite and for dry runs with ``--store memory``.
"""

import logging
import secrets
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List

from ..errors import ModelViolation, NotFound, UniqueViolation
from ..models import EntityId, Environment, Index, IndexStatus, InputEnvironment, InputIndex
from .provider import DataProvider

logger = logging.getLogger(__name__)


class InMemoryProvider(DataProvider):
    """Dictionary-backed provider with the same error behavior as the database."""

    def __init__(self):
        self._environments: Dict[EntityId, Environment] = {}
        self._indexes: Dict[EntityId, List[Index]] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _signature() -> str:
        return secrets.token_hex(16)

    async def list_environments(self) -> List[Environment]:
        return [replace(env, indexes=[]) for env in self._environments.values()]

    async def list_environment_indexes(self, environment: EntityId) -> List[Index]:
        return [replace(index) for index in self._indexes.get(environment, [])]

    async def create_environment(self, environment: InputEnvironment) -> Environment:
        for existing in self._environments.values():
            if existing.name == environment.name:
                raise UniqueViolation(f"Key (name)=({environment.name}) already exists.")

        now = self._now()
        entity = Environment(
            id=uuid.uuid4(),
            name=environment.name,
            signature=self._signature(),
            port=environment.port,
            created_at=now,
            updated_at=now,
        )
        self._environments[entity.id] = entity
        self._indexes[entity.id] = []
        logger.debug(f"Recorded environment {entity.name} ({entity.id})")
        return replace(entity)

    async def get_environment(self, environment: EntityId) -> Environment:
        entity = self._environments.get(environment)
        if entity is None:
            raise NotFound(f"Environment {environment} does not exist")
        return replace(entity, indexes=[])

    async def delete_environment(self, environment: EntityId) -> Environment:
        entity = self._environments.pop(environment, None)
        if entity is None:
            raise NotFound(f"Environment {environment} does not exist")
        self._indexes.pop(environment, None)
        return replace(entity)

    async def create_index(self, index: InputIndex) -> Index:
        if index.environment not in self._environments:
            raise ModelViolation(
                'insert or update on table "indexes" violates foreign key constraint '
                '"indexes_environment_id_fkey"'
            )
        if not index.regions:
            raise ModelViolation(
                'new row for relation "indexes" violates check constraint "indexes_regions_check"'
            )

        now = self._now()
        entity = Index(
            id=uuid.uuid4(),
            index_type=index.index_type,
            data_source=index.data_source,
            regions=list(index.regions),
            signature=self._signature(),
            status=IndexStatus.NOT_AVAILABLE,
            created_at=now,
            updated_at=now,
        )
        self._indexes[index.environment].append(entity)
        return replace(entity)
