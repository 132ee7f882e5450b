"""
PostgreSQL data provider.

Every operation calls one server-side stored procedure inside its own
transaction on a pooled connection. The procedures return rows whose columns
are mapped to entity fields by position, so the column order below must match
the ``return_environment_type`` and ``return_index_type`` composites declared
in migrations/2020-01-01-000000_environments/up.sql.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, Sequence
from uuid import UUID

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from ..errors import NotFound
from ..logging_config import mask_sensitive_data
from ..models import EntityId, Environment, Index, IndexStatus, InputEnvironment, InputIndex
from .errors import map_database_error
from .provider import DataProvider

logger = logging.getLogger(__name__)


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def environment_from_row(row: Sequence[Any]) -> Environment:
    """(id, name, signature, port, created_at, updated_at)"""
    return Environment(
        id=_as_uuid(row[0]),
        name=row[1],
        signature=row[2],
        port=row[3],
        created_at=row[4],
        updated_at=row[5],
    )


def index_from_row(row: Sequence[Any]) -> Index:
    """(id, index_type, data_source, regions, signature, status, created_at, updated_at)"""
    return Index(
        id=_as_uuid(row[0]),
        index_type=row[1],
        data_source=row[2],
        regions=list(row[3] or []),
        signature=row[4],
        status=IndexStatus(row[5]),
        created_at=row[6],
        updated_at=row[7],
    )


class PostgresProvider(DataProvider):
    """Data provider backed by a pooled PostgreSQL database."""

    def __init__(
        self,
        database_url: str,
        min_connections: int = 1,
        max_connections: int = 5,
        pool: Optional[ThreadedConnectionPool] = None,
    ):
        self.database_url = database_url
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool = pool
        self._pool_lock = threading.Lock()
        # getconn() fails instead of waiting once max_connections are out
        self._checkouts = threading.BoundedSemaphore(max_connections)

    def _get_pool(self) -> ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                logger.debug(f"Opening connection pool to {mask_sensitive_data(self.database_url)}")
                self._pool = ThreadedConnectionPool(
                    self.min_connections, self.max_connections, dsn=self.database_url
                )
            return self._pool

    def _transaction(self, operation: Callable[[Any], Any]) -> Any:
        """Run ``operation(cursor)`` in a transaction on a pooled connection.

        Blocks while every pooled connection is checked out.
        """
        with self._checkouts:
            pool = self._get_pool()
            conn = pool.getconn()
            try:
                conn.autocommit = False
                try:
                    with conn.cursor() as cursor:
                        result = operation(cursor)
                    conn.commit()
                    return result
                except BaseException:
                    self._rollback(conn)
                    raise
            finally:
                pool.putconn(conn, close=bool(conn.closed))

    @staticmethod
    def _rollback(conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed, discarding connection: {e}")

    async def _run(self, description: str, operation: Callable[[Any], Any]) -> Any:
        try:
            return await asyncio.to_thread(self._transaction, operation)
        except psycopg2.Error as e:
            error = map_database_error(e)
            logger.error(f"{description}: {error}")
            raise error from e

    async def check_connection(self) -> str:
        """Return the server version string."""

        def _version(cursor) -> str:
            cursor.execute("SELECT version()")
            return cursor.fetchone()[0]

        version = await self._run("Could not test database version", _version)
        logger.info(f"db version: {version}")
        return version

    async def list_environments(self) -> List[Environment]:
        def _list(cursor) -> List[Environment]:
            cursor.execute("SELECT * FROM list_environments()")
            return [environment_from_row(row) for row in cursor.fetchall()]

        return await self._run("Could not list environments", _list)

    async def list_environment_indexes(self, environment: EntityId) -> List[Index]:
        def _list(cursor) -> List[Index]:
            cursor.execute(
                "SELECT * FROM list_environment_indexes(%s::UUID)", (str(environment),)
            )
            return [index_from_row(row) for row in cursor.fetchall()]

        return await self._run(f"Could not list indexes of environment {environment}", _list)

    async def create_environment(self, environment: InputEnvironment) -> Environment:
        def _create(cursor) -> Environment:
            cursor.execute(
                "SELECT * FROM create_environment(%s::TEXT, %s::INTEGER)",
                (environment.name, environment.port),
            )
            row = cursor.fetchone()
            if row is None:
                raise NotFound("create_environment returned no row")
            return environment_from_row(row)

        return await self._run(f"Could not create environment {environment.name}", _create)

    async def get_environment(self, environment: EntityId) -> Environment:
        def _get(cursor) -> Environment:
            cursor.execute("SELECT * FROM get_environment_by_id(%s::UUID)", (str(environment),))
            row = cursor.fetchone()
            if row is None:
                raise NotFound(f"Environment {environment} does not exist")
            return environment_from_row(row)

        return await self._run(f"Could not get environment {environment}", _get)

    async def delete_environment(self, environment: EntityId) -> Environment:
        def _delete(cursor) -> Environment:
            cursor.execute("SELECT * FROM delete_environment(%s::UUID)", (str(environment),))
            row = cursor.fetchone()
            if row is None:
                raise NotFound(f"Environment {environment} does not exist")
            return environment_from_row(row)

        return await self._run(f"Could not delete environment {environment}", _delete)

    async def create_index(self, index: InputIndex) -> Index:
        def _create(cursor) -> Index:
            cursor.execute(
                "SELECT * FROM create_index(%s::UUID, %s::TEXT, %s::TEXT, %s::TEXT[])",
                (str(index.environment), index.index_type, index.data_source, list(index.regions)),
            )
            row = cursor.fetchone()
            if row is None:
                raise NotFound("create_index returned no row")
            return index_from_row(row)

        return await self._run(f"Could not create index for environment {index.environment}", _create)

    async def close(self) -> None:
        if self._pool is not None:
            await asyncio.to_thread(self._pool.closeall)
            self._pool = None
