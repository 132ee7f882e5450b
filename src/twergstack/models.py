"""
Data models for Twergstack

Defines the environment and index entities recorded by the data providers,
the transient input entities used to create them, and the response bodies
handed back to the request layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

EntityId = UUID


class IndexStatus(Enum):
    """Progression of an index through its processing pipeline.

    Values match the ``index_status`` enum in the database.
    """

    NOT_AVAILABLE = "not_available"
    DOWNLOADING_IN_PROGRESS = "downloading_in_progress"
    DOWNLOADING_ERROR = "downloading_error"
    DOWNLOADED = "downloaded"
    PROCESSING_IN_PROGRESS = "processing_in_progress"
    PROCESSING_ERROR = "processing_error"
    PROCESSED = "processed"
    INDEXING_IN_PROGRESS = "indexing_in_progress"
    INDEXING_ERROR = "indexing_error"
    INDEXED = "indexed"
    VALIDATION_IN_PROGRESS = "validation_in_progress"
    VALIDATION_ERROR = "validation_error"
    AVAILABLE = "available"

    @property
    def display_name(self) -> str:
        """CamelCase name used in responses (e.g. ``NotAvailable``)."""
        return "".join(part.capitalize() for part in self.value.split("_"))


@dataclass
class Index:
    """An index stored in the database."""

    id: EntityId
    index_type: str
    data_source: str
    regions: List[str]
    signature: str
    status: IndexStatus
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "indexType": self.index_type,
            "dataSource": self.data_source,
            "regions": list(self.regions),
            "signature": self.signature,
            "status": self.status.display_name,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class Environment:
    """An environment stored in the database."""

    id: EntityId
    name: str
    signature: str
    port: int
    created_at: datetime
    updated_at: datetime
    indexes: List[Index] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "signature": self.signature,
            "port": self.port,
            "indexes": [index.to_dict() for index in self.indexes],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class InputEnvironment:
    """The input data necessary to create an environment.

    The port is not known when the request arrives; it stays 0 until the
    port allocator assigns one.
    """

    name: str
    port: int = 0


@dataclass
class InputIndex:
    """The input data necessary to create an index."""

    environment: EntityId
    index_type: str
    data_source: str
    regions: List[str]


@dataclass
class CreatedResource:
    """An engine-side resource created during a provisioning run."""

    kind: str  # "network", "image", "container"
    name: str
    id: Optional[str] = None

    def __str__(self) -> str:
        if self.id:
            return f"{self.kind} {self.name} ({self.id[:12]})"
        return f"{self.kind} {self.name}"


@dataclass
class SingleEnvironmentResponse:
    environment: Environment

    def to_dict(self) -> Dict[str, Any]:
        return {"environment": self.environment.to_dict()}


@dataclass
class MultiEnvironmentsResponse:
    """The response body for multiple environments."""

    environments: List[Environment]

    @property
    def count(self) -> int:
        return len(self.environments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environments": [env.to_dict() for env in self.environments],
            "count": self.count,
        }


@dataclass
class SingleIndexResponse:
    index: Index

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index.to_dict()}
