"""
Error taxonomy for Twergstack

Every failure surfaced by the provisioning pipeline is one of the kinds below.
The request layer shows ``str(error)`` to the caller verbatim.
"""

from typing import List, Optional

from .models import CreatedResource


class TwergstackError(Exception):
    """Base class for all Twergstack errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message
        # Engine resources created before the failure, filled in by the pipeline
        self.created_resources: List[CreatedResource] = []


# Store family


class ProvideError(TwergstackError):
    """An error returned by a data provider."""
    pass


class NotFound(ProvideError):
    """The requested entity does not exist."""

    def __init__(self, message: str = "Entity does not exist"):
        super().__init__(message)


class UniqueViolation(ProvideError):
    """The operation violates a uniqueness constraint."""

    def __init__(self, details: str):
        super().__init__(f"Operation violates uniqueness constraint: {details}")
        self.details = details


class ModelViolation(ProvideError):
    """The requested operation violates the data model."""

    def __init__(self, details: str):
        super().__init__(f"Operation violates model: {details}")
        self.details = details


class UnhandledError(ProvideError):
    """Any store error that could not be classified."""

    def __init__(self, source: BaseException):
        super().__init__(f"Unhandled error: {source}")
        self.source = source


# Container engine family


class EngineError(TwergstackError):
    """A container engine call failed (list, create, pull, start)."""
    pass


class NetworkIdMissing(EngineError):
    """The engine accepted a network creation but returned no id."""

    def __init__(self, network_name: str):
        super().__init__(f"Could not get network id for {network_name}")
        self.network_name = network_name


# Allocation family


class AllocationError(TwergstackError):
    """Base class for port and subnet allocation failures."""
    pass


class PortRangeExhausted(AllocationError):
    """No usable host port was found in the scan window."""

    def __init__(self, base: int, window: int, reason: Optional[str] = None):
        message = f"No available port in range {base}-{base + window - 1}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.base = base
        self.window = window


class NoBaselineNetwork(AllocationError):
    """No existing 172.N.0.0/16 network to derive a free subnet from."""

    def __init__(self, message: str = "No existing 172.N.0.0/16 network found to allocate from"):
        super().__init__(message)


# Collaborators


class ConfigError(TwergstackError):
    """Malformed or unreadable service configuration."""
    pass


class IOFailureError(TwergstackError):
    """Filesystem or child-process I/O failure."""
    pass
