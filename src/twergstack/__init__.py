"""
Twergstack: isolated multi-container environments on a Docker host

Provisions a private network, an ingress port and a stack of containers per
named environment, and records each environment in PostgreSQL.
"""

__version__ = "0.1.0"
__author__ = "Twergstack Contributors"
__email__ = "noreply@twergstack.org"

from .config import TwergstackConfig
from .logging_config import setup_logging

__all__ = [
    "TwergstackConfig",
    "setup_logging",
]
