"""
Private subnet allocation for environment networks.

Every environment gets its own 172.N.0.0/16 bridge network. The next free N
is derived from the subnets of the networks that already exist on the host;
nothing is persisted, so each call re-scans the engine.
"""

import logging
import re
from typing import Iterable, List

from ..errors import AllocationError, NoBaselineNetwork

logger = logging.getLogger(__name__)

SUBNET_PATTERN = re.compile(r"^172\.(\d{1,3})\.0\.0/16$")


def extract_octets(subnets: Iterable[str]) -> List[int]:
    """Second octets of the 172.N.0.0/16 subnets, sorted and deduplicated.

    Subnets of any other shape are ignored.
    """
    octets = set()
    for subnet in subnets:
        match = SUBNET_PATTERN.match(subnet.strip())
        if match:
            octets.add(int(match.group(1)))
        else:
            logger.debug(f"Ignoring subnet {subnet}")
    return sorted(octets)


def next_octet(octets: List[int]) -> int:
    """
    Pick the first gap in a sorted list of octets, or the value after the last.

    >>> next_octet([16, 17, 19])
    18
    >>> next_octet([16, 17, 18])
    19
    """
    if not octets:
        raise NoBaselineNetwork()

    first = octets[0]
    for offset, value in enumerate(octets):
        if first + offset < value:
            return first + offset
    return first + len(octets)


def next_network_base(subnets: Iterable[str]) -> str:
    """
    Return the next usable ``172.N`` network base.

    Args:
        subnets: Subnets configured on the existing container networks

    Returns:
        The chosen base, e.g. ``"172.18"``

    Raises:
        NoBaselineNetwork: If no subnet of the form 172.N.0.0/16 exists
    """
    octets = extract_octets(subnets)
    value = next_octet(octets)
    if value > 255:
        raise AllocationError(f"No 172.N.0.0/16 subnet left after 172.{octets[-1]}")
    base = f"172.{value}"
    logger.debug(f"Existing 172.N octets {octets}, next base {base}")
    return base
