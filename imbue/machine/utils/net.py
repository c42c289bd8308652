import ipaddress
from collections.abc import Sequence
from typing import Final

from imbue.machine.utils.model_base import pure

# Gateway address of the engine's default bridge network; never the host's reachable address
CONTAINER_BRIDGE_GATEWAY: Final[str] = "172.17.0.1"

_IPV4_BROADCAST: Final[ipaddress.IPv4Address] = ipaddress.IPv4Address("255.255.255.255")


@pure
def is_global_unicast(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """Whether an address is a global unicast address.

    Private ranges count as global unicast here; only unspecified, loopback,
    multicast, link-local and the IPv4 broadcast address are excluded.
    """
    if address.is_unspecified or address.is_loopback or address.is_multicast or address.is_link_local:
        return False
    return address != _IPV4_BROADCAST


@pure
def select_preferred_ip(addresses: Sequence[str]) -> str:
    """Pick the address a host should be reached on.

    Returns the first IPv4 global unicast address that is not the container
    bridge gateway. If none qualifies, returns the first reported address, and
    the empty string when there are no addresses at all.
    """
    for candidate in addresses:
        try:
            parsed = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if parsed.version == 4 and is_global_unicast(parsed) and candidate != CONTAINER_BRIDGE_GATEWAY:
            return candidate
    if addresses:
        return addresses[0]
    return ""


@pure
def build_engine_url(ip: str, port: int) -> str:
    """The engine endpoint URL, or the empty string when no address is assigned yet."""
    if not ip:
        return ""
    if ":" in ip:
        return f"tcp://[{ip}]:{port}"
    return f"tcp://{ip}:{port}"
