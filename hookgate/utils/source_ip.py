"""
Source IP allow-listing with CIDR matching.
No allow-list (None) means every source is allowed. A configured list fails
closed, so an empty list admits nothing.
"""
import ipaddress
import logging
from typing import Optional, Sequence, Union

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_allow_list(entries: Sequence[str]) -> list[IPNetwork]:
    """Parse CIDR blocks / bare addresses. Raises ValueError on a bad entry."""
    return [ipaddress.ip_network(entry.strip(), strict=False) for entry in entries]


def _parse_source(source: str):
    address = ipaddress.ip_address(source.strip())
    # ::ffff:10.0.0.1 should match 10.0.0.0/8
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


class SourceIPFilter:
    def __init__(self, allow_list: Optional[Sequence[str]] = None):
        self.networks: Optional[list[IPNetwork]] = None
        if allow_list is not None:
            self.networks = parse_allow_list(allow_list)
            if not self.networks:
                logger.warning("Source IP allow-list is empty; every request will be rejected")

    def allowed(self, source_address: Optional[str]) -> bool:
        if self.networks is None:
            return True
        if not source_address:
            return False
        try:
            address = _parse_source(source_address)
        except ValueError:
            logger.warning("Unparseable source address rejected")
            return False
        return any(
            address.version == network.version and address in network
            for network in self.networks
        )


def ip_allowed(source_address: Optional[str], allow_list: Optional[Sequence[str]]) -> bool:
    """Functional form of SourceIPFilter.allowed."""
    return SourceIPFilter(allow_list).allowed(source_address)
