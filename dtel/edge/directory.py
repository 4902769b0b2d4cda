"""
Node directory over the registry.

Decodes the integer addresses stored on chain into dotted IPv4 form and
attaches the geolocation of each node's own address.
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Union

from .geo import GeoLocation, GeoLocator
from .registry import NodeRegistry
from ..exceptions import RegistryUnavailableError

logger = logging.getLogger(__name__)


def int_to_ip(value: Union[int, str]) -> str:
    """Decode an unsigned 32-bit address into dotted form."""
    if isinstance(value, bool):
        raise ValueError(f"not an IPv4 address: {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"not an IPv4 address: {value!r}") from None
    if not 0 <= number < 2 ** 32:
        raise ValueError(f"IPv4 address out of range: {value!r}")
    return str(ipaddress.IPv4Address(number))


def ip_to_int(ip: str) -> int:
    """Encode a dotted IPv4 address as the registry stores it."""
    return int(ipaddress.IPv4Address(ip))


@dataclass(frozen=True)
class NodeRecord:
    """An edge node as listed in the registry."""
    address: int
    active: bool
    dotted_address: str
    key: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def node_id(self) -> str:
        """Registry form of the address, used for allow-lists and hostnames."""
        return str(self.address)

    @property
    def location(self) -> Optional[GeoLocation]:
        if self.latitude is None or self.longitude is None:
            return None
        return GeoLocation(latitude=self.latitude, longitude=self.longitude)

    @classmethod
    def from_registry(cls, raw: Any) -> "NodeRecord":
        """Build from a registry entry (mapping or ``(ip, active, key)`` tuple)."""
        if isinstance(raw, dict):
            ip, active, key = raw.get("ip"), raw.get("active", False), raw.get("key")
        else:
            ip, active, key = tuple(raw)[:3]
        dotted = int_to_ip(ip)
        return cls(
            address=int(ip),
            active=bool(active),
            dotted_address=dotted,
            key=key or None,
        )


@dataclass(frozen=True)
class ClientRecord:
    """A client entry in the registry."""
    address: str
    limit: int
    until: int
    active: bool
    key: Optional[str] = None

    @classmethod
    def from_registry(cls, address: str, raw: Any) -> "ClientRecord":
        if isinstance(raw, dict):
            limit, until = raw.get("limit", 0), raw.get("until", 0)
            active, key = raw.get("active", False), raw.get("key")
        else:
            limit, until, active, key = tuple(raw)[:4]
        return cls(
            address=address,
            limit=int(limit),
            until=int(until),
            active=bool(active),
            key=key or None,
        )


class NodeDirectory:
    """
    Lists edge nodes from the registry.

    Usage:
        directory = NodeDirectory(JsonRpcNodeRegistry(url), geo=HttpGeoLocator())
        nodes = await directory.list_active_nodes()
    """

    def __init__(self, registry: NodeRegistry, geo: Optional[GeoLocator] = None):
        self.registry = registry
        self.geo = geo

    async def list_active_nodes(self, locate: bool = False) -> List[NodeRecord]:
        """
        Fetch every registered node, decoded.

        Inactive entries are included with ``active=False``; filtering
        belongs to the caller. With ``locate`` each node is also
        geolocated, one lookup per node.

        Raises:
            RegistryUnavailableError: the registry read failed
        """
        raw_nodes = await self.registry.list_all_nodes()
        nodes = [self._decode(raw) for raw in raw_nodes]
        logger.debug(f"Registry listed {len(nodes)} nodes")

        if locate:
            nodes = await self.locate(nodes)
        return nodes

    async def locate(
        self,
        nodes: List[NodeRecord],
        geo: Optional[GeoLocator] = None
    ) -> List[NodeRecord]:
        """Fill in coordinates for nodes that have none."""
        geo = geo or self.geo
        if geo is None:
            return list(nodes)
        return list(await asyncio.gather(*(self._locate(n, geo) for n in nodes)))

    async def get_node(self, address: str) -> NodeRecord:
        """Look up the node registered by an account address."""
        node = self._decode(await self.registry.node_by_address(address))
        if self.geo is not None:
            node = await self._locate(node, self.geo)
        return node

    async def get_client(self, address: str) -> ClientRecord:
        """Look up a client's registry entry."""
        raw = await self.registry.client_by_address(address)
        try:
            return ClientRecord.from_registry(address, raw)
        except (TypeError, ValueError) as e:
            raise RegistryUnavailableError(f"malformed client record for {address}: {e}") from e

    def _decode(self, raw: Any) -> NodeRecord:
        try:
            return NodeRecord.from_registry(raw)
        except (TypeError, ValueError) as e:
            raise RegistryUnavailableError(f"malformed node record {raw!r}: {e}") from e

    async def _locate(self, node: NodeRecord, geo: GeoLocator) -> NodeRecord:
        if node.location is not None:
            return node
        location = await geo.lookup(node.dotted_address)
        if location is None:
            return node
        return replace(node, latitude=location.latitude, longitude=location.longitude)
