"""
Edge node resolution.

Picks the WebSocket endpoint a client should connect to:

1. List nodes from the directory
2. Keep only allow-listed node ids
3. Order candidates (geographic distance, or a random permutation)
4. Return the first candidate, or probe candidates in order and take the
   first node that names a domain for the client

Probing never fails the resolution: when no candidate answers, the first
candidate's default endpoint is returned.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Iterable, List, Optional

import aiohttp
import numpy as np

from .directory import NodeDirectory, NodeRecord
from .geo import GeoLocator, distances_km
from ..exceptions import NoAvailableNodeError

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN_SUFFIX = "dtel.network"
PROBE_TIMEOUT = 3.0


class OrderingStrategy(str, Enum):
    """How candidates are ordered."""
    RANDOM = "random"
    GEO = "geo"


class SelectionStrategy(str, Enum):
    """How the winning candidate is picked."""
    IMMEDIATE = "immediate"
    PROBE = "probe"


class EdgeResolver:
    """
    Resolves a client to an edge node endpoint.

    Usage:
        resolver = EdgeResolver(directory, allowed_nodes=["2499479479"], geo=locator)
        url = await resolver.resolve_endpoint("203.0.113.7")
        await resolver.close()
    """

    def __init__(
        self,
        directory: NodeDirectory,
        allowed_nodes: Iterable[str],
        geo: Optional[GeoLocator] = None,
        domain_suffix: str = DEFAULT_DOMAIN_SUFFIX,
        ordering: OrderingStrategy = OrderingStrategy.GEO,
        selection: SelectionStrategy = SelectionStrategy.PROBE,
        probe_timeout: float = PROBE_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        rng: Optional[random.Random] = None,
        owns_directory: bool = False,
    ):
        self.directory = directory
        self.allowed_nodes = frozenset(str(n) for n in allowed_nodes)
        self.geo = geo
        self.domain_suffix = domain_suffix
        self.ordering = OrderingStrategy(ordering)
        self.selection = SelectionStrategy(selection)
        self.probe_timeout = probe_timeout
        self._rng = rng or random.SystemRandom()
        self._session = session
        self._owns_session = session is None
        self._owns_directory = owns_directory

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """
        Close the probe session if this resolver opened it.

        The registry and locators are closed only with ``owns_directory``.
        """
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if not self._owns_directory:
            return
        for component in (self.directory.registry, self.directory.geo, self.geo):
            close = getattr(component, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> "EdgeResolver":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def endpoint_for(self, node: NodeRecord) -> str:
        """Default WebSocket endpoint of a node."""
        return f"wss://{node.node_id}.{self.domain_suffix}"

    def probe_url(self, node: NodeRecord) -> str:
        return f"https://{node.node_id}.{self.domain_suffix}/relevant"

    async def order_candidates(self, client_ip: Optional[str] = None) -> List[NodeRecord]:
        """
        Allow-listed nodes in the order they should be tried.

        Raises:
            RegistryUnavailableError: the registry read failed
            NoAvailableNodeError: no node is allow-listed
        """
        nodes = await self.directory.list_active_nodes()
        candidates = [n for n in nodes if n.node_id in self.allowed_nodes]
        if not candidates:
            raise NoAvailableNodeError(
                f"none of {len(nodes)} registered nodes is allow-listed"
            )

        if self.ordering == OrderingStrategy.GEO and client_ip and self.geo is not None:
            location = await self.geo.lookup(client_ip)
            if location is not None:
                candidates = await self.directory.locate(candidates, geo=self.geo)
                return self._sort_by_distance(candidates, location)
            logger.debug(f"No location for {client_ip}, using random order")

        self._rng.shuffle(candidates)
        return candidates

    def _sort_by_distance(self, candidates: List[NodeRecord], origin) -> List[NodeRecord]:
        # Nodes without coordinates sort last, keeping their relative order
        located = [n.location is not None for n in candidates]
        distances = np.full(len(candidates), np.inf)
        if any(located):
            points = [n for n in candidates if n.location is not None]
            distances[np.array(located)] = distances_km(
                origin,
                [n.latitude for n in points],
                [n.longitude for n in points],
            )
        order = np.argsort(distances, kind="stable")
        return [candidates[i] for i in order]

    async def probe(self, node: NodeRecord, client_ip: str) -> Optional[str]:
        """
        Ask a node which domain serves the client best.

        Returns the domain, or None on timeout, error or a malformed answer.
        """
        session = await self._get_session()
        url = self.probe_url(node)
        try:
            async with session.get(
                url,
                json={"ip": client_ip},
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    logger.debug(f"Probe {url} answered HTTP {resp.status}")
                    return None
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            logger.debug(f"Probe {url} timed out after {self.probe_timeout}s")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Probe {url} failed: {e}")
            return None

        domain = data.get("domain") if isinstance(data, dict) else None
        if not isinstance(domain, str) or not domain:
            logger.debug(f"Probe {url} returned no domain")
            return None
        return domain

    async def resolve_endpoint(self, client_ip: Optional[str] = None) -> str:
        """
        Pick the endpoint URL for a client.

        Raises:
            RegistryUnavailableError: the registry read failed
            NoAvailableNodeError: no node is allow-listed
        """
        candidates = await self.order_candidates(client_ip)
        fallback = self.endpoint_for(candidates[0])

        if self.selection == SelectionStrategy.IMMEDIATE or not client_ip:
            return fallback

        for node in candidates:
            domain = await self.probe(node, client_ip)
            if domain:
                logger.info(f"Node {node.node_id} serves {client_ip} via {domain}")
                return f"wss://{domain}"

        logger.info(f"No node answered for {client_ip}, using {fallback}")
        return fallback
