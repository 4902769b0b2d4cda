"""
Edge node discovery and resolution.

Provides:
- Registry access (JSON-RPC gateway or static records)
- Node directory (address decoding, geolocation)
- Endpoint resolution (allow-list, ordering, probing)
"""

from typing import Optional

from .geo import (
    GeoLocation,
    GeoLocator,
    HttpGeoLocator,
    StaticGeoLocator,
    distances_km,
)
from .registry import (
    NodeRegistry,
    JsonRpcNodeRegistry,
    StaticNodeRegistry,
)
from .directory import (
    NodeDirectory,
    NodeRecord,
    ClientRecord,
    int_to_ip,
    ip_to_int,
)
from .resolver import (
    EdgeResolver,
    OrderingStrategy,
    SelectionStrategy,
    DEFAULT_DOMAIN_SUFFIX,
    PROBE_TIMEOUT,
)
from ..config import Config
from ..exceptions import ConfigurationError


def build_resolver(
    config: Config,
    registry: Optional[NodeRegistry] = None,
    geo: Optional[GeoLocator] = None,
) -> EdgeResolver:
    """
    Wire a resolver from configuration.

    The resolver owns the registry and locator: closing it closes them.
    """
    if registry is None:
        if not config.registry.url:
            raise ConfigurationError("registry url is not configured (DTEL_REGISTRY_URL)")
        registry = JsonRpcNodeRegistry(config.registry.url, timeout=config.registry.timeout)

    if geo is None and config.geo.enabled:
        geo = HttpGeoLocator(config.geo.url_template, timeout=config.geo.timeout)

    try:
        ordering = OrderingStrategy(config.resolver.ordering)
        selection = SelectionStrategy(config.resolver.selection)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    return EdgeResolver(
        NodeDirectory(registry, geo=geo),
        allowed_nodes=config.resolver.allowed_nodes,
        geo=geo,
        domain_suffix=config.resolver.domain_suffix,
        ordering=ordering,
        selection=selection,
        probe_timeout=config.resolver.probe_timeout,
        owns_directory=True,
    )


__all__ = [
    # Geolocation
    "GeoLocation",
    "GeoLocator",
    "HttpGeoLocator",
    "StaticGeoLocator",
    "distances_km",
    # Registry
    "NodeRegistry",
    "JsonRpcNodeRegistry",
    "StaticNodeRegistry",
    # Directory
    "NodeDirectory",
    "NodeRecord",
    "ClientRecord",
    "int_to_ip",
    "ip_to_int",
    # Resolver
    "EdgeResolver",
    "OrderingStrategy",
    "SelectionStrategy",
    "DEFAULT_DOMAIN_SUFFIX",
    "PROBE_TIMEOUT",
    "build_resolver",
]
