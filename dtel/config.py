"""
Configuration management for dtel.

Handles:
- API credentials
- Registry and geolocation endpoints
- Resolver policy (allow-list, ordering, selection)
- API server settings

Stored at ~/.dtel/config.json. Environment variables override the file.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".dtel"

DEFAULT_API_PORT = 7880

# Nodes known to serve traffic correctly
DEFAULT_ALLOWED_NODES = [
    "2499479479",
    "1097669481",
    "3630803538",
    "1742105714",
]


@dataclass
class ResolverConfig:
    """Edge node resolution policy."""
    allowed_nodes: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_NODES))
    domain_suffix: str = "dtel.network"
    ordering: str = "geo"  # geo, random
    selection: str = "probe"  # probe, immediate
    probe_timeout: float = 3.0

    def to_dict(self) -> dict:
        return {
            "allowed_nodes": self.allowed_nodes,
            "domain_suffix": self.domain_suffix,
            "ordering": self.ordering,
            "selection": self.selection,
            "probe_timeout": self.probe_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResolverConfig":
        # Filter to only known fields to handle config evolution
        known_fields = {"allowed_nodes", "domain_suffix", "ordering", "selection", "probe_timeout"}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        if "allowed_nodes" in filtered:
            filtered["allowed_nodes"] = [str(n) for n in filtered["allowed_nodes"]]
        return cls(**filtered)


@dataclass
class RegistryConfig:
    """Where the node registry is read from."""
    url: Optional[str] = None  # JSON-RPC gateway for the registry contract
    timeout: float = 10.0

    def to_dict(self) -> dict:
        return {"url": self.url, "timeout": self.timeout}

    @classmethod
    def from_dict(cls, data: dict) -> "RegistryConfig":
        return cls(**data)


@dataclass
class GeoConfig:
    """IP geolocation lookup."""
    enabled: bool = True
    url_template: str = "http://ip-api.com/json/{ip}"
    timeout: float = 3.0

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "url_template": self.url_template,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeoConfig":
        return cls(**data)


@dataclass
class ServerConfig:
    """Configuration for the API server."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_API_PORT

    def to_dict(self) -> dict:
        return {"host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(**{k: v for k, v in data.items() if k in ("host", "port")})


@dataclass
class Config:
    """
    Main dtel configuration.

    The API secret is only read from the file when present there;
    prefer the API_SECRET environment variable.
    """
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    default_ttl: Optional[str] = None  # e.g. "6h"

    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    # Components
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "api_key": self.api_key,
            "api_secret": self.api_secret,
            "default_ttl": self.default_ttl,
            "resolver": self.resolver.to_dict(),
            "registry": self.registry.to_dict(),
            "geo": self.geo.to_dict(),
            "server": self.server.to_dict(),
        }

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        # The file may hold the API secret
        self.config_path.chmod(0o600)
        logger.debug(f"Configuration saved to {self.config_path}")

    def apply_env(self, environ: Optional[dict] = None) -> "Config":
        """Override settings from environment variables."""
        env = os.environ if environ is None else environ

        self.api_key = env.get("API_KEY") or self.api_key
        self.api_secret = env.get("API_SECRET") or self.api_secret
        self.registry.url = env.get("DTEL_REGISTRY_URL") or self.registry.url
        self.geo.url_template = env.get("DTEL_GEOIP_URL") or self.geo.url_template
        self.resolver.domain_suffix = env.get("DTEL_DOMAIN_SUFFIX") or self.resolver.domain_suffix

        allowed = env.get("DTEL_ALLOWED_NODES")
        if allowed:
            self.resolver.allowed_nodes = [n.strip() for n in allowed.split(",") if n.strip()]
        return self

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk, then apply environment overrides."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir).apply_env()

        with open(config_path, 'r') as f:
            data = json.load(f)

        config = cls(
            data_dir=data_dir,
            api_key=data.get("api_key"),
            api_secret=data.get("api_secret"),
            default_ttl=data.get("default_ttl"),
        )

        if "resolver" in data:
            config.resolver = ResolverConfig.from_dict(data["resolver"])
        if "registry" in data:
            config.registry = RegistryConfig.from_dict(data["registry"])
        if "geo" in data:
            config.geo = GeoConfig.from_dict(data["geo"])
        if "server" in data:
            config.server = ServerConfig.from_dict(data["server"])

        return config.apply_env()

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
