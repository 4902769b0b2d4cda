"""
Read access to the on-chain node registry.

The registry contract is reached through a JSON-RPC gateway exposing the
contract's read methods. Records come back raw: integer addresses, as
stored on chain.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from ..exceptions import RegistryUnavailableError

logger = logging.getLogger(__name__)


class NodeRegistry(Protocol):
    async def list_all_nodes(self) -> List[Dict[str, Any]]:
        ...

    async def node_by_address(self, address: str) -> Dict[str, Any]:
        ...

    async def client_by_address(self, address: str) -> Dict[str, Any]:
        ...


class JsonRpcNodeRegistry:
    """
    Registry client over JSON-RPC 2.0.

    Usage:
        registry = JsonRpcNodeRegistry("https://registry.example/rpc")
        nodes = await registry.list_all_nodes()
        await registry.close()
    """

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _call(self, method: str, *params: Any) -> Any:
        self._request_id += 1
        request = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": list(params),
        }

        session = await self._get_session()
        try:
            async with session.post(self.url, json=request) as resp:
                if resp.status != 200:
                    raise RegistryUnavailableError(
                        f"registry {method} failed: HTTP {resp.status}"
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Registry {method} failed: {e}")
            raise RegistryUnavailableError(f"registry {method} failed: {e}") from e

        if not isinstance(data, dict):
            raise RegistryUnavailableError(f"registry {method} returned a malformed response")

        error = data.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            logger.error(f"Registry {method} returned error: {message}")
            raise RegistryUnavailableError(f"registry {method} error: {message}")

        return data.get("result")

    async def list_all_nodes(self) -> List[Dict[str, Any]]:
        result = await self._call("getAllNode")
        if not isinstance(result, list):
            raise RegistryUnavailableError("registry getAllNode returned no node list")
        return result

    async def node_by_address(self, address: str) -> Dict[str, Any]:
        return await self._call("nodeByAddress", address)

    async def client_by_address(self, address: str) -> Dict[str, Any]:
        return await self._call("clientByAddress", address)


EMPTY_NODE = {"ip": 0, "active": False, "key": ""}
EMPTY_CLIENT = {"limit": 0, "until": 0, "active": False, "key": ""}


class StaticNodeRegistry:
    """
    In-memory registry serving fixed records.

    Unknown addresses return zeroed records, as the contract does.
    """

    def __init__(
        self,
        nodes: Optional[List[Dict[str, Any]]] = None,
        clients: Optional[Dict[str, Dict[str, Any]]] = None
    ):
        self.nodes = list(nodes or [])
        self.clients = dict(clients or {})

    async def list_all_nodes(self) -> List[Dict[str, Any]]:
        return list(self.nodes)

    async def node_by_address(self, address: str) -> Dict[str, Any]:
        for node in self.nodes:
            if node.get("addr") == address:
                return node
        return dict(EMPTY_NODE)

    async def client_by_address(self, address: str) -> Dict[str, Any]:
        return self.clients.get(address, dict(EMPTY_CLIENT))
