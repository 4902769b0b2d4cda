"""
Tests for the node registry, geolocation and directory.
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from dtel.edge.directory import ClientRecord, NodeDirectory, NodeRecord, int_to_ip, ip_to_int
from dtel.edge.geo import GeoLocation, HttpGeoLocator, StaticGeoLocator, distances_km, parse_location
from dtel.edge.registry import JsonRpcNodeRegistry, StaticNodeRegistry
from dtel.exceptions import RegistryUnavailableError


class FailingRegistry:
    async def list_all_nodes(self):
        raise RegistryUnavailableError("gateway down")


class CountingLocator(StaticGeoLocator):
    """Records every address it is asked about."""

    def __init__(self, table=None):
        super().__init__(table)
        self.lookups = []

    async def lookup(self, ip):
        self.lookups.append(ip)
        return await super().lookup(ip)


class TestAddressDecoding:
    """Tests for integer address decoding."""

    @pytest.mark.parametrize("value,dotted", [
        (0, "0.0.0.0"),
        (2499479479, "148.251.7.183"),
        ("1097669481", "65.109.27.105"),
        (2 ** 32 - 1, "255.255.255.255"),
    ])
    def test_int_to_ip(self, value, dotted):
        assert int_to_ip(value) == dotted

    def test_ip_to_int_inverse(self):
        assert ip_to_int("148.251.7.183") == 2499479479
        assert int_to_ip(ip_to_int("10.1.2.3")) == "10.1.2.3"

    @pytest.mark.parametrize("value", [-1, 2 ** 32, "abc", None, True, "1.2.3.4"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            int_to_ip(value)


class TestNodeRecord:
    """Tests for decoding registry entries."""

    def test_from_mapping(self):
        node = NodeRecord.from_registry({"ip": "2499479479", "active": True, "key": ""})

        assert node.address == 2499479479
        assert node.node_id == "2499479479"
        assert node.dotted_address == "148.251.7.183"
        assert node.active is True
        assert node.key is None
        assert node.location is None

    def test_from_tuple(self):
        node = NodeRecord.from_registry((1097669481, False, "pubkey"))

        assert node.dotted_address == "65.109.27.105"
        assert node.active is False
        assert node.key == "pubkey"

    def test_frozen(self):
        node = NodeRecord.from_registry({"ip": 1, "active": True})
        with pytest.raises(AttributeError):
            node.active = False


class TestGeo:
    """Tests for geolocation helpers."""

    def test_distances(self):
        berlin = GeoLocation(52.52, 13.405)
        result = distances_km(berlin, [52.52, 48.8566], [13.405, 2.3522])

        assert result[0] == pytest.approx(0.0, abs=1e-6)
        assert result[1] == pytest.approx(878, rel=0.01)

    def test_parse_location(self):
        assert parse_location({"lat": 1, "lon": 2}) == GeoLocation(1.0, 2.0)
        assert parse_location({"latitude": "3.5", "longitude": "-4"}) == GeoLocation(3.5, -4.0)
        assert parse_location({"status": "fail"}) is None
        assert parse_location({"lat": "x", "lon": 1}) is None
        assert parse_location(["not", "a", "dict"]) is None

    @pytest.mark.asyncio
    async def test_http_locator(self):
        async def lookup(request):
            ip = request.match_info["ip"]
            if ip == "203.0.113.7":
                return web.json_response({"status": "success", "lat": 52.52, "lon": 13.405})
            return web.json_response({"status": "fail"}, status=404)

        app = web.Application()
        app.router.add_get("/json/{ip}", lookup)

        async with TestServer(app) as server:
            locator = HttpGeoLocator(str(server.make_url("/json/")) + "{ip}")
            try:
                assert await locator.lookup("203.0.113.7") == GeoLocation(52.52, 13.405)
                assert await locator.lookup("198.51.100.1") is None
            finally:
                await locator.close()

    @pytest.mark.asyncio
    async def test_http_locator_unreachable(self):
        locator = HttpGeoLocator("http://127.0.0.1:9/{ip}", timeout=0.5)
        try:
            assert await locator.lookup("203.0.113.7") is None
        finally:
            await locator.close()


class TestJsonRpcRegistry:
    """Tests for the JSON-RPC registry client."""

    @staticmethod
    def make_app(handler):
        app = web.Application()
        app.router.add_post("/rpc", handler)
        return app

    @pytest.mark.asyncio
    async def test_calls(self):
        seen = []

        async def rpc(request):
            body = await request.json()
            seen.append(body)
            results = {
                "getAllNode": [{"ip": "2499479479", "active": True, "key": "k"}],
                "nodeByAddress": {"ip": "1097669481", "active": True, "key": ""},
                "clientByAddress": {"limit": "10", "until": "1700000000", "active": True, "key": ""},
            }
            return web.json_response({
                "jsonrpc": "2.0",
                "id": body["id"],
                "result": results[body["method"]],
            })

        async with TestServer(self.make_app(rpc)) as server:
            registry = JsonRpcNodeRegistry(str(server.make_url("/rpc")))
            try:
                nodes = await registry.list_all_nodes()
                node = await registry.node_by_address("0xabc")
                client = await registry.client_by_address("0xdef")
            finally:
                await registry.close()

        assert nodes == [{"ip": "2499479479", "active": True, "key": "k"}]
        assert node["ip"] == "1097669481"
        assert client["limit"] == "10"
        assert [b["method"] for b in seen] == ["getAllNode", "nodeByAddress", "clientByAddress"]
        assert seen[1]["params"] == ["0xabc"]
        assert seen[0]["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        async def rpc(request):
            body = await request.json()
            return web.json_response({
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": -32000, "message": "execution reverted"},
            })

        async with TestServer(self.make_app(rpc)) as server:
            registry = JsonRpcNodeRegistry(str(server.make_url("/rpc")))
            try:
                with pytest.raises(RegistryUnavailableError, match="execution reverted"):
                    await registry.list_all_nodes()
            finally:
                await registry.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        async def rpc(request):
            return web.Response(status=502, text="bad gateway")

        async with TestServer(self.make_app(rpc)) as server:
            registry = JsonRpcNodeRegistry(str(server.make_url("/rpc")))
            try:
                with pytest.raises(RegistryUnavailableError):
                    await registry.list_all_nodes()
            finally:
                await registry.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        registry = JsonRpcNodeRegistry("http://127.0.0.1:9/rpc", timeout=0.5)
        try:
            with pytest.raises(RegistryUnavailableError):
                await registry.list_all_nodes()
        finally:
            await registry.close()


class TestNodeDirectory:
    """Tests for the directory adapter."""

    @pytest.mark.asyncio
    async def test_list_decodes_and_locates(self):
        registry = StaticNodeRegistry([
            {"ip": "2499479479", "active": True, "key": "a"},
            {"ip": "1097669481", "active": False, "key": ""},
        ])
        geo = StaticGeoLocator({"148.251.7.183": GeoLocation(50.47, 12.37)})
        directory = NodeDirectory(registry, geo=geo)

        nodes = await directory.list_active_nodes(locate=True)

        assert [n.dotted_address for n in nodes] == ["148.251.7.183", "65.109.27.105"]
        assert nodes[0].location == GeoLocation(50.47, 12.37)
        assert nodes[1].location is None
        assert nodes[1].active is False

    @pytest.mark.asyncio
    async def test_list_skips_lookups_by_default(self):
        registry = StaticNodeRegistry([{"ip": 16909060 + i, "active": True} for i in range(5)])
        geo = CountingLocator({"1.2.3.4": GeoLocation(50.47, 12.37)})
        directory = NodeDirectory(registry, geo=geo)

        nodes = await directory.list_active_nodes()
        assert len(nodes) == 5
        assert all(n.location is None for n in nodes)
        assert geo.lookups == []

        located = await directory.locate(nodes[:2])
        assert located[0].location == GeoLocation(50.47, 12.37)
        assert geo.lookups == ["1.2.3.4", "1.2.3.5"]

    @pytest.mark.asyncio
    async def test_without_geo(self):
        directory = NodeDirectory(StaticNodeRegistry([{"ip": 16909060, "active": True}]))
        nodes = await directory.list_active_nodes()
        assert nodes[0].dotted_address == "1.2.3.4"
        assert nodes[0].location is None

    @pytest.mark.asyncio
    async def test_registry_failure_propagates(self):
        directory = NodeDirectory(FailingRegistry())
        with pytest.raises(RegistryUnavailableError):
            await directory.list_active_nodes()

    @pytest.mark.asyncio
    async def test_malformed_record(self):
        directory = NodeDirectory(StaticNodeRegistry([{"ip": "not-a-number", "active": True}]))
        with pytest.raises(RegistryUnavailableError):
            await directory.list_active_nodes()

    @pytest.mark.asyncio
    async def test_get_node_and_client(self):
        registry = StaticNodeRegistry(
            nodes=[{"ip": 16909060, "active": True, "key": "k", "addr": "0xabc"}],
            clients={"0xdef": {"limit": 5, "until": 1700000000, "active": True, "key": "ck"}},
        )
        directory = NodeDirectory(registry)

        node = await directory.get_node("0xabc")
        assert node.dotted_address == "1.2.3.4"

        missing = await directory.get_node("0x000")
        assert missing.address == 0
        assert missing.active is False

        client = await directory.get_client("0xdef")
        assert client == ClientRecord(
            address="0xdef", limit=5, until=1700000000, active=True, key="ck"
        )

        unknown = await directory.get_client("0x999")
        assert unknown.active is False
