"""Tests for the network topology model and the endpoint directory."""

import pytest

from netscenario.simulation.address_allocator import AddressAllocator
from netscenario.simulation.errors import CatalogValidationError, UnresolvedTargetError
from netscenario.simulation.network_topology import (
    LinkMedium,
    NodeRole,
    ServiceSpec,
    TopologyBuilder,
)


SERVICES = [
    ServiceSpec("http", NodeRole.DMZ_SERVER, 0, 80),
    ServiceSpec("https", NodeRole.DMZ_SERVER, 0, 443),
    ServiceSpec("dns", NodeRole.DMZ_SERVER, 2, 53, transport="udp"),
    ServiceSpec("fake_http", NodeRole.DMZ_SERVER, 1, 8081, start=10.0, stop=450.0),
    ServiceSpec("vpn", NodeRole.VPN_SERVER, 0, 443),
]


def build(services=SERVICES, **kwargs):
    return TopologyBuilder(AddressAllocator(base="10.1.0.0"), **kwargs).build(services)


# ── Topology ────────────────────────────────────────────────────────

class TestNetworkTopology:
    @pytest.fixture
    def topo(self):
        return build()

    def test_default_population(self, topo):
        summary = topo.summary()
        assert summary["core_router"] == 1
        assert summary["distribution_switch"] == 2
        assert summary["enterprise_client"] == 10
        assert summary["dmz_server"] == 5
        assert summary["wifi_station"] == 10
        assert summary["remote_client"] == 10
        assert summary["total_services"] == len(SERVICES)
        assert topo.num_nodes == 41

    def test_connected(self, topo):
        assert topo.is_connected()

    def test_point_to_point_links_first(self, topo):
        assert topo.links["backbone-0"].subnet == "10.1.0.0/30"
        assert topo.links["backbone-1"].subnet == "10.1.0.4/30"
        assert topo.links["vpn-uplink"].subnet == "10.1.0.8/30"
        assert topo.links["vpn-000"].subnet == "10.1.0.12/30"
        assert topo.links["enterprise-lan"].subnet == "10.1.1.0/24"
        assert topo.links["dmz-lan"].subnet == "10.1.3.0/24"

    def test_addresses(self, topo):
        assert topo.node(NodeRole.CORE_ROUTER, 0).primary_address == "10.1.0.1"
        assert topo.node(NodeRole.ENTERPRISE_CLIENT, 3).primary_address == "10.1.1.4"
        assert topo.node(NodeRole.DMZ_SERVER, 0).primary_address == "10.1.3.1"
        assert topo.node(NodeRole.REMOTE_CLIENT, 0).primary_address == "10.1.0.14"

    def test_core_router_has_three_interfaces(self, topo):
        links = [i.link_id for i in topo.get_node("CR000").interfaces]
        assert links == ["backbone-0", "backbone-1", "vpn-uplink"]

    def test_link_media(self, topo):
        assert topo.links["backbone-0"].medium == LinkMedium.POINT_TO_POINT
        assert topo.links["dmz-lan"].medium == LinkMedium.SHARED
        assert topo.links["wifi-cell"].medium == LinkMedium.WIRELESS

    def test_wireless_members_hang_off_ap(self, topo):
        assert "AP000" in topo.get_neighbors("STA004")

    def test_select(self, topo):
        nodes = topo.select(NodeRole.WIFI_STATION, count=3, offset=2)
        assert [n.node_id for n in nodes] == ["STA002", "STA003", "STA004"]
        assert len(topo.select(NodeRole.REMOTE_CLIENT)) == 10

    def test_select_beyond_population(self, topo):
        with pytest.raises(UnresolvedTargetError):
            topo.select(NodeRole.ENTERPRISE_CLIENT, count=5, offset=8)

    def test_unknown_node(self, topo):
        with pytest.raises(UnresolvedTargetError):
            topo.get_node("XX999")

    def test_nodes_are_read_only(self, topo):
        with pytest.raises(TypeError):
            topo.nodes["CR000"] = None

    def test_custom_counts(self):
        topo = build(node_counts={NodeRole.ENTERPRISE_CLIENT: 3, NodeRole.REMOTE_CLIENT: 0})
        assert len(topo.nodes_by_role(NodeRole.ENTERPRISE_CLIENT)) == 3
        assert "vpn-000" not in topo.links

    def test_requires_single_core(self):
        with pytest.raises(CatalogValidationError):
            build(node_counts={NodeRole.CORE_ROUTER: 2})

    def test_requires_two_distribution_switches(self):
        with pytest.raises(CatalogValidationError):
            build(node_counts={NodeRole.DISTRIBUTION_SWITCH: 1})


# ── Endpoint Directory ──────────────────────────────────────────────

class TestEndpointDirectory:
    @pytest.fixture
    def directory(self):
        return build().directory

    def test_frozen(self, directory):
        assert directory.frozen
        with pytest.raises(RuntimeError):
            directory._register(directory.bindings()[0])

    def test_get(self, directory):
        b = directory.get(NodeRole.DMZ_SERVER, 0, "http")
        assert (b.address, b.port, b.transport) == ("10.1.3.1", 80, "tcp")

    def test_resolve_by_name(self, directory):
        b = directory.resolve("dns")
        assert b.node.node_id == "DMZ002"
        assert b.transport == "udp"

    def test_service_window_defaults(self, directory):
        http = directory.resolve("http")
        assert (http.start, http.stop) == (1.0, 1500.0)
        fake = directory.resolve("fake_http")
        assert (fake.start, fake.stop) == (10.0, 450.0)

    def test_unresolved(self, directory):
        with pytest.raises(UnresolvedTargetError):
            directory.resolve("telnet")
        with pytest.raises(UnresolvedTargetError):
            directory.get(NodeRole.DMZ_SERVER, 4, "http")

    def test_unresolved_is_lookup_error(self, directory):
        with pytest.raises(LookupError):
            directory.resolve("telnet")

    def test_ambiguous_name(self):
        services = SERVICES + [ServiceSpec("http", NodeRole.DMZ_SERVER, 4, 80)]
        directory = build(services).directory
        with pytest.raises(UnresolvedTargetError):
            directory.resolve("http")
        assert directory.resolve("http", NodeRole.DMZ_SERVER, 4).node.node_id == "DMZ004"

    def test_service_on_missing_node(self):
        with pytest.raises(UnresolvedTargetError):
            build([ServiceSpec("http", NodeRole.DMZ_SERVER, 9, 80)])

    def test_duplicate_declaration(self):
        with pytest.raises(CatalogValidationError):
            build(SERVICES + [SERVICES[0]])

    def test_bindings_at(self, directory):
        assert [b.name for b in directory.bindings_at("DMZ000", 443)] == ["https"]
