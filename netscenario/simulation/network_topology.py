"""
Network Topology Model for scenario compilation.

Builds the multi-segment enterprise topology (core, distribution and access
switching, enterprise LAN, DMZ, VPN spokes and a Wi-Fi cell) on a NetworkX
graph, assigns addresses through the AddressAllocator and publishes the
EndpointDirectory that traffic generators resolve their targets against.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from .address_allocator import AddressAllocator, SizeClass, Subnet
from .errors import CatalogValidationError, UnresolvedTargetError

logger = logging.getLogger(__name__)


class NodeRole(str, Enum):
    CORE_ROUTER = "core_router"
    DISTRIBUTION_SWITCH = "distribution_switch"
    ACCESS_SWITCH = "access_switch"
    ENTERPRISE_CLIENT = "enterprise_client"
    DMZ_SERVER = "dmz_server"
    VPN_SERVER = "vpn_server"
    WIFI_AP = "wifi_ap"
    WIFI_STATION = "wifi_station"
    REMOTE_CLIENT = "remote_client"


class LinkMedium(str, Enum):
    POINT_TO_POINT = "point_to_point"
    SHARED = "shared"
    WIRELESS = "wireless"


_ID_PREFIX = {
    NodeRole.CORE_ROUTER: "CR",
    NodeRole.DISTRIBUTION_SWITCH: "DS",
    NodeRole.ACCESS_SWITCH: "AS",
    NodeRole.ENTERPRISE_CLIENT: "ENT",
    NodeRole.DMZ_SERVER: "DMZ",
    NodeRole.VPN_SERVER: "VPN",
    NodeRole.WIFI_AP: "AP",
    NodeRole.WIFI_STATION: "STA",
    NodeRole.REMOTE_CLIENT: "REM",
}

DEFAULT_NODE_COUNTS: Dict[NodeRole, int] = {
    NodeRole.CORE_ROUTER: 1,
    NodeRole.DISTRIBUTION_SWITCH: 2,
    NodeRole.ACCESS_SWITCH: 1,
    NodeRole.ENTERPRISE_CLIENT: 10,
    NodeRole.DMZ_SERVER: 5,
    NodeRole.VPN_SERVER: 1,
    NodeRole.WIFI_AP: 1,
    NodeRole.WIFI_STATION: 10,
    NodeRole.REMOTE_CLIENT: 10,
}

# (medium, rate in bit/s, delay in ms)
DEFAULT_LINK_PROFILES: Dict[str, Tuple[LinkMedium, float, float]] = {
    "backbone": (LinkMedium.POINT_TO_POINT, 10e9, 2.0),
    "vpn": (LinkMedium.POINT_TO_POINT, 500e6, 20.0),
    "enterprise": (LinkMedium.SHARED, 500e6, 2.0),
    "dmz": (LinkMedium.SHARED, 1e9, 2.0),
    "wifi_uplink": (LinkMedium.SHARED, 1e9, 2.0),
    "wireless": (LinkMedium.WIRELESS, 54e6, 0.0),
}


@dataclass(frozen=True)
class Interface:
    """One attachment of a node to a link."""

    link_id: str
    subnet: str
    address: str


@dataclass
class NetworkNode:
    """A device in the topology. Interfaces are fixed once the build completes."""

    node_id: str
    role: NodeRole
    index: int
    _interfaces: List[Interface] = field(default_factory=list, repr=False)

    @property
    def interfaces(self) -> Tuple[Interface, ...]:
        return tuple(self._interfaces)

    @property
    def primary_address(self) -> str:
        if not self._interfaces:
            raise UnresolvedTargetError(f"Node {self.node_id} has no assigned address")
        return self._interfaces[0].address

    def __hash__(self) -> int:
        return hash(self.node_id)


@dataclass(frozen=True)
class Link:
    link_id: str
    medium: LinkMedium
    members: Tuple[str, ...]
    rate_bps: float
    delay_ms: float
    subnet: str


@dataclass(frozen=True)
class ServiceSpec:
    """A server-side installation requested by the scenario."""

    name: str
    role: NodeRole
    index: int
    port: int
    transport: str = "tcp"
    start: Optional[float] = None
    stop: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "ServiceSpec":
        return cls(
            name=data["name"],
            role=NodeRole(data["role"]),
            index=int(data.get("index", 0)),
            port=int(data["port"]),
            transport=data.get("transport", "tcp"),
            start=data.get("start"),
            stop=data.get("stop"),
        )


@dataclass(frozen=True)
class ServiceBinding:
    """A resolved service endpoint with its active window."""

    name: str
    node: NetworkNode
    address: str
    port: int
    transport: str
    start: float
    stop: float

    @property
    def key(self) -> Tuple[NodeRole, int, str]:
        return (self.node.role, self.node.index, self.name)

    def overlaps(self, other: "ServiceBinding") -> bool:
        return self.start < other.stop and other.start < self.stop


class EndpointDirectory:
    """
    Maps (role, index, service name) to a concrete ServiceBinding.

    Populated by the TopologyBuilder and frozen before any generator runs.
    """

    def __init__(self) -> None:
        self._bindings: Dict[Tuple[NodeRole, int, str], ServiceBinding] = {}
        self._order: List[ServiceBinding] = []
        self._frozen = False

    def _register(self, binding: ServiceBinding) -> None:
        if self._frozen:
            raise RuntimeError("EndpointDirectory is read-only after the topology build")
        if binding.key in self._bindings:
            raise CatalogValidationError(
                f"Service {binding.name!r} declared twice on {binding.node.node_id}"
            )
        self._bindings[binding.key] = binding
        self._order.append(binding)

    def _freeze(self) -> None:
        self._frozen = True

    # ── Lookup ──────────────────────────────────────────────────────

    def get(self, role: NodeRole, index: int, service: str) -> ServiceBinding:
        try:
            return self._bindings[(role, index, service)]
        except KeyError:
            raise UnresolvedTargetError(
                f"No service {service!r} on {role.value}[{index}]"
            ) from None

    def resolve(
        self, service: str, role: Optional[NodeRole] = None, index: Optional[int] = None
    ) -> ServiceBinding:
        """Resolve a symbolic target; role/index narrow the match when given."""
        if role is not None and index is not None:
            return self.get(role, index, service)
        matches = [
            b for b in self._order
            if b.name == service
            and (role is None or b.node.role == role)
            and (index is None or b.node.index == index)
        ]
        if not matches:
            raise UnresolvedTargetError(f"No service named {service!r} in the directory")
        if len(matches) > 1:
            hosts = ", ".join(b.node.node_id for b in matches)
            raise UnresolvedTargetError(
                f"Service {service!r} is ambiguous ({hosts}); give role and index"
            )
        return matches[0]

    def bindings_at(self, node_id: str, port: int) -> List[ServiceBinding]:
        return [b for b in self._order if b.node.node_id == node_id and b.port == port]

    def bindings(self) -> List[ServiceBinding]:
        return list(self._order)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[ServiceBinding]:
        return iter(self._order)


class NetworkTopology:
    """
    Graph-based model of the built network.

    Nodes represent devices; edges represent link attachments carrying the
    link id, rate and delay.
    """

    def __init__(
        self,
        graph: nx.Graph,
        nodes: Dict[str, NetworkNode],
        links: Dict[str, Link],
        subnets: List[Subnet],
        directory: EndpointDirectory,
    ) -> None:
        self.graph = graph
        self._nodes = nodes
        self._links = links
        self.subnets = subnets
        self.directory = directory

    # ── Public API ──────────────────────────────────────────────────

    @property
    def nodes(self) -> Mapping[str, NetworkNode]:
        return MappingProxyType(self._nodes)

    @property
    def links(self) -> Mapping[str, Link]:
        return MappingProxyType(self._links)

    def get_node(self, node_id: str) -> NetworkNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnresolvedTargetError(f"Unknown node {node_id!r}") from None

    def node(self, role: NodeRole, index: int) -> NetworkNode:
        return self.get_node(f"{_ID_PREFIX[role]}{index:03d}")

    def nodes_by_role(self, role: NodeRole) -> List[NetworkNode]:
        return sorted(
            (n for n in self._nodes.values() if n.role == role), key=lambda n: n.index
        )

    def select(self, role: NodeRole, count: Optional[int] = None, offset: int = 0) -> List[NetworkNode]:
        """Pick ``count`` nodes of a role starting at ``offset`` (all remaining if None)."""
        pool = self.nodes_by_role(role)
        if count is None:
            return pool[offset:]
        if offset + count > len(pool):
            raise UnresolvedTargetError(
                f"Population {role.value}[{offset}:{offset + count}] exceeds "
                f"the {len(pool)} available nodes"
            )
        return pool[offset:offset + count]

    def get_neighbors(self, node_id: str) -> List[str]:
        return list(self.graph.neighbors(node_id))

    def is_connected(self) -> bool:
        return self.graph.number_of_nodes() > 0 and nx.is_connected(self.graph)

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for n in self._nodes.values():
            counts[n.role.value] = counts.get(n.role.value, 0) + 1
        counts["total_links"] = len(self._links)
        counts["total_subnets"] = len(self.subnets)
        counts["total_services"] = len(self.directory)
        return counts


class TopologyBuilder:
    """
    Instantiates role populations, wires them and assigns addresses.

    Subnets are requested in a fixed order: every point-to-point /30 first
    (core to distribution, VPN uplink, one per remote client), then the /24
    segments (enterprise LAN, access uplink, DMZ, Wi-Fi uplink, wireless).
    """

    def __init__(
        self,
        allocator: AddressAllocator,
        node_counts: Optional[Mapping[NodeRole, int]] = None,
        link_profiles: Optional[Mapping[str, Tuple[LinkMedium, float, float]]] = None,
        app_start: float = 1.0,
        horizon: float = 1500.0,
    ) -> None:
        self.allocator = allocator
        self.node_counts = dict(DEFAULT_NODE_COUNTS)
        if node_counts:
            self.node_counts.update(node_counts)
        self.link_profiles = dict(DEFAULT_LINK_PROFILES)
        if link_profiles:
            self.link_profiles.update(link_profiles)
        self.app_start = app_start
        self.horizon = horizon
        self._validate_counts()

        self._graph = nx.Graph()
        self._nodes: Dict[str, NetworkNode] = {}
        self._links: Dict[str, Link] = {}
        self._subnets: List[Subnet] = []

    def build(self, services: Sequence[ServiceSpec] = ()) -> NetworkTopology:
        """Create nodes and links, assign addresses and publish the directory."""
        by_role = {
            role: [self._create_node(role, i) for i in range(count)]
            for role, count in self.node_counts.items()
        }
        core = by_role[NodeRole.CORE_ROUTER][0]
        dists = by_role[NodeRole.DISTRIBUTION_SWITCH]
        access = by_role[NodeRole.ACCESS_SWITCH][0]
        vpn = by_role[NodeRole.VPN_SERVER][0]
        ap = by_role[NodeRole.WIFI_AP][0]

        # ── Point-to-point /30 blocks ───────────────────────────────
        for k, dist in enumerate(dists):
            self._add_link(f"backbone-{k}", "backbone", [core, dist], SizeClass.POINT_TO_POINT)
        self._add_link("vpn-uplink", "vpn", [vpn, core], SizeClass.POINT_TO_POINT)
        for remote in by_role[NodeRole.REMOTE_CLIENT]:
            self._add_link(
                f"vpn-{remote.index:03d}", "vpn", [vpn, remote], SizeClass.POINT_TO_POINT
            )

        # ── /24 segments ────────────────────────────────────────────
        self._add_link(
            "enterprise-lan", "enterprise",
            by_role[NodeRole.ENTERPRISE_CLIENT] + [access], SizeClass.SEGMENT,
        )
        self._add_link("access-uplink", "enterprise", [access, dists[0]], SizeClass.SEGMENT)
        self._add_link(
            "dmz-lan", "dmz", by_role[NodeRole.DMZ_SERVER] + [dists[1]], SizeClass.SEGMENT
        )
        self._add_link("wifi-uplink", "wifi_uplink", [ap, dists[0]], SizeClass.SEGMENT)
        self._add_link(
            "wifi-cell", "wireless", [ap] + by_role[NodeRole.WIFI_STATION], SizeClass.SEGMENT
        )

        directory = EndpointDirectory()
        for spec in services:
            directory._register(self._bind(spec))
        directory._freeze()

        logger.info("Topology built", extra={
            "nodes": len(self._nodes),
            "links": len(self._links),
            "subnets": len(self._subnets),
            "services": len(directory),
        })
        return NetworkTopology(self._graph, self._nodes, self._links, self._subnets, directory)

    # ── Construction helpers ────────────────────────────────────────

    def _validate_counts(self) -> None:
        for role, count in self.node_counts.items():
            if count < 0:
                raise CatalogValidationError(
                    f"Node count for {role.value} must be >= 0, got {count}"
                )
        for role in (NodeRole.CORE_ROUTER, NodeRole.ACCESS_SWITCH,
                     NodeRole.VPN_SERVER, NodeRole.WIFI_AP):
            if self.node_counts[role] != 1:
                raise CatalogValidationError(f"Topology requires exactly one {role.value}")
        if self.node_counts[NodeRole.DISTRIBUTION_SWITCH] < 2:
            raise CatalogValidationError("Topology requires at least two distribution switches")

    def _create_node(self, role: NodeRole, idx: int) -> NetworkNode:
        node = NetworkNode(node_id=f"{_ID_PREFIX[role]}{idx:03d}", role=role, index=idx)
        self._nodes[node.node_id] = node
        self._graph.add_node(node.node_id, role=role.value)
        return node

    def _add_link(
        self, link_id: str, profile: str, members: List[NetworkNode], size: SizeClass
    ) -> Link:
        medium, rate, delay = self.link_profiles[profile]
        subnet = self.allocator.allocate(size)
        self._subnets.append(subnet)
        for node in members:
            node._interfaces.append(Interface(link_id, str(subnet), subnet.next_host()))

        link = Link(
            link_id=link_id,
            medium=medium,
            members=tuple(n.node_id for n in members),
            rate_bps=rate,
            delay_ms=delay,
            subnet=str(subnet),
        )
        self._links[link_id] = link

        # Shared and wireless media hang every member off the segment anchor
        anchor = members[0] if medium == LinkMedium.WIRELESS else members[-1]
        for node in members:
            if node is anchor:
                continue
            self._graph.add_edge(
                node.node_id, anchor.node_id, link=link_id, bandwidth=rate, latency=delay
            )
        return link

    def _bind(self, spec: ServiceSpec) -> ServiceBinding:
        node_id = f"{_ID_PREFIX[spec.role]}{spec.index:03d}"
        if node_id not in self._nodes:
            raise UnresolvedTargetError(
                f"Service {spec.name!r} targets missing node {spec.role.value}[{spec.index}]"
            )
        node = self._nodes[node_id]
        return ServiceBinding(
            name=spec.name,
            node=node,
            address=node.primary_address,
            port=spec.port,
            transport=spec.transport,
            start=self.app_start if spec.start is None else float(spec.start),
            stop=self.horizon if spec.stop is None else float(spec.stop),
        )
