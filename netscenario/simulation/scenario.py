"""
Scenario assembly: turns a loaded configuration into a ready-to-compile pipeline.

Order matters. Catalogs are parsed and validated first so malformed entries
fail before any address is allocated or value drawn; the topology is then
built with both the declared services and the ones attacks install.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .adapter import CaptureManager
from .address_allocator import AddressAllocator
from .attack_generator import AttackCatalog
from .distributions import RandomStreams
from .errors import CatalogValidationError
from .network_topology import (
    LinkMedium,
    NetworkTopology,
    NodeRole,
    ServiceSpec,
    TopologyBuilder,
)
from .scenario_scheduler import ScenarioScheduler, Timeline
from .traffic_generator import FlowCatalog


@dataclass
class Scenario:
    topology: NetworkTopology
    flows: FlowCatalog
    attacks: AttackCatalog
    scheduler: ScenarioScheduler
    captures: CaptureManager
    horizon: float
    seed: Optional[int]

    def compile(self) -> Timeline:
        return self.scheduler.compile()


def build_scenario(
    config: Mapping[str, Any],
    seed: Optional[int] = None,
    duration: Optional[float] = None,
) -> Scenario:
    """
    Wire allocator, topology, catalogs, scheduler and captures from config.

    Args:
        config: Parsed configuration (see config/config.yaml).
        seed: Overrides ``simulation.seed``; None keeps the configured value.
        duration: Overrides ``simulation.stop_time`` (the global horizon).
    """
    sim = config.get("simulation", {}) or {}
    horizon = float(duration if duration is not None else sim.get("stop_time", 1500.0))
    app_start = float(sim.get("app_start", 1.0))
    if seed is None:
        seed = sim.get("seed")
    streams = RandomStreams(seed)

    flows = FlowCatalog.from_config(config.get("flows", []) or [], streams, horizon)
    attacks = AttackCatalog.from_config(config.get("attacks", []) or [], streams, horizon)

    addressing = config.get("addressing", {}) or {}
    allocator = AddressAllocator(
        pool=addressing.get("pool", "10.0.0.0/8"),
        base=addressing.get("base", "10.1.0.0"),
    )

    topo_cfg = config.get("topology", {}) or {}
    builder = TopologyBuilder(
        allocator,
        node_counts=_node_counts(topo_cfg.get("nodes", {})),
        link_profiles=_link_profiles(topo_cfg.get("links", {})),
        app_start=app_start,
        horizon=horizon,
    )
    services = [ServiceSpec.from_dict(s) for s in config.get("services", []) or []]
    topology = builder.build(services + attacks.required_services())

    captures = CaptureManager(topology)
    captures.extend(config.get("captures", []) or [])

    return Scenario(
        topology=topology,
        flows=flows,
        attacks=attacks,
        scheduler=ScenarioScheduler(topology, flows, attacks, horizon),
        captures=captures,
        horizon=horizon,
        seed=seed,
    )


def _node_counts(raw: Mapping[str, Any]) -> Dict[NodeRole, int]:
    try:
        return {NodeRole(role): int(count) for role, count in raw.items()}
    except (TypeError, ValueError) as exc:
        raise CatalogValidationError(f"Malformed topology.nodes entry: {exc}") from exc


def _link_profiles(raw: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    try:
        return {
            name: (LinkMedium(p["medium"]), float(p["rate_bps"]), float(p["delay_ms"]))
            for name, p in raw.items()
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise CatalogValidationError(f"Malformed topology.links entry: {exc}") from exc
