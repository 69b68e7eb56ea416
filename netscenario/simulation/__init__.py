from .address_allocator import AddressAllocator, SizeClass, Subnet
from .network_topology import EndpointDirectory, NetworkTopology, NodeRole, TopologyBuilder
from .distributions import Distribution, RandomStreams
from .events import ScheduledEvent
from .traffic_generator import FlowCatalog, FlowSpec
from .attack_generator import AttackCatalog, AttackSpec
from .scenario_scheduler import ScenarioScheduler, Timeline
from .adapter import CaptureManager, DryRunAdapter, SimulationAdapter
from .scenario import Scenario, build_scenario
from .errors import (
    AddressConflict,
    AddressSpaceExhausted,
    CatalogValidationError,
    PortConflictError,
    ScenarioError,
    UnresolvedTargetError,
)

__all__ = [
    "AddressAllocator",
    "SizeClass",
    "Subnet",
    "EndpointDirectory",
    "NetworkTopology",
    "NodeRole",
    "TopologyBuilder",
    "Distribution",
    "RandomStreams",
    "ScheduledEvent",
    "FlowCatalog",
    "FlowSpec",
    "AttackCatalog",
    "AttackSpec",
    "ScenarioScheduler",
    "Timeline",
    "CaptureManager",
    "DryRunAdapter",
    "SimulationAdapter",
    "Scenario",
    "build_scenario",
    "AddressConflict",
    "AddressSpaceExhausted",
    "CatalogValidationError",
    "PortConflictError",
    "ScenarioError",
    "UnresolvedTargetError",
]
