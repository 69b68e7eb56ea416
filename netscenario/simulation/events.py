"""
Event records shared by the catalogs and the scheduler.

Generators emit ``EventDraft`` objects; only the ScenarioScheduler turns them
into immutable ``ScheduledEvent`` records.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .network_topology import NetworkNode, ServiceBinding


class AppKind(str, Enum):
    BULK = "bulk"          # fixed byte count, as fast as possible (0 = unbounded)
    ON_OFF = "on_off"      # constant rate during on periods
    ECHO = "echo"          # fixed number of request packets at an interval
    SINK = "sink"          # server-side listener


class EventRole(str, Enum):
    CLIENT = "client"
    SERVER = "server"


BENIGN = "benign"

# Parameters a spec may attach to an event, and whether they are integral
EVENT_PARAMS: Dict[str, bool] = {
    "size_bytes": True,
    "packet_size": True,
    "max_packets": True,
    "data_rate_bps": False,
    "interval": False,
    "on_time": False,
    "off_time": False,
}


@dataclass
class EventDraft:
    """Generator output before validation and id assignment."""

    provenance: str
    label: str
    category: str           # "benign" or the attack family
    app: AppKind
    protocol: str
    source: NetworkNode
    binding: ServiceBinding
    start: float
    stop: float
    dst_port: Optional[int] = None
    params: Dict[str, float] = field(default_factory=dict)
    payload: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def port(self) -> int:
        return self.binding.port if self.dst_port is None else self.dst_port


@dataclass(frozen=True)
class ScheduledEvent:
    """A concrete, time-bound instantiation of a FlowSpec or AttackSpec."""

    event_id: str
    role: EventRole
    provenance: str
    label: str
    category: str
    app: AppKind
    protocol: str
    source_node: Optional[str]
    source_address: Optional[str]
    target_node: str
    target_address: str
    port: int
    start: float
    stop: float
    size_bytes: Optional[int] = None
    packet_size: Optional[int] = None
    max_packets: Optional[int] = None
    data_rate_bps: Optional[float] = None
    interval: Optional[float] = None
    on_time: Optional[float] = None
    off_time: Optional[float] = None
    payload: Optional[str] = None
    truncated: bool = False
    annotations: Tuple[str, ...] = ()
    metadata: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if self.start > self.stop:
            raise ValueError(
                f"Event {self.event_id} starts after it stops ({self.start} > {self.stop})"
            )

    @property
    def duration(self) -> float:
        return self.stop - self.start

    @property
    def is_malicious(self) -> bool:
        return self.role == EventRole.CLIENT and self.category != BENIGN

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["role"] = self.role.value
        data["app"] = self.app.value
        data["annotations"] = list(self.annotations)
        data["metadata"] = dict(self.metadata)
        return data
