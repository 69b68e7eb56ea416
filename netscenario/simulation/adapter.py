"""
Interfaces to the external packet-level simulator.

``SimulationAdapter`` is the contract an executor implements to run a
Timeline; ``DryRunAdapter`` is an in-process stand-in that estimates traffic
volumes without simulating packets. ``CaptureManager`` collects trace-capture
requests as a side channel, independent of the Timeline.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from .errors import CatalogValidationError, UnresolvedTargetError
from .events import AppKind, EventRole, ScheduledEvent
from .network_topology import NetworkTopology
from .scenario_scheduler import Timeline

logger = logging.getLogger(__name__)

INSTALLED = "installed"
FAILED = "failed"


@dataclass(frozen=True)
class EventOutcome:
    event_id: str
    status: str
    reason: str = ""


@dataclass(frozen=True)
class EventStatistics:
    """Aggregate per-event figures reported after execution."""

    event_id: str
    bytes_transferred: int
    packets: int
    mean_delay_ms: float
    loss_ratio: float


class SimulationAdapter(ABC):
    """Executes a Timeline in simulated time."""

    @abstractmethod
    def install(self, timeline: Timeline) -> List[EventOutcome]:
        """Install every event; report installed/failed per event id."""

    @abstractmethod
    def statistics(self) -> Dict[str, EventStatistics]:
        """Per-event statistics, available after execution."""


class DryRunAdapter(SimulationAdapter):
    """
    Accepts a Timeline without simulating it.

    Client events with an empty window are reported as failed; every other
    event is installed and its volume estimated from size or rate times the
    active time. Delay and loss are always zero.
    """

    def __init__(self, default_packet_size: int = 1024) -> None:
        self.default_packet_size = default_packet_size
        self._installed: List[ScheduledEvent] = []

    def install(self, timeline: Timeline) -> List[EventOutcome]:
        outcomes = []
        self._installed = []
        for event in timeline:
            if event.role == EventRole.CLIENT and event.duration <= 0:
                outcomes.append(EventOutcome(event.event_id, FAILED, "empty window"))
                continue
            self._installed.append(event)
            outcomes.append(EventOutcome(event.event_id, INSTALLED))
        failed = sum(1 for o in outcomes if o.status == FAILED)
        logger.info("Dry run installed timeline", extra={
            "installed": len(outcomes) - failed, "failed": failed,
        })
        return outcomes

    def statistics(self) -> Dict[str, EventStatistics]:
        stats = {}
        for event in self._installed:
            if event.role == EventRole.SERVER:
                continue
            volume = self._estimate_bytes(event)
            packet_size = event.packet_size or self.default_packet_size
            stats[event.event_id] = EventStatistics(
                event_id=event.event_id,
                bytes_transferred=volume,
                packets=math.ceil(volume / packet_size) if volume else 0,
                mean_delay_ms=0.0,
                loss_ratio=0.0,
            )
        return stats

    @staticmethod
    def _estimate_bytes(event: ScheduledEvent) -> int:
        if event.app == AppKind.ECHO:
            return (event.max_packets or 1) * (event.packet_size or 0)
        if event.app == AppKind.ON_OFF and event.data_rate_bps:
            on, off = event.on_time, event.off_time or 0.0
            duty = 1.0 if on is None else on / max(on + off, 1e-9)
            return int(event.data_rate_bps * event.duration * duty / 8)
        if event.size_bytes:
            return event.size_bytes
        if event.data_rate_bps:
            return int(event.data_rate_bps * event.duration / 8)
        return 0


# ── Capture requests ────────────────────────────────────────────────

@dataclass(frozen=True)
class CaptureRequest:
    link_or_device_id: str
    filename_prefix: str
    promiscuous: bool = True


class CaptureManager:
    """
    Validates and records trace-capture requests against the topology.

    A request names either a link id or a node id; emitting the actual
    capture artifacts is left to the external simulator.
    """

    def __init__(self, topology: NetworkTopology) -> None:
        self.topology = topology
        self._requests: List[CaptureRequest] = []

    def request(
        self, link_or_device_id: str, filename_prefix: str, promiscuous: bool = True
    ) -> CaptureRequest:
        if (
            link_or_device_id not in self.topology.links
            and link_or_device_id not in self.topology.nodes
        ):
            raise UnresolvedTargetError(
                f"Capture target {link_or_device_id!r} is neither a link nor a node"
            )
        if any(r.filename_prefix == filename_prefix for r in self._requests):
            raise CatalogValidationError(f"Capture prefix {filename_prefix!r} already requested")
        req = CaptureRequest(link_or_device_id, filename_prefix, promiscuous)
        self._requests.append(req)
        return req

    def extend(self, entries: Sequence[Mapping[str, Any]]) -> None:
        for entry in entries:
            self.request(
                entry["target"], entry["prefix"], bool(entry.get("promiscuous", True))
            )

    @property
    def requests(self) -> List[CaptureRequest]:
        return list(self._requests)

    def write_manifest(self, path: Union[str, Path]) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(
            json.dumps([asdict(r) for r in self._requests], indent=2), encoding="utf-8"
        )
        return out
