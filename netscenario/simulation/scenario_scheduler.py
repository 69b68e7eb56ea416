"""
Scenario Scheduler.

Merges every benign and attack instantiation into one validated Timeline:
service installations are checked for port conflicts, each client event is
checked against its target's availability and truncated (never dropped) when
it overruns, and the result is ordered by start time with stable ids.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .attack_generator import AttackCatalog
from .errors import CatalogValidationError, PortConflictError, UnresolvedTargetError
from .events import AppKind, EventDraft, EventRole, ScheduledEvent
from .network_topology import NetworkTopology, ServiceBinding
from .traffic_generator import FlowCatalog

logger = logging.getLogger(__name__)

SERVICE = "service"


class Timeline:
    """Ordered, immutable sequence of ScheduledEvents handed to the executor."""

    def __init__(self, events: Sequence[ScheduledEvent]) -> None:
        self._events: Tuple[ScheduledEvent, ...] = tuple(events)

    def __iter__(self) -> Iterator[ScheduledEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, idx: int) -> ScheduledEvent:
        return self._events[idx]

    @property
    def events(self) -> Tuple[ScheduledEvent, ...]:
        return self._events

    def client_events(self) -> List[ScheduledEvent]:
        return [e for e in self._events if e.role == EventRole.CLIENT]

    def server_events(self) -> List[ScheduledEvent]:
        return [e for e in self._events if e.role == EventRole.SERVER]

    def by_provenance(self, name: str) -> List[ScheduledEvent]:
        return [e for e in self._events if e.provenance == name]

    def truncated(self) -> List[ScheduledEvent]:
        return [e for e in self._events if e.truncated]

    def label_counts(self) -> Dict[str, int]:
        return dict(Counter(e.label for e in self.client_events()))

    def to_records(self) -> List[Dict[str, Any]]:
        """Flatten into the record format consumed by a SimulationAdapter."""
        records = []
        for e in self._events:
            if e.role == EventRole.SERVER:
                local, remote = f"{e.target_address}:{e.port}", f"0.0.0.0:{e.port}"
            else:
                local, remote = e.source_address, f"{e.target_address}:{e.port}"
            size_or_rate = {
                k: getattr(e, k)
                for k in ("size_bytes", "data_rate_bps", "packet_size", "max_packets",
                          "interval", "on_time", "off_time")
                if getattr(e, k) is not None
            }
            records.append({
                "event_id": e.event_id,
                "role": e.role.value,
                "app": e.app.value,
                "protocol": e.protocol,
                "local_endpoint": local,
                "remote_endpoint": remote,
                "start": e.start,
                "stop": e.stop,
                "size_or_rate": size_or_rate,
                "payload_hint": e.payload,
                "label": e.label,
            })
        return records

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps([e.to_dict() for e in self._events], indent=indent, sort_keys=True)

    def write(self, path: Union[str, Path]) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(self.to_json(), encoding="utf-8")
        return out


@dataclass
class ScheduleReport:
    """Summary of one compilation pass."""

    total_events: int = 0
    server_events: int = 0
    by_label: Dict[str, int] = field(default_factory=dict)
    truncated: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "server_events": self.server_events,
            "by_label": dict(sorted(self.by_label.items())),
            "truncated": list(self.truncated),
            "skipped": list(self.skipped),
        }


class ScenarioScheduler:
    """
    Builds the global Timeline from a topology and the two catalogs.

    The scheduler is the only writer of ScheduledEvent. It runs once, eagerly;
    the topology and its directory are read-only throughout.
    """

    def __init__(
        self,
        topology: NetworkTopology,
        flows: FlowCatalog,
        attacks: AttackCatalog,
        horizon: float = 1500.0,
    ) -> None:
        self.topology = topology
        self.flows = flows
        self.attacks = attacks
        self.horizon = horizon
        self.report = ScheduleReport()

    # ── Public API ──────────────────────────────────────────────────

    def compile(self) -> Timeline:
        """
        Validate, expand and order every catalog entry.

        Raises:
            CatalogValidationError: Malformed spec, before any draw happens.
            PortConflictError: Two services overlap on one (node, port).
        """
        self.report = ScheduleReport()
        self.flows.validate()
        self.attacks.validate()
        shared = {s.name for s in self.flows} & {s.name for s in self.attacks}
        if shared:
            raise CatalogValidationError(
                f"Names used by both a flow and an attack: {sorted(shared)}"
            )
        self.check_port_conflicts(self.topology.directory.bindings())
        # Every pass redraws from the seed
        self.flows.reset()
        self.attacks.reset()

        staged: List[ScheduledEvent] = [
            self._server_event(b) for b in self.topology.directory
        ]
        for catalog in (self.flows, self.attacks):
            for spec in catalog:
                staged.extend(self._expand(catalog, spec))

        # Stable sort keeps generation order among equal start times
        ordered = sorted(enumerate(staged), key=lambda pair: (pair[1].start, pair[0]))
        events = [
            _with_id(ev, f"EV{n:06d}") for n, (_, ev) in enumerate(ordered, start=1)
        ]
        timeline = Timeline(events)

        self.report.total_events = len(timeline)
        self.report.server_events = len(timeline.server_events())
        self.report.by_label = timeline.label_counts()
        self.report.truncated = [e.event_id for e in timeline.truncated()]
        logger.info("Timeline compiled", extra={
            "events": len(timeline),
            "truncated": len(self.report.truncated),
            "skipped_specs": len(self.report.skipped),
        })
        return timeline

    @staticmethod
    def check_port_conflicts(bindings: Sequence[ServiceBinding]) -> None:
        """Fail if two installations share (node, port) with overlapping lifetimes."""
        by_endpoint: Dict[Tuple[str, int], List[ServiceBinding]] = {}
        for b in bindings:
            if b.stop < b.start:
                raise CatalogValidationError(
                    f"Service {b.name!r} on {b.node.node_id} stops before it starts"
                )
            by_endpoint.setdefault((b.node.node_id, b.port), []).append(b)
        for (node_id, port), group in by_endpoint.items():
            for i, first in enumerate(group):
                for second in group[i + 1:]:
                    if first.overlaps(second):
                        raise PortConflictError(
                            f"Services {first.name!r} [{first.start}, {first.stop}] and "
                            f"{second.name!r} [{second.start}, {second.stop}] both claim "
                            f"port {port} on {node_id}"
                        )

    # ── Expansion and validation ────────────────────────────────────

    def _expand(self, catalog: Any, spec: Any) -> List[ScheduledEvent]:
        try:
            drafts = catalog.generate(spec, self.topology)
            return [self._finalize(d) for d in drafts]
        except UnresolvedTargetError as exc:
            logger.error("Skipping spec with unresolved target", extra={
                "spec": spec.name, "reason": str(exc),
            })
            self.report.skipped.append({"spec": spec.name, "reason": str(exc)})
            return []

    def _finalize(self, draft: EventDraft) -> ScheduledEvent:
        binding = draft.binding
        registered = self.topology.directory.get(*binding.key)
        if registered is not binding:
            raise UnresolvedTargetError(
                f"{draft.provenance}: target {binding.name!r} is not the published binding"
            )

        annotations: List[str] = []
        start, stop = draft.start, draft.stop
        if start > stop:
            annotations.append(f"start {start:g} beyond declared stop {stop:g}")
            start = stop

        lo, hi = binding.start, min(binding.stop, self.horizon)
        new_start, new_stop = _intersect(start, stop, lo, hi)
        if (new_start, new_stop) != (start, stop):
            annotations.append(
                f"truncated to availability of {binding.name}@{binding.node.node_id} "
                f"[{lo:g}, {hi:g}]"
            )
        if annotations and new_start == new_stop:
            annotations.append("empty window")
        if annotations:
            logger.warning("Event window truncated", extra={
                "spec": draft.provenance,
                "source": draft.source.node_id,
                "requested": [draft.start, draft.stop],
                "granted": [new_start, new_stop],
            })

        params = draft.params
        return ScheduledEvent(
            event_id="",
            role=EventRole.CLIENT,
            provenance=draft.provenance,
            label=draft.label,
            category=draft.category,
            app=draft.app,
            protocol=draft.protocol,
            source_node=draft.source.node_id,
            source_address=draft.source.primary_address,
            target_node=binding.node.node_id,
            target_address=binding.address,
            port=draft.port,
            start=new_start,
            stop=new_stop,
            size_bytes=params.get("size_bytes"),
            packet_size=params.get("packet_size"),
            max_packets=params.get("max_packets"),
            data_rate_bps=params.get("data_rate_bps"),
            interval=params.get("interval"),
            on_time=params.get("on_time"),
            off_time=params.get("off_time"),
            payload=draft.payload,
            truncated=bool(annotations),
            annotations=tuple(annotations),
            metadata=tuple(sorted(draft.metadata.items())),
        )

    def _server_event(self, binding: ServiceBinding) -> ScheduledEvent:
        start, stop = _intersect(binding.start, binding.stop, 0.0, self.horizon)
        clipped = (start, stop) != (binding.start, binding.stop)
        return ScheduledEvent(
            event_id="",
            role=EventRole.SERVER,
            provenance=f"{SERVICE}:{binding.name}",
            label=binding.name,
            category=SERVICE,
            app=AppKind.SINK,
            protocol=binding.transport,
            source_node=None,
            source_address=None,
            target_node=binding.node.node_id,
            target_address=binding.address,
            port=binding.port,
            start=start,
            stop=stop,
            truncated=clipped,
            annotations=(f"clipped to horizon [0, {self.horizon:g}]",) if clipped else (),
        )


def _intersect(start: float, stop: float, lo: float, hi: float) -> Tuple[float, float]:
    """Intersect [start, stop] with [lo, hi]; an empty result collapses onto the nearest edge."""
    new_start, new_stop = max(start, lo), min(stop, hi)
    if new_start > new_stop:
        anchor = min(max(start, lo), hi)
        return anchor, anchor
    return new_start, new_stop


def _with_id(event: ScheduledEvent, event_id: str) -> ScheduledEvent:
    return replace(event, event_id=event_id)
