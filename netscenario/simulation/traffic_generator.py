"""
Benign Traffic Catalog for scenario compilation.

Each FlowSpec describes one protocol archetype for one client population:
who sends, which symbolic service it talks to, how sizes/rates are
distributed, how start times are staggered and how many repeats each client
makes. The FlowCatalog expands specs into event drafts; every random value
is drawn exactly once per event at build time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .distributions import Distribution, RandomStreams, Sampler
from .errors import CatalogValidationError
from .events import BENIGN, EVENT_PARAMS, AppKind, EventDraft
from .network_topology import (
    EndpointDirectory,
    NetworkNode,
    NetworkTopology,
    NodeRole,
    ServiceBinding,
)

ARCHETYPES = ("http", "https", "mail", "dns", "ftp", "ssh", "echo", "streaming")


# ── Selectors and rules ─────────────────────────────────────────────

@dataclass(frozen=True)
class PopulationSelector:
    """``count`` nodes of ``role`` starting at ``offset``; all remaining if count is None."""

    role: NodeRole
    count: Optional[int] = None
    offset: int = 0

    def validate(self, owner: str) -> None:
        if self.offset < 0 or (self.count is not None and self.count < 0):
            raise CatalogValidationError(
                f"{owner}: population {self.role.value} has a negative count or offset"
            )

    def resolve(self, topology: NetworkTopology) -> List[NetworkNode]:
        return topology.select(self.role, self.count, self.offset)

    @classmethod
    def parse(cls, data: Union["PopulationSelector", Mapping, str]) -> "PopulationSelector":
        if isinstance(data, PopulationSelector):
            return data
        if isinstance(data, str):
            return cls(NodeRole(data))
        count = data.get("count")
        return cls(
            role=NodeRole(data["role"]),
            count=None if count is None else int(count),
            offset=int(data.get("offset", 0)),
        )


@dataclass(frozen=True)
class TargetRef:
    """Symbolic reference to a service in the EndpointDirectory."""

    service: str
    role: Optional[NodeRole] = None
    index: Optional[int] = None

    def resolve(self, directory: EndpointDirectory) -> ServiceBinding:
        return directory.resolve(self.service, self.role, self.index)

    @classmethod
    def parse(cls, data: Union["TargetRef", Mapping, str]) -> "TargetRef":
        if isinstance(data, TargetRef):
            return data
        if isinstance(data, str):
            return cls(data)
        role = data.get("role")
        index = data.get("index")
        return cls(
            service=data["service"],
            role=None if role is None else NodeRole(role),
            index=None if index is None else int(index),
        )


@dataclass(frozen=True)
class StaggerRule:
    """start = base + i * per_client + j * per_repeat + jitter."""

    base: float
    per_client: Distribution = field(default_factory=lambda: Distribution.constant(0.0))
    per_repeat: Distribution = field(default_factory=lambda: Distribution.constant(0.0))
    jitter: Optional[Distribution] = None

    @classmethod
    def parse(cls, data: Union["StaggerRule", Mapping, float, int]) -> "StaggerRule":
        if isinstance(data, StaggerRule):
            return data
        if isinstance(data, (int, float)):
            return cls(base=float(data))
        jitter = data.get("jitter")
        return cls(
            base=float(data["base"]),
            per_client=Distribution.parse(data.get("per_client", 0.0)),
            per_repeat=Distribution.parse(data.get("per_repeat", 0.0)),
            jitter=None if jitter is None else Distribution.parse(jitter),
        )


@dataclass(frozen=True)
class StopRule:
    """stop = base + i * per_client."""

    base: float
    per_client: float = 0.0

    def at(self, client_index: int) -> float:
        return self.base + client_index * self.per_client

    @classmethod
    def parse(cls, data: Union["StopRule", Mapping, float, int, None]) -> Optional["StopRule"]:
        if data is None or isinstance(data, StopRule):
            return data
        if isinstance(data, (int, float)):
            return cls(base=float(data))
        return cls(base=float(data["base"]), per_client=float(data.get("per_client", 0.0)))


@dataclass(frozen=True)
class RepeatRule:
    """count(i) = base + i * per_client, or base + (i mod cycle) when cycle is set."""

    base: int = 1
    per_client: int = 0
    cycle: Optional[int] = None

    def count(self, client_index: int) -> int:
        if self.cycle:
            return self.base + client_index % self.cycle
        return self.base + client_index * self.per_client

    @classmethod
    def parse(cls, data: Union["RepeatRule", Mapping, int, None]) -> "RepeatRule":
        if data is None:
            return cls()
        if isinstance(data, RepeatRule):
            return data
        if isinstance(data, int):
            return cls(base=data)
        cycle = data.get("cycle")
        return cls(
            base=int(data.get("base", 1)),
            per_client=int(data.get("per_client", 0)),
            cycle=None if cycle is None else int(cycle),
        )


# ── FlowSpec ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FlowSpec:
    """A static benign catalog entry."""

    name: str
    archetype: str
    clients: PopulationSelector
    targets: Tuple[TargetRef, ...]
    app: AppKind
    stagger: StaggerRule
    transport: str = "tcp"
    params: Tuple[Tuple[str, Distribution], ...] = ()
    repeat: RepeatRule = field(default_factory=RepeatRule)
    stop: Optional[StopRule] = None

    def validate(self) -> None:
        """Reject malformed entries before anything is sampled."""
        if self.archetype not in ARCHETYPES:
            raise CatalogValidationError(f"{self.name}: unknown archetype {self.archetype!r}")
        if not self.targets:
            raise CatalogValidationError(f"{self.name}: no target service given")
        self.clients.validate(self.name)
        _validate_params(self.name, self.params)
        _validate_stagger(self.name, self.stagger)
        if self.repeat.base < 0 or self.repeat.per_client < 0:
            raise CatalogValidationError(f"{self.name}: repeat count must not be negative")
        if self.repeat.cycle is not None and self.repeat.cycle <= 0:
            raise CatalogValidationError(f"{self.name}: repeat cycle must be positive")
        if self.stop is not None and (self.stop.base < 0 or self.stop.per_client < 0):
            raise CatalogValidationError(f"{self.name}: stop rule must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FlowSpec":
        try:
            targets = data.get("targets") or [data["target"]]
            spec = cls(
                name=data["name"],
                archetype=data["archetype"],
                clients=PopulationSelector.parse(data["clients"]),
                targets=tuple(TargetRef.parse(t) for t in targets),
                app=AppKind(data["app"]),
                stagger=StaggerRule.parse(data["start"]),
                transport=data.get("transport", "tcp"),
                params=_parse_params(data.get("params", {})),
                repeat=RepeatRule.parse(data.get("repeat")),
                stop=StopRule.parse(data.get("stop")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, CatalogValidationError):
                raise
            raise CatalogValidationError(
                f"Malformed flow entry {data.get('name', '?')!r}: {exc}"
            ) from exc
        spec.validate()
        return spec


class SpecCatalog:
    """
    Common state for catalogs: the spec list and the owned samplers.

    Samplers are created lazily per (spec, parameter) from the scenario's
    RandomStreams and reused across every event of that spec. Stream keys
    are prefixed with the catalog kind so a flow and an attack never share
    a stream. ``reset`` drops every sampler so the next generation pass
    replays the same draws.
    """

    kind = "spec"

    def __init__(
        self,
        specs: Sequence[Any],
        streams: Optional[RandomStreams] = None,
        horizon: float = 1500.0,
    ) -> None:
        self.specs = list(specs)
        self.streams = streams or RandomStreams()
        self.horizon = horizon
        self._samplers: Dict[Tuple[str, str], Sampler] = {}

    def __iter__(self) -> Iterator[Any]:
        return iter(self.specs)

    def __len__(self) -> int:
        return len(self.specs)

    def validate(self) -> None:
        names = set()
        for spec in self.specs:
            spec.validate()
            if spec.name in names:
                raise CatalogValidationError(f"Duplicate catalog entry name {spec.name!r}")
            names.add(spec.name)

    def _sampler(self, owner: str, parameter: str, dist: Distribution) -> Sampler:
        key = (owner, parameter)
        if key not in self._samplers:
            self._samplers[key] = self.streams.sampler(f"{self.kind}:{owner}", parameter, dist)
        return self._samplers[key]

    def reset(self) -> None:
        self._samplers.clear()

    def _draw_params(
        self,
        owner: str,
        params: Tuple[Tuple[str, Distribution], ...],
        prefix: str = "",
    ) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for name, dist in params:
            value = self._sampler(owner, prefix + name, dist).draw()
            values[name] = int(value) if EVENT_PARAMS[name] else value
        return values


class FlowCatalog(SpecCatalog):
    """Expands FlowSpecs into benign event drafts."""

    kind = "flow"
    specs: List[FlowSpec]

    @classmethod
    def from_config(
        cls,
        entries: Sequence[Mapping[str, Any]],
        streams: Optional[RandomStreams] = None,
        horizon: float = 1500.0,
    ) -> "FlowCatalog":
        return cls([FlowSpec.from_dict(e) for e in entries], streams, horizon)

    def generate(self, spec: FlowSpec, topology: NetworkTopology) -> List[EventDraft]:
        """
        Instantiate one spec: one draft per (client, repeat-index).

        Raises:
            UnresolvedTargetError: If the population or a target is missing.
        """
        clients = spec.clients.resolve(topology)
        bindings = [t.resolve(topology.directory) for t in spec.targets]

        drafts: List[EventDraft] = []
        for i, client in enumerate(clients):
            binding = bindings[i % len(bindings)]
            stop = spec.stop.at(i) if spec.stop is not None else self.horizon
            for j in range(spec.repeat.count(i)):
                start = self._start_time(spec.name, spec.stagger, i, j)
                drafts.append(EventDraft(
                    provenance=spec.name,
                    label=spec.archetype,
                    category=BENIGN,
                    app=spec.app,
                    protocol=spec.transport,
                    source=client,
                    binding=binding,
                    start=start,
                    stop=stop,
                    params=self._draw_params(spec.name, spec.params),
                    metadata={"client_index": i, "repeat_index": j, "service": binding.name},
                ))
        return drafts

    def _start_time(self, owner: str, rule: StaggerRule, i: int, j: int) -> float:
        start = rule.base
        if i:
            start += i * self._sampler(owner, "stagger.per_client", rule.per_client).draw()
        if j:
            start += j * self._sampler(owner, "stagger.per_repeat", rule.per_repeat).draw()
        if rule.jitter is not None:
            start += self._sampler(owner, "stagger.jitter", rule.jitter).draw()
        return start


# ── Shared validation helpers ───────────────────────────────────────

def _parse_params(raw: Mapping[str, Any]) -> Tuple[Tuple[str, Distribution], ...]:
    return tuple(sorted((k, Distribution.parse(v)) for k, v in raw.items()))


def _validate_params(owner: str, params: Tuple[Tuple[str, Distribution], ...]) -> None:
    for name, dist in params:
        if name not in EVENT_PARAMS:
            raise CatalogValidationError(f"{owner}: unknown event parameter {name!r}")
        if dist.lower_bound < 0:
            raise CatalogValidationError(
                f"{owner}: parameter {name!r} may draw negative values ({dist.to_dict()})"
            )


def _validate_stagger(owner: str, rule: StaggerRule) -> None:
    if rule.base < 0:
        raise CatalogValidationError(f"{owner}: start base must not be negative")
    for dist in (rule.per_client, rule.per_repeat, rule.jitter):
        if dist is not None and dist.lower_bound < 0:
            raise CatalogValidationError(
                f"{owner}: stagger component may draw negative values ({dist.to_dict()})"
            )
