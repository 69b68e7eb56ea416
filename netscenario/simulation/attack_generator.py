"""
Attack Traffic Catalog for scenario compilation.

Produces labeled malicious event drafts across six families: floods, port
enumeration, credential attacks, payload injection, redirection and covert
beaconing. Each family has its own instantiation policy; all of them resolve
attackers and victims through the topology and targets through the
EndpointDirectory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .distributions import Distribution, RandomStreams
from .errors import CatalogValidationError
from .events import AppKind, EventDraft
from .network_topology import NetworkNode, NetworkTopology, ServiceBinding, ServiceSpec
from .traffic_generator import (
    PopulationSelector,
    SpecCatalog,
    TargetRef,
    _parse_params,
    _validate_params,
)

FAMILIES = (
    "flood",
    "enumeration",
    "credential",
    "injection",
    "redirection",
    "covert",
)

# Added to every injected payload to account for transport and HTTP framing
DEFAULT_HEADER_SIZE = 50


@dataclass(frozen=True)
class AttackSpec:
    """A static attack catalog entry with its declared [start, stop] window."""

    name: str
    family: str
    label: str
    target: TargetRef
    start: float
    stop: float
    app: AppKind = AppKind.BULK
    transport: str = "tcp"
    attackers: Tuple[PopulationSelector, ...] = ()
    attacker_spacing: float = 0.0
    item_spacing: float = 0.0
    ports: Tuple[int, ...] = ()
    attempts: int = 0
    payloads: Tuple[str, ...] = ()
    header_size: int = DEFAULT_HEADER_SIZE
    params: Tuple[Tuple[str, Distribution], ...] = ()
    decoy: Optional[TargetRef] = None
    victims: Optional[PopulationSelector] = None
    victim_app: AppKind = AppKind.BULK
    victim_params: Tuple[Tuple[str, Distribution], ...] = ()
    installs: Tuple[ServiceSpec, ...] = ()

    def validate(self) -> None:
        """Reject malformed entries before anything is sampled."""
        if self.family not in FAMILIES:
            raise CatalogValidationError(f"{self.name}: unknown attack family {self.family!r}")
        if self.start < 0 or self.stop < self.start:
            raise CatalogValidationError(
                f"{self.name}: invalid attack window [{self.start}, {self.stop}]"
            )
        if self.attacker_spacing < 0 or self.item_spacing < 0:
            raise CatalogValidationError(f"{self.name}: spacing must not be negative")
        for selector in self.attackers:
            selector.validate(self.name)
        _validate_params(self.name, self.params)
        _validate_params(self.name, self.victim_params)

        if self.family == "redirection":
            if self.decoy is None or self.victims is None:
                raise CatalogValidationError(f"{self.name}: redirection needs a decoy and victims")
            self.victims.validate(self.name)
        elif not self.attackers:
            raise CatalogValidationError(f"{self.name}: no attacker population given")

        if self.family == "enumeration":
            if not self.ports:
                raise CatalogValidationError(f"{self.name}: enumeration needs a port list")
            bad = [p for p in self.ports if not 0 <= p <= 65535]
            if bad:
                raise CatalogValidationError(f"{self.name}: invalid ports {bad}")
        elif self.family == "credential" and self.attempts <= 0:
            raise CatalogValidationError(
                f"{self.name}: credential attack needs a positive attempt count, got {self.attempts}"
            )
        elif self.family == "injection":
            if not self.payloads:
                raise CatalogValidationError(f"{self.name}: injection needs at least one payload")
            if self.header_size < 0:
                raise CatalogValidationError(f"{self.name}: header size must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttackSpec":
        try:
            decoy = data.get("decoy")
            victims = data.get("victims")
            spec = cls(
                name=data["name"],
                family=data["family"],
                label=data.get("label", data["name"]),
                target=TargetRef.parse(data["target"]),
                start=float(data["window"][0]),
                stop=float(data["window"][1]),
                app=AppKind(data.get("app", "bulk")),
                transport=data.get("transport", "tcp"),
                attackers=tuple(PopulationSelector.parse(a) for a in data.get("attackers", [])),
                attacker_spacing=float(data.get("attacker_spacing", 0.0)),
                item_spacing=float(data.get("item_spacing", 0.0)),
                ports=tuple(int(p) for p in data.get("ports", [])),
                attempts=int(data.get("attempts", 0)),
                payloads=tuple(str(p) for p in data.get("payloads", [])),
                header_size=int(data.get("header_size", DEFAULT_HEADER_SIZE)),
                params=_parse_params(data.get("params", {})),
                decoy=None if decoy is None else TargetRef.parse(decoy),
                victims=None if victims is None else PopulationSelector.parse(victims),
                victim_app=AppKind(data.get("victim_app", "bulk")),
                victim_params=_parse_params(data.get("victim_params", {})),
                installs=tuple(ServiceSpec.from_dict(s) for s in data.get("installs", [])),
            )
        except (KeyError, TypeError, ValueError, IndexError) as exc:
            if isinstance(exc, CatalogValidationError):
                raise
            raise CatalogValidationError(
                f"Malformed attack entry {data.get('name', '?')!r}: {exc}"
            ) from exc
        spec.validate()
        return spec


class AttackCatalog(SpecCatalog):
    """
    Expands AttackSpecs into malicious event drafts.

    Generators never drop or clip events: a draft whose window falls outside
    the target's availability is left for the scheduler to flag.
    """

    kind = "attack"
    specs: List[AttackSpec]

    @classmethod
    def from_config(
        cls,
        entries: Sequence[Mapping[str, Any]],
        streams: Optional[RandomStreams] = None,
        horizon: float = 1500.0,
    ) -> "AttackCatalog":
        return cls([AttackSpec.from_dict(e) for e in entries], streams, horizon)

    def required_services(self) -> List[ServiceSpec]:
        """Services the attacks install themselves (decoys, listeners, sinks)."""
        return [svc for spec in self.specs for svc in spec.installs]

    def generate(self, spec: AttackSpec, topology: NetworkTopology) -> List[EventDraft]:
        """
        Instantiate one attack spec.

        Raises:
            UnresolvedTargetError: If a population, the target or the decoy is missing.
        """
        dispatch = {
            "flood": self._per_attacker,
            "covert": self._per_attacker,
            "enumeration": self._enumeration,
            "credential": self._credential,
            "injection": self._injection,
            "redirection": self._redirection,
        }
        target = spec.target.resolve(topology.directory)
        return dispatch[spec.family](spec, target, topology)

    # ── Family policies ─────────────────────────────────────────────

    def _per_attacker(
        self, spec: AttackSpec, target: ServiceBinding, topology: NetworkTopology
    ) -> List[EventDraft]:
        """Floods and beacons: one event per attacker, staggered by attacker index."""
        return [
            self._draft(spec, attacker, target, self._offset(spec, a, 0), a)
            for a, attacker in enumerate(self._attackers(spec, topology))
        ]

    def _enumeration(
        self, spec: AttackSpec, target: ServiceBinding, topology: NetworkTopology
    ) -> List[EventDraft]:
        drafts = []
        for a, attacker in enumerate(self._attackers(spec, topology)):
            for p, port in enumerate(spec.ports):
                draft = self._draft(spec, attacker, target, self._offset(spec, a, p), a)
                draft.dst_port = port
                draft.metadata["port_index"] = p
                drafts.append(draft)
        return drafts

    def _credential(
        self, spec: AttackSpec, target: ServiceBinding, topology: NetworkTopology
    ) -> List[EventDraft]:
        drafts = []
        for a, attacker in enumerate(self._attackers(spec, topology)):
            for k in range(spec.attempts):
                draft = self._draft(spec, attacker, target, self._offset(spec, a, k), a)
                draft.metadata["attempt_index"] = k
                drafts.append(draft)
        return drafts

    def _injection(
        self, spec: AttackSpec, target: ServiceBinding, topology: NetworkTopology
    ) -> List[EventDraft]:
        drafts = []
        for a, attacker in enumerate(self._attackers(spec, topology)):
            for k, payload in enumerate(spec.payloads):
                draft = self._draft(spec, attacker, target, self._offset(spec, a, k), a)
                draft.payload = payload
                draft.params["packet_size"] = len(payload) + spec.header_size
                draft.metadata["payload_index"] = k
                drafts.append(draft)
        return drafts

    def _redirection(
        self, spec: AttackSpec, target: ServiceBinding, topology: NetworkTopology
    ) -> List[EventDraft]:
        """
        Re-point each victim's flow for the hijacked service at the decoy.

        Attackers, when given, additionally emit spoofed announcements toward
        the impersonated service for the same window.
        """
        decoy = spec.decoy.resolve(topology.directory)
        drafts = []
        for a, victim in enumerate(spec.victims.resolve(topology)):
            drafts.append(EventDraft(
                provenance=spec.name,
                label=spec.label,
                category=spec.family,
                app=spec.victim_app,
                protocol=decoy.transport,
                source=victim,
                binding=decoy,
                start=self._offset(spec, a, 0),
                stop=spec.stop,
                params=self._draw_params(spec.name, spec.victim_params, prefix="victim."),
                metadata={
                    "victim_index": a,
                    "redirected_from": target.name,
                    "original_address": target.address,
                    "original_port": target.port,
                },
            ))
        for a, attacker in enumerate(self._attackers(spec, topology)):
            draft = self._draft(spec, attacker, target, spec.start, a)
            draft.metadata["impersonates"] = target.address
            drafts.append(draft)
        return drafts

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _attackers(spec: AttackSpec, topology: NetworkTopology) -> List[NetworkNode]:
        nodes: List[NetworkNode] = []
        for selector in spec.attackers:
            nodes.extend(selector.resolve(topology))
        return nodes

    @staticmethod
    def _offset(spec: AttackSpec, attacker_index: int, item_index: int) -> float:
        return (
            spec.start
            + attacker_index * spec.attacker_spacing
            + item_index * spec.item_spacing
        )

    def _draft(
        self,
        spec: AttackSpec,
        attacker: NetworkNode,
        target: ServiceBinding,
        start: float,
        attacker_index: int,
    ) -> EventDraft:
        return EventDraft(
            provenance=spec.name,
            label=spec.label,
            category=spec.family,
            app=spec.app,
            protocol=spec.transport,
            source=attacker,
            binding=target,
            start=start,
            stop=spec.stop,
            params=self._draw_params(spec.name, spec.params),
            metadata={"attacker_index": attacker_index},
        )
